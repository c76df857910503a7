from fastapi import APIRouter, Depends

from fulfillment.dependencies.admin import require_admin
from fulfillment.dependencies.services import get_payment_config_service
from fulfillment.models.user import User
from fulfillment.schemas.payment_config_schemas import PaymentConfigCreate, PaymentConfigUpdate
from fulfillment.services.payment_config_service import PaymentConfigService
from fulfillment.utils.result import raise_for_result

router = APIRouter()
admin_router = APIRouter()


@router.get("/active")
def active_payment_methods(service: PaymentConfigService = Depends(get_payment_config_service)):
    return raise_for_result(service.get_active_payment_methods())


@admin_router.get("")
def list_payment_configs(
    admin: User = Depends(require_admin),
    service: PaymentConfigService = Depends(get_payment_config_service),
):
    return raise_for_result(service.get_all_payment_configs())


@admin_router.post("", status_code=201)
def create_payment_config(
    payload: PaymentConfigCreate,
    admin: User = Depends(require_admin),
    service: PaymentConfigService = Depends(get_payment_config_service),
):
    return raise_for_result(service.create_payment_config(payload))


@admin_router.patch("/{config_id}")
def update_payment_config(
    config_id: int,
    payload: PaymentConfigUpdate,
    admin: User = Depends(require_admin),
    service: PaymentConfigService = Depends(get_payment_config_service),
):
    return raise_for_result(service.update_payment_config(config_id, payload))


@admin_router.post("/{config_id}/toggle")
def toggle_payment_config(
    config_id: int,
    admin: User = Depends(require_admin),
    service: PaymentConfigService = Depends(get_payment_config_service),
):
    return raise_for_result(service.toggle_payment_config(config_id))


@admin_router.delete("/{config_id}")
def delete_payment_config(
    config_id: int,
    admin: User = Depends(require_admin),
    service: PaymentConfigService = Depends(get_payment_config_service),
):
    raise_for_result(service.delete_payment_config(config_id))
    return {"message": "Payment configuration deleted"}
