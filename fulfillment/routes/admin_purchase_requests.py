from fastapi import APIRouter, Depends, Query

from fulfillment.dependencies.admin import require_admin
from fulfillment.dependencies.services import get_contact_service
from fulfillment.models.user import User
from fulfillment.schemas.purchase_request_schemas import PurchaseRequestStatusUpdate
from fulfillment.services.contact_service import ContactService
from fulfillment.utils.result import raise_for_result

router = APIRouter()


@router.get("")
def list_purchase_requests(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
    service: ContactService = Depends(get_contact_service),
):
    return raise_for_result(service.list_purchase_requests(limit, offset))


@router.get("/stats")
def purchase_request_stats(
    admin: User = Depends(require_admin),
    service: ContactService = Depends(get_contact_service),
):
    return raise_for_result(service.get_purchase_request_statistics())


@router.patch("/{request_id}/status")
def update_purchase_request_status(
    request_id: int,
    payload: PurchaseRequestStatusUpdate,
    admin: User = Depends(require_admin),
    service: ContactService = Depends(get_contact_service),
):
    return raise_for_result(
        service.update_purchase_request_status(request_id, payload.status, payload.admin_notes)
    )


@router.delete("/{request_id}")
def delete_purchase_request(
    request_id: int,
    admin: User = Depends(require_admin),
    service: ContactService = Depends(get_contact_service),
):
    raise_for_result(service.delete_purchase_request(request_id))
    return {"message": "Purchase request deleted"}
