import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header

from fulfillment.dependencies.admin import require_admin
from fulfillment.dependencies.services import get_bot_gateway_service, get_purchase_service
from fulfillment.models.user import User
from fulfillment.schemas.bot_schemas import BotLinkRequest, CurrencyRateUpdate, PurchaseInfoRequest
from fulfillment.services.bot_gateway_service import BotGatewayService, validate_bot_auth
from fulfillment.services.purchase_service import PurchaseService
from fulfillment.utils.result import ErrorCode, error_response, failure, raise_for_result

logger = logging.getLogger(__name__)

router = APIRouter()
admin_router = APIRouter()


def _unauthorized():
    return error_response(failure("Unauthorized", ErrorCode.UNAUTHORIZED))


@router.post("/purchase-info")
def purchase_info(
    payload: Optional[PurchaseInfoRequest] = None,
    authorization: Optional[str] = Header(None),
    service: BotGatewayService = Depends(get_bot_gateway_service),
):
    if not validate_bot_auth(authorization):
        logger.warning("Rejected bot call with invalid credentials")
        return _unauthorized()

    result = service.get_purchase_info(payload.token if payload else None)
    if not result.success:
        return error_response(result)
    return result.data


@router.post("/link")
def link_chat(
    payload: BotLinkRequest,
    authorization: Optional[str] = Header(None),
    service: PurchaseService = Depends(get_purchase_service),
):
    if not validate_bot_auth(authorization):
        logger.warning("Rejected bot link with invalid credentials")
        return _unauthorized()

    result = service.link_bot_chat(payload.token, payload.chat_id, payload.user_id)
    if not result.success:
        return error_response(result)
    purchase = result.data
    return {
        "purchase_id": purchase.id,
        "status": purchase.status.value,
        "transaction_reference": purchase.transaction_reference,
    }


@admin_router.get("")
def currency_rate(
    admin: User = Depends(require_admin),
    service: BotGatewayService = Depends(get_bot_gateway_service),
):
    return service.converter.rate_info()


@admin_router.put("")
def update_currency_rate(
    payload: CurrencyRateUpdate,
    admin: User = Depends(require_admin),
    service: BotGatewayService = Depends(get_bot_gateway_service),
):
    return raise_for_result(service.update_currency_rate(payload.rate))
