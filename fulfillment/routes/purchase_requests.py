from fastapi import APIRouter, Depends, Query

from fulfillment.dependencies.admin import ensure_owner_or_admin
from fulfillment.dependencies.services import get_contact_service
from fulfillment.models.user import User
from fulfillment.schemas.purchase_request_schemas import PurchaseRequestCreate
from fulfillment.services.contact_service import ContactService
from fulfillment.utils.result import raise_for_result
from fulfillment.utils.token import get_current_user

router = APIRouter()


@router.post("", status_code=201)
def create_purchase_request(
    payload: PurchaseRequestCreate,
    current_user: User = Depends(get_current_user),
    service: ContactService = Depends(get_contact_service),
):
    return raise_for_result(service.create_purchase_request(
        user_id=current_user.id,
        item_type=payload.item_type,
        item_id=payload.item_id,
        amount=payload.amount,
        preferred_contact_method=payload.preferred_contact_method,
        user_message=payload.user_message,
    ))


@router.get("/mine")
def my_purchase_requests(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    service: ContactService = Depends(get_contact_service),
):
    return raise_for_result(service.get_user_purchase_requests(current_user.id, limit, offset))


@router.get("/{request_id}")
def get_purchase_request(
    request_id: int,
    current_user: User = Depends(get_current_user),
    service: ContactService = Depends(get_contact_service),
):
    request = raise_for_result(service.get_purchase_request(request_id))
    ensure_owner_or_admin(request.user_id, current_user, "Not your purchase request")
    return request
