from fastapi import APIRouter, Depends, File, UploadFile

from fulfillment.dependencies.services import get_purchase_service
from fulfillment.models.user import User
from fulfillment.schemas.purchase_schemas import PurchaseCreate, PurchaseInitiated, PurchaseRead
from fulfillment.services.purchase_service import PurchaseService
from fulfillment.utils.result import raise_for_result
from fulfillment.utils.token import get_current_user

router = APIRouter()


@router.post("", response_model=PurchaseInitiated, status_code=201)
def initiate_purchase(
    payload: PurchaseCreate,
    current_user: User = Depends(get_current_user),
    service: PurchaseService = Depends(get_purchase_service),
):
    return raise_for_result(
        service.initiate_purchase(current_user, payload.item_type, payload.item_id)
    )


@router.get("/mine", response_model=list[PurchaseRead])
def my_purchases(
    current_user: User = Depends(get_current_user),
    service: PurchaseService = Depends(get_purchase_service),
):
    return raise_for_result(service.get_user_purchases(current_user))


@router.get("/{purchase_id}", response_model=PurchaseRead)
def get_purchase(
    purchase_id: int,
    current_user: User = Depends(get_current_user),
    service: PurchaseService = Depends(get_purchase_service),
):
    return raise_for_result(service.get_purchase_for_user(purchase_id, current_user))


@router.post("/{purchase_id}/payment-proof", response_model=PurchaseRead)
def upload_payment_proof(
    purchase_id: int,
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    service: PurchaseService = Depends(get_purchase_service),
):
    return raise_for_result(service.submit_payment_proof(purchase_id, current_user, file))
