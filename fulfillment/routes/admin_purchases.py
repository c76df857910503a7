from typing import Optional

from fastapi import APIRouter, Depends, Query

from fulfillment.dependencies.admin import require_admin
from fulfillment.dependencies.services import get_purchase_service
from fulfillment.models.user import User
from fulfillment.schemas.purchase_schemas import PurchaseDecision, PurchaseRead
from fulfillment.services.purchase_service import PurchaseService
from fulfillment.services.storage_service import to_presigned_url
from fulfillment.utils.result import raise_for_result

router = APIRouter()


@router.get("")
def list_purchases(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_admin),
    service: PurchaseService = Depends(get_purchase_service),
):
    return raise_for_result(service.list_purchases(status, page, limit))


@router.get("/stats")
def purchase_stats(
    admin: User = Depends(require_admin),
    service: PurchaseService = Depends(get_purchase_service),
):
    return raise_for_result(service.get_purchase_stats())


@router.get("/{purchase_id}")
def view_purchase(
    purchase_id: int,
    admin: User = Depends(require_admin),
    service: PurchaseService = Depends(get_purchase_service),
):
    purchase = raise_for_result(service.get_purchase_for_user(purchase_id, admin))
    return {
        "purchase": PurchaseRead.model_validate(purchase),
        "payment_proof_url": (
            to_presigned_url(purchase.payment_proof_key) if purchase.payment_proof_key else None
        ),
    }


@router.post("/{purchase_id}/approve", response_model=PurchaseRead)
def approve_purchase(
    purchase_id: int,
    payload: PurchaseDecision,
    admin: User = Depends(require_admin),
    service: PurchaseService = Depends(get_purchase_service),
):
    return raise_for_result(
        service.approve_purchase(purchase_id, admin, payload.expected_updated_at, payload.admin_notes)
    )


@router.post("/{purchase_id}/reject", response_model=PurchaseRead)
def reject_purchase(
    purchase_id: int,
    payload: PurchaseDecision,
    admin: User = Depends(require_admin),
    service: PurchaseService = Depends(get_purchase_service),
):
    return raise_for_result(
        service.reject_purchase(purchase_id, admin, payload.expected_updated_at, payload.admin_notes)
    )


@router.post("/{purchase_id}/grant")
def regrant_library(
    purchase_id: int,
    admin: User = Depends(require_admin),
    service: PurchaseService = Depends(get_purchase_service),
):
    purchase = raise_for_result(service.get_purchase_for_user(purchase_id, admin))
    return {"granted_book_ids": raise_for_result(service.grant_library_access(purchase))}
