import logging
from collections import defaultdict
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional

from sqlmodel import Session

from fulfillment.constants.purchase_status import ItemType
from fulfillment.constants.request_status import ContactType, RequestStatus, can_transition_request
from fulfillment.models.user import User
from fulfillment.notifications import PurchaseEvent, dispatch_purchase_event
from fulfillment.repositories.contact_repository import ContactRepository
from fulfillment.utils.background import fire_and_forget
from fulfillment.utils.result import ErrorCode, Result, failure, success

logger = logging.getLogger(__name__)


def generate_purchase_request_message(request, item_title: str) -> str:
    """The text an admin reads when a buyer asks to purchase something."""
    message = f"New purchase request for {item_title} (${Decimal(str(request.amount)):.2f})"
    if request.user_message:
        message += f"\n\nUser message: {request.user_message}"
    message += f"\n\nRequest ID: {request.id}"
    return message


class ContactService:
    """
    Purchase requests: a buyer asks an admin to sell them an item by hand.

    Creation runs validate -> duplicate and target checks -> write -> admin
    notification. The notification is detached; its failure is logged and
    never fails the request.
    """

    def __init__(self, session: Session, catalog=None, dispatcher: Callable = dispatch_purchase_event,
                 executor=None, background_tasks=None):
        if catalog is None:
            from fulfillment.dependencies.catalog import get_catalog_repository
            catalog = get_catalog_repository()
        self.session = session
        self.repository = ContactRepository(session)
        self.catalog = catalog
        self.dispatcher = dispatcher
        self.executor = executor
        self.background_tasks = background_tasks

    # -------------------------
    # PURCHASE REQUESTS
    # -------------------------

    def create_purchase_request(
        self,
        user_id: int,
        item_type,
        item_id: int,
        amount,
        preferred_contact_method=None,
        user_message: Optional[str] = None,
    ) -> Result:
        try:
            item_type = ItemType(item_type)
        except ValueError:
            return failure(f"Unknown item type: {item_type}", ErrorCode.VALIDATION_ERROR)

        try:
            amount = Decimal(str(amount))
        except (InvalidOperation, ValueError):
            return failure("Amount must be a number", ErrorCode.INVALID_AMOUNT)
        if not amount.is_finite() or amount <= 0:
            return failure("Amount must be greater than zero", ErrorCode.INVALID_AMOUNT)

        if preferred_contact_method is not None:
            try:
                preferred_contact_method = ContactType(preferred_contact_method)
            except ValueError:
                return failure(
                    f"Unknown contact method: {preferred_contact_method}", ErrorCode.VALIDATION_ERROR
                )

        duplicate = self.repository.find_open_request(user_id, item_type, item_id)
        if not duplicate.success:
            return duplicate
        if duplicate.data is not None:
            return failure(
                "You already have an open request for this item", ErrorCode.DUPLICATE_REQUEST
            )

        item = self.catalog.get_item(item_type, item_id)
        if not item.success:
            return item

        created = self.repository.create_purchase_request({
            "user_id": user_id,
            "item_type": item_type,
            "item_id": item_id,
            "amount": amount,
            "preferred_contact_method": preferred_contact_method,
            "user_message": user_message,
        })
        if not created.success:
            return created

        self._notify_admins(created.data, item.data["title"])
        return created

    def _notify_admins(self, request, item_title: str) -> None:
        buyer = self.session.get(User, request.user_id)
        message = generate_purchase_request_message(request, item_title)
        user = {
            "id": request.user_id,
            "email": buyer.email if buyer else "",
            "name": buyer.display_name if buyer else "Unknown User",
        }
        fire_and_forget(
            self.dispatcher,
            executor=self.executor,
            background_tasks=self.background_tasks,
            event=PurchaseEvent.REQUEST_CREATED,
            related_id=request.id,
            user=user,
            extra={
                "admin_title": f"Purchase request for {item_title}",
                "admin_content": message,
                "admin_template": "emails/admin_purchase_request.html",
                "admin_subject": f"New purchase request #{request.id}",
                "message": message,
                "preferred_contact_method": (
                    request.preferred_contact_method.value if request.preferred_contact_method else None
                ),
            },
        )

    def get_purchase_request(self, request_id: int) -> Result:
        return self.repository.get_purchase_request_by_id(request_id)

    def get_user_purchase_requests(self, user_id: int, limit: int = 50, offset: int = 0) -> Result:
        return self.repository.get_purchase_requests(user_id=user_id, limit=limit, offset=offset)

    def list_purchase_requests(self, limit: int = 50, offset: int = 0) -> Result:
        return self.repository.get_purchase_requests(limit=limit, offset=offset)

    def update_purchase_request_status(self, request_id: int, status, admin_notes: Optional[str] = None) -> Result:
        try:
            status = RequestStatus(status)
        except ValueError:
            return failure(f"Unknown request status: {status}", ErrorCode.VALIDATION_ERROR)

        current = self.repository.get_purchase_request_by_id(request_id)
        if not current.success:
            return current

        if not can_transition_request(current.data.status, status):
            return failure(
                f"Cannot move request from {current.data.status.value} to {status.value}",
                ErrorCode.INVALID_TRANSITION,
            )

        return self.repository.update_purchase_request_status(request_id, status, admin_notes)

    def approve_purchase_request(self, request_id: int, admin_notes: Optional[str] = None) -> Result:
        return self.update_purchase_request_status(request_id, RequestStatus.approved, admin_notes)

    def reject_purchase_request(self, request_id: int, admin_notes: Optional[str] = None) -> Result:
        return self.update_purchase_request_status(request_id, RequestStatus.rejected, admin_notes)

    def complete_purchase_request(self, request_id: int, admin_notes: Optional[str] = None) -> Result:
        return self.update_purchase_request_status(request_id, RequestStatus.completed, admin_notes)

    def delete_purchase_request(self, request_id: int) -> Result:
        return self.repository.delete_purchase_request(request_id)

    def get_purchase_request_statistics(self) -> Result:
        return self.repository.get_purchase_request_stats()

    # -------------------------
    # CONTACT DIRECTORY
    # -------------------------

    def get_active_admin_contacts(self) -> Result:
        return self.repository.get_active_admin_contacts()

    def get_contact_methods_by_type(self) -> Result:
        contacts = self.repository.get_active_admin_contacts()
        if not contacts.success:
            return contacts

        grouped = defaultdict(list)
        for contact in contacts.data:
            grouped[contact.contact_type.value].append(contact)
        return success(dict(grouped))

    def get_best_contact_method(self, preferred=None) -> Result:
        """Primary contact of the preferred type, else any primary, else None."""
        contacts = self.repository.get_active_admin_contacts()
        if not contacts.success:
            return contacts

        primaries = [c for c in contacts.data if c.is_primary]
        if preferred is not None:
            try:
                preferred = ContactType(preferred)
            except ValueError:
                return failure(f"Unknown contact type: {preferred}", ErrorCode.VALIDATION_ERROR)
            for contact in primaries:
                if contact.contact_type == preferred:
                    return success(contact)
        return success(primaries[0] if primaries else None)
