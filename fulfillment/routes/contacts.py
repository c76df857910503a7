from typing import Optional

from fastapi import APIRouter, Depends

from fulfillment.dependencies.admin import require_admin
from fulfillment.dependencies.services import get_contact_service
from fulfillment.models.user import User
from fulfillment.repositories.contact_repository import ContactRepository
from fulfillment.schemas.contact_schemas import AdminContactCreate, AdminContactUpdate
from fulfillment.services.contact_service import ContactService
from fulfillment.utils.result import raise_for_result

router = APIRouter()
admin_router = APIRouter()


def _public(contact) -> dict:
    return {
        "id": contact.id,
        "contact_type": contact.contact_type,
        "contact_value": contact.contact_value,
        "display_name": contact.display_name,
        "is_primary": contact.is_primary,
    }


# -------------------------
# PUBLIC
# -------------------------

@router.get("")
def list_contacts(service: ContactService = Depends(get_contact_service)):
    contacts = raise_for_result(service.get_active_admin_contacts())
    return [_public(c) for c in contacts]


@router.get("/by-type")
def contacts_by_type(service: ContactService = Depends(get_contact_service)):
    grouped = raise_for_result(service.get_contact_methods_by_type())
    return {kind: [_public(c) for c in contacts] for kind, contacts in grouped.items()}


@router.get("/best")
def best_contact(
    preferred: Optional[str] = None,
    service: ContactService = Depends(get_contact_service),
):
    contact = raise_for_result(service.get_best_contact_method(preferred))
    return _public(contact) if contact else None


# -------------------------
# ADMIN
# -------------------------

def _repository(service: ContactService = Depends(get_contact_service)) -> ContactRepository:
    return service.repository


@admin_router.get("")
def my_contacts(
    admin: User = Depends(require_admin),
    repository: ContactRepository = Depends(_repository),
):
    return raise_for_result(repository.get_admin_contact_info(admin.id))


@admin_router.post("", status_code=201)
def create_contact(
    payload: AdminContactCreate,
    admin: User = Depends(require_admin),
    repository: ContactRepository = Depends(_repository),
):
    return raise_for_result(repository.create_admin_contact_info(admin.id, payload.model_dump()))


@admin_router.patch("/{contact_id}")
def update_contact(
    contact_id: int,
    payload: AdminContactUpdate,
    admin: User = Depends(require_admin),
    repository: ContactRepository = Depends(_repository),
):
    return raise_for_result(
        repository.update_admin_contact_info(contact_id, payload.model_dump(exclude_unset=True))
    )


@admin_router.delete("/{contact_id}")
def delete_contact(
    contact_id: int,
    admin: User = Depends(require_admin),
    repository: ContactRepository = Depends(_repository),
):
    raise_for_result(repository.delete_admin_contact_info(contact_id))
    return {"message": "Contact deleted"}
