from enum import Enum


class RequestStatus(str, Enum):
    pending = "pending"
    contacted = "contacted"
    approved = "approved"
    rejected = "rejected"
    completed = "completed"


class ContactType(str, Enum):
    telegram = "telegram"
    whatsapp = "whatsapp"
    email = "email"


ALLOWED_REQUEST_TRANSITIONS = {
    RequestStatus.pending: [RequestStatus.contacted, RequestStatus.rejected],
    RequestStatus.contacted: [RequestStatus.approved, RequestStatus.rejected],
    RequestStatus.approved: [RequestStatus.completed],
    RequestStatus.rejected: [],
    RequestStatus.completed: [],
}

# requests still waiting on an admin; a second one for the same item is a duplicate
OPEN_REQUEST_STATUSES = [RequestStatus.pending, RequestStatus.contacted]


def can_transition_request(current, target) -> bool:
    return RequestStatus(target) in ALLOWED_REQUEST_TRANSITIONS.get(RequestStatus(current), [])
