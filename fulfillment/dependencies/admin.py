import logging

from fastapi import Depends, HTTPException

from fulfillment.models.user import User
from fulfillment.utils.token import get_current_user

logger = logging.getLogger(__name__)


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        logger.warning(f"User {current_user.id} refused on an admin route")
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user


def ensure_owner_or_admin(owner_id: int, current_user: User, detail: str = "Not allowed") -> None:
    """Buyers may only read their own rows; admins read everything."""
    if owner_id != current_user.id and not current_user.is_admin:
        raise HTTPException(status_code=403, detail=detail)
