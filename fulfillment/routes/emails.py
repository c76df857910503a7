from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from fulfillment.models.user import User
from fulfillment.notifications import dispatch_email
from fulfillment.schemas.email_schemas import EmailSendRequest
from fulfillment.utils.token import get_optional_user

router = APIRouter()


@router.post("/send")
def send_email(
    payload: EmailSendRequest,
    current_user: Optional[User] = Depends(get_optional_user),
):
    result = dispatch_email(payload.type, payload.data, current_user)
    if not result.success:
        return JSONResponse(status_code=result.http_status, content={"error": result.error})
    return result.data
