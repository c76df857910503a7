from pydantic import BaseModel
from typing import Any, Optional


class PurchaseInfoRequest(BaseModel):
    # checked by the gateway so a malformed token gets INVALID_TOKEN, not a 422
    token: Any = None


class BotLinkRequest(BaseModel):
    token: str
    chat_id: int
    user_id: Optional[int] = None


class CurrencyRateUpdate(BaseModel):
    rate: float
