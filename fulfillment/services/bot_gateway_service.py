import hmac
import logging
from typing import Optional

from sqlmodel import Session

from fulfillment.config import settings
from fulfillment.repositories.purchase_repository import PurchaseRepository
from fulfillment.services.currency import is_valid_rate
from fulfillment.services.payment_config_service import PaymentConfigService
from fulfillment.utils.result import ErrorCode, Result, failure, success

logger = logging.getLogger(__name__)

_UNSET = object()


def validate_bot_auth(auth_header: Optional[str], secret=_UNSET) -> bool:
    """
    True only when the bearer value equals the configured bot secret.

    Fails closed: a missing header, an unset or empty server secret and a
    mismatch are all False.
    """
    if secret is _UNSET:
        secret = settings.telegram_bot_secret

    if not secret or not isinstance(auth_header, str) or not auth_header:
        return False

    supplied = auth_header[len("Bearer "):] if auth_header.startswith("Bearer ") else auth_header
    if not supplied:
        return False
    return hmac.compare_digest(supplied.encode("utf-8"), secret.encode("utf-8"))


class BotGatewayService:
    """What the payment bot may see about one purchase, given its initiation token."""

    def __init__(self, session: Session, converter=None):
        if converter is None:
            from fulfillment.dependencies.currency import get_currency_converter
            converter = get_currency_converter()
        self.purchases = PurchaseRepository(session)
        self.payment_configs = PaymentConfigService(session)
        self.converter = converter

    def get_purchase_info(self, token) -> Result:
        if not isinstance(token, str) or not token.strip():
            return failure("Invalid token", ErrorCode.INVALID_TOKEN)

        try:
            return self._purchase_info(token.strip())
        except Exception:
            logger.exception("Unexpected error while resolving purchase info")
            return failure("Internal server error", ErrorCode.INTERNAL_ERROR)

    def _purchase_info(self, token: str) -> Result:
        resolved = self.purchases.find_purchase_by_token(token)
        if not resolved.success:
            return failure("Database error", ErrorCode.DATABASE_ERROR)
        if resolved.data is None:
            return failure("Purchase not found or token expired", ErrorCode.TOKEN_NOT_FOUND)

        info = resolved.data

        options = self.payment_configs.get_active_payment_methods()
        if options.success:
            payment_options = [
                option.model_dump(mode="json", exclude={"display_order"}) for option in options.data
            ]
        else:
            logger.warning(f"Payment options unavailable for purchase {info['purchase_id']}: {options.error}")
            payment_options = []

        return success({
            "purchase": {
                "id": info["purchase_id"],
                "item_type": info["item_type"],
                "item_id": info["item_id"],
                "item_title": info["item_title"],
                "amount": float(info["amount"]),
                "amount_in_birr": float(self.converter.convert(info["amount"])),
                "currency": settings.display_currency,
                "status": info["status"],
                "transaction_reference": info["transaction_reference"],
                "user": {
                    "id": info["user_id"],
                    "email": info["user_email"],
                    "name": info["user_name"],
                },
            },
            "payment_options": payment_options,
        })

    def update_currency_rate(self, rate) -> Result:
        if not is_valid_rate(rate):
            return failure("Rate must be a positive number", ErrorCode.INVALID_RATE)
        self.converter.set_rate(rate, source="admin")
        return success(self.converter.rate_info())
