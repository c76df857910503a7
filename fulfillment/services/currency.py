import logging
import math
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from fulfillment.config import settings

logger = logging.getLogger(__name__)

DEFAULT_USD_TO_BIRR_RATE = Decimal("120")
MINOR_UNIT = Decimal("0.01")


def is_valid_rate(rate) -> bool:
    if rate is None or isinstance(rate, bool):
        return False
    try:
        value = float(rate)
    except (TypeError, ValueError):
        return False
    return math.isfinite(value) and value > 0


class CurrencyConverter:
    """Converts the settlement currency (USD) to the display currency (ETB)."""

    def __init__(self, rate=DEFAULT_USD_TO_BIRR_RATE, source: str = "default"):
        if not is_valid_rate(rate):
            raise ValueError(f"Invalid currency rate: {rate!r}")
        self._rate = Decimal(str(rate))
        self._source = source
        self._last_updated = datetime.utcnow()

    @classmethod
    def from_settings(cls):
        configured = settings.usd_to_birr_rate
        if is_valid_rate(configured):
            return cls(configured, source="config")
        if configured is not None:
            logger.warning(
                f"Ignoring invalid USD_TO_BIRR_RATE={configured!r}, "
                f"falling back to {DEFAULT_USD_TO_BIRR_RATE}"
            )
        return cls(DEFAULT_USD_TO_BIRR_RATE, source="default")

    @property
    def rate(self) -> Decimal:
        return self._rate

    def convert(self, amount) -> Decimal:
        """amount * rate, rounded to the display currency's minor unit."""
        try:
            value = Decimal(str(amount))
        except InvalidOperation:
            raise ValueError(f"Invalid amount: {amount!r}")
        return (value * self._rate).quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)

    def set_rate(self, rate, source: str = "admin") -> None:
        if not is_valid_rate(rate):
            raise ValueError(f"Invalid currency rate: {rate!r}")
        old = self._rate
        self._rate = Decimal(str(rate))
        self._source = source
        self._last_updated = datetime.utcnow()
        logger.info(f"Currency rate updated {old} -> {self._rate} ({source})")

    def rate_info(self) -> dict:
        return {
            "rate": self._rate,
            "source": self._source,
            "last_updated": self._last_updated,
        }
