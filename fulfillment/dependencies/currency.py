from functools import lru_cache

from fulfillment.services.currency import CurrencyConverter


@lru_cache(maxsize=1)
def get_currency_converter() -> CurrencyConverter:
    return CurrencyConverter.from_settings()
