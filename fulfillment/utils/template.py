from decimal import Decimal, ROUND_HALF_UP
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from fulfillment.config import settings

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"


def money(value) -> str:
    """Two-decimal amount for display; 19.999 -> '20.00'."""
    return str(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"])
)
env.filters["money"] = money


def render_template(template_path: str, **context) -> str:
    """Render with the store name and base url every email layout expects."""
    context.setdefault("store_name", settings.store_name)
    context.setdefault("base_url", settings.base_url)
    return env.get_template(template_path).render(**context)
