import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fulfillment.config import settings
from fulfillment.database import create_db_and_tables
from fulfillment.dependencies.catalog import get_catalog_repository
from fulfillment.dependencies.realtime import get_change_feed
from fulfillment.utils.background import shutdown_background_pool
from fulfillment.routes import (
    admin_notifications,
    admin_purchase_requests,
    admin_purchases,
    bot,
    contacts,
    emails,
    health,
    payment_config,
    purchase_requests,
    purchases,
    realtime,
)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Run DB creation ONLY in local
    if settings.env == "local":
        create_db_and_tables()

    feed = get_change_feed().install()
    catalog = get_catalog_repository()
    catalog.cache.start_sweeper(settings.cache_sweep_interval_seconds)
    logger.info("Fulfillment service started")
    yield
    catalog.cache.stop_sweeper()
    feed.remove()
    shutdown_background_pool()


app = FastAPI(title="Astewai Purchase Fulfillment API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.base_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(purchases.router, prefix="/purchases", tags=["Purchases"])
app.include_router(admin_purchases.router, prefix="/admin/purchases", tags=["Admin Purchases"])
app.include_router(purchase_requests.router, prefix="/purchase-requests", tags=["Purchase Requests"])
app.include_router(admin_purchase_requests.router, prefix="/admin/purchase-requests", tags=["Admin Purchase Requests"])
app.include_router(contacts.router, prefix="/contacts", tags=["Contacts"])
app.include_router(contacts.admin_router, prefix="/admin/contacts", tags=["Admin Contacts"])
app.include_router(payment_config.router, prefix="/payment-config", tags=["Payment Config"])
app.include_router(payment_config.admin_router, prefix="/admin/payment-config", tags=["Admin Payment Config"])
app.include_router(bot.router, prefix="/telegram", tags=["Bot Gateway"])
app.include_router(bot.admin_router, prefix="/admin/currency-rate", tags=["Admin Currency"])
app.include_router(emails.router, prefix="/emails", tags=["Emails"])
app.include_router(admin_notifications.router, prefix="/admin/notifications", tags=["Admin Notifications"])
app.include_router(realtime.router, prefix="/realtime", tags=["Realtime"])
app.include_router(health.router, prefix="/health", tags=["Health"])


@app.get("/")
def root():
    return {
        "purchase_endpoints": [
            "/purchases", "/purchases/mine", "/purchases/{purchase_id}",
            "/purchases/{purchase_id}/payment-proof"
        ],
        "purchase_request_endpoints": [
            "/purchase-requests", "/purchase-requests/mine", "/purchase-requests/{request_id}"
        ],
        "bot_endpoints": [
            "/telegram/purchase-info", "/telegram/link"
        ],
        "public": [
            "/contacts", "/payment-config/active", "/health/check"
        ],
        "realtime": [
            "/realtime/ws?token=<access token>"
        ],
    }
