import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, text

from fulfillment.database import get_session
from fulfillment.dependencies.catalog import get_catalog_repository
from fulfillment.dependencies.realtime import get_realtime_transport

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/check")
def health_check(session: Session = Depends(get_session)):
    """Liveness plus the state of the database, catalog cache and realtime hub."""
    try:
        session.exec(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError:
        logger.exception("Health check could not reach the database")
        database = "failed"

    body = {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "cache": get_catalog_repository().get_cache_stats(),
        "realtime_channels": len(get_realtime_transport().channel_names),
        "timestamp": datetime.utcnow().isoformat(),
    }
    return JSONResponse(status_code=200 if database == "ok" else 503, content=body)
