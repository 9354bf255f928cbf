import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from fashionmarket.adapters.mailer import get_mailer
from fashionmarket.db import engine

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", tags=["health"])
def health(mailer=Depends(get_mailer)):
    db_ok = False
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            db_ok = True
    except SQLAlchemyError as e:
        logger.error("health: database check failed: %s", e)

    mailer_ok = mailer.health_check()

    return {
        "status": "ok" if db_ok and mailer_ok else "degraded",
        "db": db_ok,
        "mailer": mailer_ok,
        "mailer_transport": type(mailer).__name__,
    }
