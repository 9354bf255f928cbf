import logging
import os
from contextlib import asynccontextmanager

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fashionmarket.api.health import router as health_router
from fashionmarket.api.routes_admin import router as admin_router
from fashionmarket.api.routes_catalogue import router as catalogue_router
from fashionmarket.api.routes_documents import router as documents_router
from fashionmarket.api.routes_order import router as order_router
from fashionmarket.api.routes_returns import router as returns_router
from fashionmarket.config import settings
from fashionmarket.db import SessionLocal, init_db
from fashionmarket.services.order_service import OrderService

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("fashionmarket")


def invoice_retry_job():
    db = SessionLocal()
    try:
        issued = OrderService(db).retry_missing_invoices()
        if issued:
            logger.info("invoice retry job issued %s invoices", issued)
    except Exception:
        # the next run tries again
        logger.exception("invoice retry job failed")
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup; RESET_DB=1 drops and recreates the schema (tests/CI)
    init_db(reset=os.environ.get("RESET_DB", "0") in ("1", "true", "True"))

    scheduler = BackgroundScheduler()
    scheduler.add_job(
        invoice_retry_job,
        "interval",
        seconds=settings.INVOICE_RETRY_INTERVAL_SECONDS,
        id="retry_missing_invoices",
    )
    scheduler.start()

    try:
        yield
    finally:
        scheduler.shutdown(wait=False)


app = FastAPI(title="FashionMarket - Backend", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router, prefix="/api", tags=["health"])

app.include_router(catalogue_router, prefix="/api/products", tags=["catalogue"])

app.include_router(order_router, prefix="/api/orders", tags=["orders"])

app.include_router(documents_router, tags=["documents"])

app.include_router(admin_router, tags=["admin"])

app.include_router(returns_router, tags=["returns"])
