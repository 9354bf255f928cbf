import importlib
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from fashionmarket.config import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    # request handlers and the scheduler thread share the engine
    connect_args = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, future=True, echo=False, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# every module that declares tables; imported before create_all
MODEL_MODULES = [
    "fashionmarket.models.product",
    "fashionmarket.models.variant_stock",
    "fashionmarket.models.stock_notification",
    "fashionmarket.models.order",
    "fashionmarket.models.invoice",
    "fashionmarket.models.credit_note",
    "fashionmarket.models.return_request",
    "fashionmarket.models.return_item",
    "fashionmarket.models.document_sequence",
]


def init_db(reset: bool = False):
    """
    Initialize DB schema.

    With reset=True all tables are dropped and recreated (used by tests and
    by RESET_DB=1 at startup). Otherwise existing tables are left in place.
    """
    for mod in MODEL_MODULES:
        importlib.import_module(mod)

    if reset:
        logger.warning("Resetting database schema on %s", engine.url)
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized.")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
