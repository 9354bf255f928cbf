import os
import tempfile

# must be set before fashionmarket.config is imported
_DB_DIR = tempfile.mkdtemp(prefix="fashionmarket-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["SMTP_HOST"] = ""

from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402

from fashionmarket.adapters.mailer import OutboxMailer, get_mailer  # noqa: E402
from fashionmarket.db import SessionLocal, init_db  # noqa: E402
from fashionmarket.main import app  # noqa: E402
from fashionmarket.repositories.product_repo import ProductRepository  # noqa: E402
from fashionmarket.services.order_service import OrderService  # noqa: E402
from fashionmarket.services.stock_service import VariantStockStore  # noqa: E402
from fashionmarket.utils.time_utils import utcnow  # noqa: E402
from fashionmarket.utils.transactions import unit_of_work  # noqa: E402

ADDRESS = {
    "full_name": "Lucía Martín",
    "address_line1": "Calle Mayor 10",
    "city": "Madrid",
    "postal_code": "28013",
    "country": "ES",
}


@pytest.fixture(autouse=True)
def fresh_db():
    init_db(reset=True)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def outbox():
    mailer = OutboxMailer()
    app.dependency_overrides[get_mailer] = lambda: mailer
    yield mailer
    app.dependency_overrides.pop(get_mailer, None)


@pytest.fixture
def make_product(db):
    """make_product(slug, price_cents, sizes=, colors=, stock={(size, color): qty} or int)"""

    def _make(slug="camisa-oxford", price_cents=4950, sizes=None, colors=None, stock=None, name=None):
        repo = ProductRepository(db)
        with unit_of_work(db):
            p = repo.create_or_update(
                slug=slug,
                name=name or slug.replace("-", " ").title(),
                price_cents=price_cents,
                sizes=sizes or [],
                colors=colors or [],
                stock=stock if isinstance(stock, int) else None,
            )
        if isinstance(stock, dict) and stock:
            VariantStockStore(db).apply_updates(
                p.id,
                [{"size": s, "color": c, "stock": q} for (s, c), q in stock.items()],
            )
        db.refresh(p)
        return p

    return _make


@pytest.fixture
def place_order(db, outbox):
    """place_order([(product, size, color, qty)], ...) through the real checkout."""
    counter = {"n": 0}

    def _place(lines, user_id="user-1", discount_cents=0, shipping_method="standard", reference=None):
        counter["n"] += 1
        svc = OrderService(db, outbox)
        return svc.create_order(
            [
                {"product_id": p.id, "size": s, "color": c, "quantity": q}
                for p, s, c, q in lines
            ],
            ADDRESS,
            reference or f"pi_test_{counter['n']}",
            discount_cents,
            customer_email="lucia@example.com",
            user_id=user_id,
            shipping_method=shipping_method,
        )

    return _place


@pytest.fixture
def delivered_order(db, outbox, place_order):
    """An order moved to delivered ``days_ago`` days before now."""

    def _deliver(lines, days_ago=1, **kwargs):
        order = place_order(lines, **kwargs)
        svc = OrderService(db, outbox)
        svc.update_status(order.id, "delivered")
        with unit_of_work(db):
            order.delivered_at = utcnow() - timedelta(days=days_ago)
        return order

    return _deliver
