import pytest
from sqlalchemy.exc import OperationalError

from fashionmarket.utils.transactions import run_with_retry


def _locked():
    return OperationalError("UPDATE products", {}, Exception("database is locked"))


def test_failed_attempt_rolls_back_to_savepoint(db, make_product):
    p = make_product(slug="gorro", stock=3)
    p.name = "Gorro de lana"
    db.flush()
    calls = []

    def op():
        calls.append(1)
        p.stock = 10 * len(calls)
        db.flush()
        if len(calls) == 1:
            raise _locked()
        return p.stock

    assert run_with_retry(op, session=db, backoff_base=0) == 20
    db.commit()
    db.refresh(p)
    assert (p.name, p.stock) == ("Gorro de lana", 20)


def test_retries_are_bounded():
    calls = []

    def op():
        calls.append(1)
        raise _locked()

    with pytest.raises(OperationalError):
        run_with_retry(op, attempts=3, backoff_base=0)
    assert len(calls) == 3


def test_other_errors_are_not_retried():
    calls = []

    def op():
        calls.append(1)
        raise ValueError("bad row")

    with pytest.raises(ValueError):
        run_with_retry(op, backoff_base=0)
    assert len(calls) == 1
