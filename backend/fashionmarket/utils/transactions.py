import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

T = TypeVar("T")


@contextmanager
def unit_of_work(session: Session) -> Iterator[Session]:
    """
    Run the enclosed block as one committed unit.

    Commits when the block exits normally and rolls back (re-raising) on any
    exception. Only service entry points open a unit of work; helpers they
    call just flush.
    Usage:
        with unit_of_work(db):
            ... DB work ...
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


def run_with_retry(
    func: Callable[[], T],
    *,
    session: Optional[Session] = None,
    attempts: int = 3,
    backoff_base: float = 0.05,
) -> T:
    """
    Execute a DB operation, retrying on lock/deadlock failures.

    Only OperationalError is retried; everything else propagates immediately.
    With ``session`` each attempt runs in a SAVEPOINT (``begin_nested``), so a
    failed attempt is rolled back on its own and the enclosing transaction
    stays usable for the next one.
    """
    for attempt in range(attempts):
        try:
            if session is None:
                return func()
            with session.begin_nested():
                return func()
        except OperationalError:
            if attempt >= attempts - 1:
                raise
            logger.warning("retrying after OperationalError (attempt %s)", attempt + 1)
            time.sleep(backoff_base * (2**attempt))
    raise RuntimeError("unreachable")
