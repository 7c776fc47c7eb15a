"""Payment store — pooled access to the payments table.

Responsible for:
- Handing out bounded, exclusive database connections (ConnectionPool)
- Creating the payments table on first use
- Appending accepted payments and looking up duplicates
- Window aggregates (count / sum) for the stats engine
- The retention sweep

Every public method runs exactly one short statement on a connection
borrowed for that call only; nothing holds a connection across an HTTP
call.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

import sqlalchemy as sa
from sqlalchemy import exc as sa_exc

from payhook.errors import StorageError
from payhook.models.payment import Payment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentRecord:
    """A validated payment, ready to be written."""

    payment_id: str
    amount: Decimal
    currency: str
    status: str
    create_time: str
    processed_at: datetime


@dataclass(frozen=True)
class WindowTotals:
    count: int = 0
    total: Decimal = Decimal("0")


# ──────────────────────────────────────────────
# Connection Pool
# ──────────────────────────────────────────────

class ConnectionPool:
    """Bounded pool over a SQLAlchemy engine.

    Sizing comes from the engine's QueuePool (pool_size, max_overflow=0,
    pool_timeout). When every connection is checked out, acquire() blocks
    until one is returned or the timeout passes, then raises StorageError.
    A connection is never shared between two concurrent acquisitions.
    """

    def __init__(self, engine):
        self.engine = engine

    @property
    def size(self):
        """Configured pool size, or None for pools without one (e.g. StaticPool)."""
        pool_size = getattr(self.engine.pool, "size", None)
        return pool_size() if callable(pool_size) else None

    def status(self):
        return self.engine.pool.status()

    @contextmanager
    def acquire(self):
        """Yield a connection inside a transaction; commit on clean exit.

        Raises StorageError on pool timeout or any database failure.
        """
        try:
            conn = self.engine.connect()
        except sa_exc.TimeoutError as e:
            raise StorageError(
                f"Timed out waiting for a database connection ({self.status()})"
            ) from e
        except sa_exc.SQLAlchemyError as e:
            raise StorageError(f"Could not open database connection: {e}") from e

        try:
            with conn.begin():
                yield conn
        except sa_exc.SQLAlchemyError as e:
            raise StorageError(f"Database statement failed: {e}") from e
        finally:
            conn.close()


# ──────────────────────────────────────────────
# Payment Store
# ──────────────────────────────────────────────

class PaymentStore:
    """Sole owner of the payments table."""

    def __init__(self, pool):
        self.pool = pool
        self.table = Payment.__table__

    def ensure_schema(self):
        """Create the payments table (and its indexes) if it doesn't exist."""
        with self.pool.acquire() as conn:
            self.table.create(bind=conn, checkfirst=True)
        logger.info("payments table ready")

    def insert(self, record):
        """Append a payment row. Returns the generated internal id."""
        stmt = sa.insert(self.table).values(
            payment_id=record.payment_id,
            amount=record.amount,
            currency=record.currency,
            status=record.status,
            create_time=record.create_time,
            processed_at=_as_utc(record.processed_at),
        )
        with self.pool.acquire() as conn:
            result = conn.execute(stmt)
            internal_id = result.inserted_primary_key[0]

        logger.info(
            f"Stored payment {record.payment_id} as row {internal_id} "
            f"({record.amount} {record.currency})"
        )
        return internal_id

    def exists(self, payment_id):
        """True if a row with this provider payment id is already stored."""
        stmt = (
            sa.select(self.table.c.id)
            .where(self.table.c.payment_id == payment_id)
            .limit(1)
        )
        with self.pool.acquire() as conn:
            return conn.execute(stmt).first() is not None

    def query_window(self, since):
        """Count and sum of payments processed strictly after `since`."""
        stmt = sa.select(
            sa.func.count(self.table.c.id),
            sa.func.sum(self.table.c.amount),
        ).where(self.table.c.processed_at > _as_utc(since))

        with self.pool.acquire() as conn:
            count, total = conn.execute(stmt).one()

        return WindowTotals(
            count=count or 0,
            total=Decimal(str(total)) if total is not None else Decimal("0"),
        )

    def delete_older_than(self, horizon):
        """Delete payments processed strictly before `horizon`.

        Rows exactly at the horizon are kept. Returns the number of rows
        removed (0 is fine).
        """
        stmt = sa.delete(self.table).where(
            self.table.c.processed_at < _as_utc(horizon)
        )
        with self.pool.acquire() as conn:
            deleted = conn.execute(stmt).rowcount or 0

        if deleted:
            logger.info(f"Retention sweep removed {deleted} payment(s) before {horizon.isoformat()}")
        return deleted


def _as_utc(value):
    """Treat naive datetimes as UTC so comparisons match stored values."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
