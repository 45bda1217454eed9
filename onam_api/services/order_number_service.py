"""
Order number allocation.

Order numbers look like ``ONAM-20250911-0007``: a prefix, the local calendar
day and a per-day sequence read from the ``counter`` table. The sequence is
advanced with a single atomic ``UPDATE ... RETURNING`` so several workers (or
several service instances) can allocate concurrently without in-process locks.

Allocation never fails: if the counter store is unreachable or the first-of-day
race cannot be resolved, a timestamp + random suffix is used instead.
"""
import logging
import secrets
import string
import time
from datetime import datetime, date
from typing import Callable, Optional, Union

from flask import current_app, has_app_context
from sqlalchemy import update, insert, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from onam_api.blueprints.metrics import order_numbers_allocated_total
from onam_api.models.counter import Counter

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = 'ONAM'
DEFAULT_PADDING = 4
COUNTER_PREFIX = 'order_'

_FALLBACK_ALPHABET = string.ascii_uppercase + string.digits

counter_table = Counter.__table__


def date_prefix_for(day: Union[datetime, date]) -> str:
    """YYYYMMDD for the given (local) day."""
    return day.strftime('%Y%m%d')


def counter_id_for(day: Union[datetime, date]) -> str:
    return f"{COUNTER_PREFIX}{date_prefix_for(day)}"


def _millis() -> int:
    return int(time.time() * 1000)


class OrderNumberAllocator:
    """Allocates day-scoped sequential order numbers backed by the counter table."""

    def __init__(
        self,
        bind: Engine,
        prefix: str = DEFAULT_PREFIX,
        padding: int = DEFAULT_PADDING,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.bind = bind
        self.prefix = prefix
        self.padding = padding
        self.clock = clock or datetime.now

    def allocate(self, now: Optional[datetime] = None) -> str:
        """
        Return a new order number for ``now`` (defaults to the allocator clock).

        Never raises; counter-store failures are logged and the fallback
        scheme is used.
        """
        day = now or self.clock()
        date_prefix = date_prefix_for(day)
        counter_id = counter_id_for(day)

        sequence = None
        try:
            sequence = self.allocate_sequence(counter_id)
        except Exception as e:
            logger.warning(
                f"Counter store failure for {counter_id}, using fallback order number: {e}",
                exc_info=True,
            )

        mode = 'sequential'
        if sequence and sequence > 0:
            order_number = self.format_order_number(date_prefix, sequence)
        else:
            mode = 'fallback'
            order_number = self.fallback_order_number(date_prefix)
            logger.warning(f"Fallback order number allocated: {order_number}")

        if not order_number or not order_number.strip():
            mode = 'emergency'
            order_number = self.emergency_order_number()
            logger.error(f"Emergency order number allocated: {order_number}")

        order_numbers_allocated_total.labels(mode=mode).inc()
        return order_number

    def allocate_sequence(self, counter_id: str) -> Optional[int]:
        """
        Advance ``counter_id`` and return the new value.

        Returns None when the counter was created concurrently and the retried
        increment still found nothing. Storage errors propagate to ``allocate``.
        """
        sequence = self._increment(counter_id)
        if sequence is not None:
            return sequence

        try:
            return self._create(counter_id)
        except IntegrityError:
            # Another request created today's counter between our two statements
            logger.info(f"Counter {counter_id} created concurrently, retrying increment")
            return self._increment(counter_id)

    def current_sequence(self, counter_id: str) -> Optional[int]:
        """Read a counter without modifying it."""
        stmt = select(counter_table.c.sequence).where(counter_table.c.counter_id == counter_id)
        with self.bind.connect() as connection:
            return connection.execute(stmt).scalar_one_or_none()

    def format_order_number(self, date_prefix: str, sequence: int) -> str:
        return f"{self.prefix}-{date_prefix}-{str(sequence).zfill(self.padding)}"

    def fallback_order_number(self, date_prefix: str) -> str:
        timestamp = str(_millis())[-8:]
        suffix = ''.join(secrets.choice(_FALLBACK_ALPHABET) for _ in range(4))
        return f"{self.prefix}-{date_prefix}-{timestamp}{suffix}"

    def emergency_order_number(self) -> str:
        return f"{self.prefix or DEFAULT_PREFIX}-EMERG-{_millis()}-{secrets.token_hex(6).upper()}"

    def _increment(self, counter_id: str) -> Optional[int]:
        stmt = (
            update(counter_table)
            .where(counter_table.c.counter_id == counter_id)
            .values(sequence=counter_table.c.sequence + 1)
            .returning(counter_table.c.sequence)
        )
        with self.bind.begin() as connection:
            return connection.execute(stmt).scalar_one_or_none()

    def _create(self, counter_id: str) -> int:
        with self.bind.begin() as connection:
            connection.execute(insert(counter_table).values(counter_id=counter_id, sequence=1))
        return 1


def allocator_for_engine(engine: Engine) -> OrderNumberAllocator:
    """Build an allocator using the current app's numbering settings."""
    prefix, padding = DEFAULT_PREFIX, DEFAULT_PADDING
    if has_app_context():
        prefix = current_app.config.get('ORDER_NUMBER_PREFIX', DEFAULT_PREFIX)
        padding = current_app.config.get('ORDER_NUMBER_PADDING', DEFAULT_PADDING)
    return OrderNumberAllocator(engine, prefix=prefix, padding=padding)
