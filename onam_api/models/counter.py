"""Counter model - named integer sequences used for order numbers."""
from sqlalchemy import Column, String, Integer, DateTime, CheckConstraint
from sqlalchemy.sql import func
from onam_api.database import Base


class Counter(Base):
    """
    Persisted named sequence (e.g. ``order_20250911``).

    Rows are created lazily and only ever incremented atomically by
    ``OrderNumberAllocator``; they are never deleted.
    """

    __tablename__ = 'counter'

    counter_id = Column(String(64), primary_key=True)
    sequence = Column(Integer, nullable=False, default=0, server_default='0')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint('sequence >= 0', name='ck_counter_sequence_non_negative'),
    )

    def __repr__(self):
        return f"<Counter(counter_id='{self.counter_id}', sequence={self.sequence})>"
