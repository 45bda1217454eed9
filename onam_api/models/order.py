"""Order and OrderItem models."""
import enum
from datetime import datetime

from sqlalchemy import (
    Column, BigInteger, Integer, String, Numeric, DateTime, Text, ForeignKey,
    CheckConstraint, Index, event, inspect,
)
from sqlalchemy.orm import relationship, column_property
from sqlalchemy.sql import func
from onam_api.database import Base

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntId = BigInteger().with_variant(Integer, 'sqlite')


class OrderStatus(str, enum.Enum):
    """Order lifecycle status."""
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    CANCELLED = 'cancelled'
    COMPLETED = 'completed'


class PaymentMethod(str, enum.Enum):
    """Accepted payment methods."""
    CASH = 'cash'
    UPI = 'upi'


ORDER_STATUSES = tuple(s.value for s in OrderStatus)
PAYMENT_METHODS = tuple(m.value for m in PaymentMethod)
STUDENT_YEARS = ('1st Year', '2nd Year', '3rd Year', '4th Year', 'Post Graduate')


def _money(value):
    return float(value) if value is not None else None


class Order(Base):
    """Festival registration order placed from the checkout page."""

    __tablename__ = 'festival_order'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    # active_history loads the stored value so the immutability guard can compare
    order_number = column_property(
        Column(String(64), nullable=False, unique=True, index=True), active_history=True
    )

    # Student info
    student_name = Column(String(100), nullable=False)
    student_id = Column(String(50), nullable=False)
    student_email = Column(String(100), nullable=False)
    student_phone = Column(String(10), nullable=False)
    course = Column(String(50), nullable=False)
    department = Column(String(50), nullable=False)
    year = Column(String(20), nullable=False)
    hostel = Column(String(50), nullable=True)

    # Payment
    payment_method = Column(String(10), nullable=False)
    upi_id = Column(String(50), nullable=True)
    transaction_id = Column(String(100), nullable=True)

    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    order_date = Column(DateTime(timezone=True), nullable=False, default=datetime.now)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    items = relationship(
        'OrderItem',
        back_populates='order',
        cascade='all, delete-orphan',
        order_by='OrderItem.position',
    )

    __table_args__ = (
        CheckConstraint('total_amount >= 0', name='ck_order_total_non_negative'),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name='ck_order_status_valid',
        ),
        CheckConstraint("payment_method IN ('cash', 'upi')", name='ck_order_payment_method_valid'),
        Index('ix_order_student_email', 'student_email'),
        Index('ix_order_student_id', 'student_id'),
        Index('ix_order_order_date', 'order_date'),
        Index('ix_order_status', 'status'),
    )

    @property
    def items_total(self):
        return sum((item.line_total or 0) for item in self.items)

    def to_summary(self):
        """Short representation returned right after creation."""
        return {
            'orderId': self.id,
            'orderNumber': self.order_number,
            'status': self.status,
            'totalAmount': _money(self.total_amount),
            'orderDate': self.order_date.isoformat() if self.order_date else None,
        }

    def to_dict(self):
        return {
            'id': self.id,
            'orderNumber': self.order_number,
            'studentInfo': {
                'name': self.student_name,
                'studentId': self.student_id,
                'email': self.student_email,
                'phone': self.student_phone,
                'course': self.course,
                'department': self.department,
                'year': self.year,
                'hostel': self.hostel,
            },
            'orderItems': [item.to_dict() for item in self.items],
            'payment': {
                'method': self.payment_method,
                'upiId': self.upi_id,
                'transactionId': self.transaction_id,
            },
            'totalAmount': _money(self.total_amount),
            'status': self.status,
            'orderDate': self.order_date.isoformat() if self.order_date else None,
            'notes': self.notes,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Order(id={self.id}, number='{self.order_number}', status='{self.status}', total={self.total_amount})>"


class OrderItem(Base):
    """Order line (one cart entry)."""

    __tablename__ = 'festival_order_item'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    order_id = Column(BigIntId, ForeignKey('festival_order.id', ondelete='CASCADE'), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    item_code = Column(String(50), nullable=False)
    name = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    line_total = Column(Numeric(10, 2), nullable=False)

    order = relationship('Order', back_populates='items')

    __table_args__ = (
        CheckConstraint('quantity >= 1', name='ck_order_item_quantity_positive'),
        CheckConstraint('unit_price >= 0', name='ck_order_item_price_non_negative'),
        CheckConstraint('line_total >= 0', name='ck_order_item_total_non_negative'),
    )

    def to_dict(self):
        return {
            'id': self.item_code,
            'name': self.name,
            'quantity': self.quantity,
            'price': _money(self.unit_price),
            'total': _money(self.line_total),
        }

    def __repr__(self):
        return f"<OrderItem(id={self.id}, code='{self.item_code}', qty={self.quantity})>"


@event.listens_for(Order, 'before_insert')
def assign_order_number(mapper, connection, target):
    """Allocate the order number as part of the pre-persist step."""
    if target.order_number and target.order_number.strip():
        return
    from onam_api.services.order_number_service import allocator_for_engine
    target.order_number = allocator_for_engine(connection.engine).allocate()


@event.listens_for(Order, 'before_update')
def protect_order_number(mapper, connection, target):
    """Order numbers are immutable once assigned."""
    history = inspect(target).attrs.order_number.history
    if history.deleted and history.deleted[0] and history.has_changes():
        raise ValueError(f"order_number is immutable (was {history.deleted[0]!r})")
