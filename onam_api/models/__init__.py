"""Models package - exports all SQLAlchemy models."""
from onam_api.models.counter import Counter
from onam_api.models.app_user import AppUser, UserRole
from onam_api.models.order import (
    Order, OrderItem, OrderStatus, PaymentMethod,
    ORDER_STATUSES, PAYMENT_METHODS, STUDENT_YEARS,
)

__all__ = [
    'Counter',
    'AppUser', 'UserRole',
    'Order', 'OrderItem', 'OrderStatus', 'PaymentMethod',
    'ORDER_STATUSES', 'PAYMENT_METHODS', 'STUDENT_YEARS',
]
