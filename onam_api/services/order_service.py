"""
Order service.

Business rules for festival registrations: creation (the order number is
assigned by the pre-persist hook), lookup, search and status changes.
"""
from decimal import Decimal
import logging

from flask import current_app
from sqlalchemy.exc import IntegrityError

from onam_api.blueprints.metrics import orders_created_total
from onam_api.database import get_session
from onam_api.exceptions import ValidationError, NotFoundError, ConflictError
from onam_api.models import Order, OrderItem, ORDER_STATUSES
from onam_api.schemas.order import UPI_FIELDS_REQUIRED, INVALID_STATUS

logger = logging.getLogger(__name__)

TOTAL_TOLERANCE = Decimal('0.01')
DUPLICATE_ORDER_MESSAGE = 'Duplicate order number. Please try again.'


def _money(value):
    return Decimal(str(value)).quantize(Decimal('0.01'))


def _is_development():
    return current_app.config.get('ENV') == 'development'


def create_order(data):
    """
    Persist a new order from a validated ``OrderCreate``.

    Returns:
        Order: the committed order, with its order number assigned

    Raises:
        ValidationError: UPI references missing or item totals do not add up
        ConflictError: the allocated order number already exists (retryable)
    """
    payment = data.payment
    if payment.method == 'upi' and not (payment.upi_id and payment.transaction_id):
        raise ValidationError(UPI_FIELDS_REQUIRED)

    calculated = sum((_money(item.total) for item in data.order_items), Decimal('0'))
    provided = _money(data.total_amount)
    if abs(calculated - provided) > TOTAL_TOLERANCE:
        payload = None
        if _is_development():
            payload = {'details': {'calculated': float(calculated), 'provided': float(provided)}}
        logger.warning(f"Order total mismatch: calculated={calculated} provided={provided}")
        raise ValidationError('Total amount mismatch', payload=payload)

    student = data.student_info
    order = Order(
        student_name=student.name,
        student_id=student.student_id,
        student_email=student.email,
        student_phone=student.phone,
        course=student.course,
        department=student.department,
        year=student.year,
        hostel=student.hostel,
        payment_method=payment.method,
        upi_id=payment.upi_id,
        transaction_id=payment.transaction_id,
        total_amount=provided,
        notes=data.notes,
    )
    if data.order_date:
        order.order_date = data.order_date

    for position, item in enumerate(data.order_items):
        order.items.append(OrderItem(
            position=position,
            item_code=item.id,
            name=item.name,
            quantity=item.quantity,
            unit_price=_money(item.price),
            line_total=_money(item.total),
        ))

    db_session = get_session()
    db_session.add(order)
    try:
        db_session.commit()
    except IntegrityError as e:
        db_session.rollback()
        logger.error(f"Integrity error while saving order: {e}")
        if 'order_number' in str(e.orig):
            raise ConflictError(DUPLICATE_ORDER_MESSAGE, code='DUPLICATE_ORDER_NUMBER')
        raise

    orders_created_total.labels(payment_method=order.payment_method).inc()
    logger.info(f"Order created: {order.order_number} ({len(order.items)} items, total {order.total_amount})")
    return order


def parse_order_id(raw_id):
    """Order ids are positive integers; anything else is a 400."""
    raw_id = (raw_id or '').strip()
    if not raw_id.isdigit() or int(raw_id) <= 0:
        raise ValidationError('Invalid order ID format')
    return int(raw_id)


def get_order(order_id):
    order = get_session().query(Order).filter_by(id=order_id).first()
    if not order:
        raise NotFoundError('Order not found')
    return order


def find_orders(student_id=None, email=None, status=None, limit=None):
    """
    Search orders by student id, email and/or status, newest first.

    At least one filter is required.
    """
    student_id = (student_id or '').strip() or None
    email = (email or '').strip().lower() or None
    status = (status or '').strip() or None

    if not (student_id or email or status):
        raise ValidationError('At least one query parameter (studentId, email, or status) is required')
    if status and status not in ORDER_STATUSES:
        raise ValidationError(INVALID_STATUS)

    limit = _resolve_limit(limit)

    query = get_session().query(Order)
    if student_id:
        query = query.filter(Order.student_id == student_id)
    if email:
        query = query.filter(Order.student_email == email)
    if status:
        query = query.filter(Order.status == status)

    return query.order_by(Order.order_date.desc(), Order.id.desc()).limit(limit).all()


def _resolve_limit(limit):
    default = current_app.config.get('ORDERS_DEFAULT_LIMIT', 50)
    maximum = current_app.config.get('ORDERS_MAX_LIMIT', 100)
    if limit in (None, ''):
        return default
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        raise ValidationError('limit must be a positive integer')
    if limit < 1:
        raise ValidationError('limit must be a positive integer')
    return min(limit, maximum)


def update_order_status(order_id, status):
    if status not in ORDER_STATUSES:
        raise ValidationError(INVALID_STATUS)

    db_session = get_session()
    order = get_order(order_id)
    previous = order.status
    order.status = status
    db_session.commit()

    logger.info(f"Order {order.order_number} status changed: {previous} -> {status}")
    return order
