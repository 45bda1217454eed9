"""
Orders blueprint - JSON API used by the checkout page.
"""
from flask import Blueprint, jsonify, request, current_app
import logging

from onam_api.database import check_database_connection
from onam_api.decorators import require_auth, require_role
from onam_api.models import UserRole
from onam_api.schemas import parse_payload, OrderCreate, OrderStatusUpdate
from onam_api.services import order_service
from onam_api.services.rate_limit_service import rate_limit

logger = logging.getLogger(__name__)

orders_bp = Blueprint('orders', __name__, url_prefix='/api/orders')


def _send_confirmation(order_data, whatsapp_link):
    """Queue the confirmation email; failures are logged and never reach the client."""
    from onam_api.services.email_service import dispatch_order_confirmation
    try:
        dispatch_order_confirmation(current_app._get_current_object(), order_data, whatsapp_link)
    except Exception as e:
        logger.error(f"Could not dispatch confirmation email for {order_data.get('orderNumber')}: {e}")


@orders_bp.route('', methods=['POST'])
@rate_limit('order')
@check_database_connection
def create_order():
    """
    Create an order.

    Returns:
        201: order summary and WhatsApp group link
        400: validation error or total mismatch
        409: duplicate order number (retry)
        503: database unavailable
    """
    data = parse_payload(OrderCreate, request.get_json(silent=True))
    order = order_service.create_order(data)

    whatsapp_link = current_app.config.get('WHATSAPP_GROUP_LINK')
    _send_confirmation(order.to_dict(), whatsapp_link)

    return jsonify({
        'success': True,
        'message': 'Order created successfully',
        'order': order.to_summary(),
        'whatsappLink': whatsapp_link,
    }), 201


@orders_bp.route('/<order_id>', methods=['GET'])
@check_database_connection
def get_order(order_id):
    order = order_service.get_order(order_service.parse_order_id(order_id))
    return jsonify({'success': True, 'order': order.to_dict()})


@orders_bp.route('', methods=['GET'])
@check_database_connection
def list_orders():
    """Search by studentId, email and/or status (at least one is required)."""
    orders = order_service.find_orders(
        student_id=request.args.get('studentId'),
        email=request.args.get('email'),
        status=request.args.get('status'),
        limit=request.args.get('limit'),
    )
    return jsonify({
        'success': True,
        'count': len(orders),
        'orders': [order.to_dict() for order in orders],
    })


@orders_bp.route('/<order_id>/status', methods=['PATCH'])
@check_database_connection
@require_auth
@require_role(UserRole.ADMIN.value)
def update_order_status(order_id):
    order_id = order_service.parse_order_id(order_id)
    data = parse_payload(OrderStatusUpdate, request.get_json(silent=True))
    order = order_service.update_order_status(order_id, data.status)
    return jsonify({
        'success': True,
        'message': 'Order status updated successfully',
        'order': order.to_dict(),
    })
