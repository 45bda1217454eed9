"""Main blueprint with health check, public config and CSRF token endpoints."""
import time
from datetime import datetime, timezone

from flask import Blueprint, jsonify, current_app
from flask_wtf.csrf import generate_csrf

from onam_api.database import is_database_available

main_bp = Blueprint('main', __name__)

_started_at = time.monotonic()


def _redis_status():
    from onam_api.services.rate_limit_service import get_rate_limiter
    limiter = get_rate_limiter()
    if not limiter.enabled:
        return 'disabled'
    return 'connected' if limiter.is_available() else 'unavailable'


@main_bp.route('/health')
def health():
    """
    Health check endpoint that validates the database connection.

    Returns:
        200: Healthy (DB connected)
        503: Unhealthy (DB unreachable)

    Redis is reported but never makes the service unhealthy.
    """
    database_ok = is_database_available()
    body = {
        'success': database_ok,
        'status': 'healthy' if database_ok else 'unhealthy',
        'message': 'Server is running' if database_ok else 'Database connection failed',
        'database': 'connected' if database_ok else 'disconnected',
        'redis': _redis_status(),
        'environment': current_app.config.get('ENV'),
        'uptime': round(time.monotonic() - _started_at, 1),
        'timestamp': datetime.now(timezone.utc).isoformat(),
    }
    return jsonify(body), 200 if database_ok else 503


@main_bp.route('/api/config')
def public_config():
    """Settings the checkout page needs (payment, WhatsApp group, dates)."""
    cfg = current_app.config
    return jsonify({
        'success': True,
        'config': {
            'payment': {
                'upiId': cfg.get('UPI_ID'),
                'methods': list(cfg.get('PAYMENT_METHODS', ())),
            },
            'communication': {
                'whatsappGroupLink': cfg.get('WHATSAPP_GROUP_LINK'),
            },
            'order': {
                'prefix': cfg.get('ORDER_NUMBER_PREFIX'),
            },
            'dates': {
                'onamDate': cfg.get('ONAM_DATE'),
            },
        },
    })


@main_bp.route('/api/csrf-token')
def csrf_token():
    """Issue a CSRF token to send back in the X-CSRF-Token header."""
    return jsonify({
        'success': True,
        'csrfToken': generate_csrf(),
        'message': 'CSRF token generated',
    })
