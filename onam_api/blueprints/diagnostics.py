"""
Email diagnostics blueprint.
Only registered when EMAIL_DIAGNOSTICS_ENABLED is set; never expose it publicly in production.
"""
from flask import Blueprint, jsonify, request
import logging

from onam_api.exceptions import ValidationError
from onam_api.services.email_service import (
    email_configuration_summary, verify_email_connection, send_test_email,
)

logger = logging.getLogger(__name__)

diagnostics_bp = Blueprint('diagnostics', __name__, url_prefix='/api')


@diagnostics_bp.route('/email-diagnostics')
def email_diagnostics():
    """Report SMTP settings (no secrets) without opening a connection."""
    summary = email_configuration_summary()
    recommendations = []
    if not summary['user'] or not summary['hasPassword']:
        recommendations.append('Set EMAIL_USER and EMAIL_PASSWORD (or SMTP_USER / SMTP_PASSWORD)')
    if summary['host'] == 'smtp.gmail.com':
        recommendations.append('Gmail requires 2FA and an App Password (https://myaccount.google.com/apppasswords)')
    return jsonify({
        'success': True,
        'diagnostics': summary,
        'recommendations': recommendations,
    })


@diagnostics_bp.route('/test-email')
def test_email_connection():
    """Verify the SMTP connection."""
    result = verify_email_connection()
    return jsonify(result.to_dict()), 200 if result.success else 500


@diagnostics_bp.route('/test-email-send', methods=['POST'])
def test_email_send():
    """Send a test email to the address in the JSON body (``{"to": ...}``)."""
    body = request.get_json(silent=True) or {}
    to_email = (body.get('to') or body.get('email') or '').strip()
    if not to_email or '@' not in to_email:
        raise ValidationError('A valid "to" email address is required')

    logger.info(f"[EMAIL] Diagnostic send requested for {to_email}")
    result = send_test_email(to_email)
    return jsonify(result.to_dict()), 200 if result.success else 500
