"""
Authentication blueprint.
Handles registration, password login and the current-user lookup with bearer tokens.
"""
from flask import Blueprint, jsonify, request, g
import logging

from onam_api.database import check_database_connection
from onam_api.decorators import require_auth
from onam_api.schemas import parse_payload, RegisterIn, LoginIn
from onam_api.services import auth_service
from onam_api.services.rate_limit_service import rate_limit

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


@auth_bp.route('/register', methods=['POST'])
@rate_limit('light')
@check_database_connection
def register():
    data = parse_payload(RegisterIn, request.get_json(silent=True))
    user = auth_service.register_user(data)
    return jsonify({
        'success': True,
        'message': 'User registered successfully',
        'token': auth_service.generate_token(user),
        'user': user.to_dict(),
    }), 201


@auth_bp.route('/login', methods=['POST'])
@rate_limit('light')
@check_database_connection
def login():
    data = parse_payload(LoginIn, request.get_json(silent=True))
    user = auth_service.authenticate_user(data.email, data.password)
    return jsonify({
        'success': True,
        'message': 'Login successful',
        'token': auth_service.generate_token(user),
        'user': user.to_dict(),
    })


@auth_bp.route('/me', methods=['GET'])
@rate_limit('light')
@check_database_connection
@require_auth
def me():
    return jsonify({'success': True, 'user': g.current_user.to_dict(include_status=True)})
