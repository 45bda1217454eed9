"""
Bearer-token decorators for API routes.

``require_auth`` loads the caller into ``g.current_user``; ``require_role``
must be applied after it.
"""
from functools import wraps

from flask import g, request

from onam_api.exceptions import AuthenticationError, ForbiddenError


def require_auth(f):
    """Decorator: require a valid ``Authorization: Bearer`` token."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        from onam_api.services.auth_service import extract_token, verify_token, get_user_by_id

        token = extract_token(request.headers.get('Authorization'))
        if not token:
            raise AuthenticationError('Access token is required', code='AUTH_TOKEN_MISSING')

        claims = verify_token(token)
        if not claims:
            raise AuthenticationError('Invalid or expired token', code='AUTH_TOKEN_INVALID')

        user = get_user_by_id(claims.get('sub'))
        if user is None:
            raise AuthenticationError('User not found', code='USER_NOT_FOUND')
        if not user.is_active:
            raise ForbiddenError('Account is deactivated', code='USER_INACTIVE')

        g.current_user = user
        return f(*args, **kwargs)
    return decorated_function


def require_role(*roles):
    """
    Decorator: require the authenticated user to hold one of ``roles``.

    Must be used AFTER require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = g.get('current_user')
            if user is None:
                raise AuthenticationError('Authentication required', code='AUTH_REQUIRED')
            if user.role not in roles:
                raise ForbiddenError()
            return f(*args, **kwargs)
        return decorated_function
    return decorator
