"""
Authentication service.

Handles account registration, password login and stateless bearer tokens.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
import logging

from onam_api.database import get_session
from onam_api.exceptions import AuthenticationError, ConflictError, ForbiddenError
from onam_api.models import AppUser, UserRole

logger = logging.getLogger(__name__)

USER_EXISTS_MESSAGE = 'User with this email or student ID already exists'


def register_user(data, role=UserRole.USER.value):
    """
    Create a new account from a validated ``RegisterIn``.

    Raises:
        ConflictError: if the email or student id is already registered
    """
    db_session = get_session()

    existing = db_session.query(AppUser).filter(
        or_(AppUser.email == data.email, AppUser.student_id == data.student_id)
    ).first()
    if existing:
        raise ConflictError(USER_EXISTS_MESSAGE, code='USER_EXISTS')

    user = AppUser(
        email=data.email,
        student_id=data.student_id,
        name=data.name,
        role=role,
        is_active=True,
    )
    user.set_password(data.password)
    db_session.add(user)

    try:
        db_session.commit()
    except IntegrityError:
        # Lost a race against a concurrent registration
        db_session.rollback()
        raise ConflictError(USER_EXISTS_MESSAGE, code='USER_EXISTS')

    logger.info(f"New user registered: {user.email} (role={user.role})")
    return user


def authenticate_user(email, password):
    """
    Check email/password and return the active user.

    Raises:
        AuthenticationError: unknown email or wrong password
        ForbiddenError: account deactivated
    """
    db_session = get_session()
    user = db_session.query(AppUser).filter_by(email=email.strip().lower()).first()

    if not user or not user.check_password(password):
        logger.warning(f"Failed login attempt for {email}")
        raise AuthenticationError('Invalid email or password', code='INVALID_CREDENTIALS')

    if not user.is_active:
        raise ForbiddenError('Account is deactivated', code='USER_INACTIVE')

    logger.info(f"User logged in: {user.email}")
    return user


def generate_token(user) -> str:
    """Issue a signed bearer token for ``user``."""
    now = datetime.now(timezone.utc)
    payload = {
        'sub': str(user.id),
        'email': user.email,
        'role': user.role,
        'iat': now,
        'exp': now + timedelta(seconds=current_app.config['JWT_EXPIRES_IN']),
    }
    return jwt.encode(
        payload,
        current_app.config['JWT_SECRET'],
        algorithm=current_app.config.get('JWT_ALGORITHM', 'HS256'),
    )


def verify_token(token: str) -> Optional[dict]:
    """Decode ``token``; returns None when it is invalid or expired."""
    try:
        return jwt.decode(
            token,
            current_app.config['JWT_SECRET'],
            algorithms=[current_app.config.get('JWT_ALGORITHM', 'HS256')],
        )
    except jwt.PyJWTError as e:
        logger.debug(f"Rejected bearer token: {e}")
        return None


def extract_token(auth_header: Optional[str]) -> Optional[str]:
    """Return the token from an ``Authorization: Bearer <token>`` header."""
    if not auth_header:
        return None
    parts = auth_header.split()
    if len(parts) != 2 or parts[0] != 'Bearer':
        return None
    return parts[1]


def get_user_by_id(user_id):
    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        return None
    return get_session().query(AppUser).filter_by(id=user_id).first()
