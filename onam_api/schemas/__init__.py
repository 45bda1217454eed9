"""Request schemas and the helper that turns pydantic errors into API errors."""
from pydantic import ValidationError as PydanticValidationError

from onam_api.exceptions import ValidationError
from onam_api.schemas.auth import RegisterIn, LoginIn
from onam_api.schemas.order import (
    StudentInfoIn, OrderItemIn, PaymentIn, OrderCreate, OrderStatusUpdate,
    UPI_FIELDS_REQUIRED, INVALID_STATUS,
)


def _error_message(error):
    # Messages raised by our own validators are shown verbatim
    if error.get('type') == 'value_error' and error.get('ctx', {}).get('error') is not None:
        return str(error['ctx']['error'])
    return error.get('msg', 'Invalid value')


def parse_payload(schema, data):
    """
    Validate ``data`` against ``schema``.

    Raises:
        ValidationError: with one ``{field, message}`` entry per problem. The
            top-level message is the first custom validator message, if any.
    """
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')

    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        errors = []
        message = None
        for error in e.errors():
            text = _error_message(error)
            errors.append({
                'field': '.'.join(str(part) for part in error.get('loc', ())) or None,
                'message': text,
            })
            if message is None and error.get('type') == 'value_error':
                message = text
        raise ValidationError(message or 'Validation failed', errors=errors)


__all__ = [
    'parse_payload',
    'RegisterIn', 'LoginIn',
    'StudentInfoIn', 'OrderItemIn', 'PaymentIn', 'OrderCreate', 'OrderStatusUpdate',
    'UPI_FIELDS_REQUIRED', 'INVALID_STATUS',
]
