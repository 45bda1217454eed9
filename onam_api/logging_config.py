"""
Logging setup and per-request tracing.

Every request gets an id (taken from ``X-Request-ID`` when the caller sends a
sane one) that is stored on ``g``, stamped on log records and echoed back in
the response headers.
"""
import logging
import re
import secrets
import sys
import time

from flask import Flask, g, has_request_context, request

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = 'X-Request-ID'
LOG_FORMAT = '%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s'

_REQUEST_ID_PATTERN = re.compile(r'^[A-Za-z0-9._-]{1,64}$')
_HANDLER_NAME = 'onam-console'


def generate_request_id() -> str:
    """16 hex characters."""
    return secrets.token_hex(8)


def get_request_id() -> str:
    if has_request_context():
        return g.get('request_id') or 'unknown'
    return '-'


class RequestIdFilter(logging.Filter):
    """Attach the current request id to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


def configure_logging(app: Flask) -> None:
    """Set the root level from LOG_LEVEL and install a single console handler."""
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if not any(h.get_name() == _HANDLER_NAME for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.addFilter(RequestIdFilter())
        root_logger.addHandler(handler)

    # Third-party loggers
    logging.getLogger('werkzeug').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(
        logging.INFO if app.config.get('SQLALCHEMY_ECHO') else logging.WARNING
    )


def init_request_tracing(app: Flask) -> None:
    """Register hooks that assign request ids and log each completed request."""

    @app.before_request
    def assign_request_id():
        incoming = request.headers.get(REQUEST_ID_HEADER, '')
        g.request_id = incoming if _REQUEST_ID_PATTERN.match(incoming) else generate_request_id()
        g.request_started_at = time.perf_counter()

    @app.after_request
    def log_request(response):
        request_id = g.get('request_id') or generate_request_id()
        response.headers[REQUEST_ID_HEADER] = request_id

        started = g.get('request_started_at')
        duration_ms = (time.perf_counter() - started) * 1000 if started else 0.0
        line = f"{request.method} {request.path} - {response.status_code} ({duration_ms:.1f}ms)"
        if response.status_code >= 400:
            logger.warning(line)
        else:
            logger.info(line)
        return response
