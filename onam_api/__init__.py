"""Flask application factory."""
from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_wtf.csrf import CSRFProtect, CSRFError
from sqlalchemy.exc import OperationalError, DisconnectionError
from werkzeug.exceptions import HTTPException
import os

from onam_api.database import init_db


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Logging and request ids first
    from onam_api.logging_config import configure_logging, init_request_tracing
    configure_logging(app)
    init_request_tracing(app)

    # CSRF protection for state-changing requests (token in X-CSRF-Token)
    csrf = CSRFProtect(app)

    # Only the frontend origin may call the API with credentials
    CORS(
        app,
        resources={r"/api/*": {"origins": app.config.get('FRONTEND_URL')}},
        supports_credentials=True,
        allow_headers=['Content-Type', 'Authorization', 'X-CSRF-Token', 'X-Request-ID'],
        expose_headers=['X-Request-ID', 'RateLimit-Limit', 'RateLimit-Remaining', 'RateLimit-Reset'],
        methods=['GET', 'POST', 'PATCH', 'PUT', 'DELETE', 'OPTIONS'],
    )

    # Error tracking in production
    if os.getenv('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=app.config.get('ENV'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Confirmation emails
    from onam_api.services.email_service import init_mail
    init_mail(app)

    # Per-IP rate limiting (Redis)
    from onam_api.services.rate_limit_service import init_rate_limiter
    init_rate_limiter(app)

    # Prometheus metrics instrumentation
    from onam_api.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: trust X-Forwarded-* from one reverse proxy (client IP for rate limits)
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=1,
            x_proto=1,
            x_host=1,
            x_port=1,
            x_prefix=0
        )

    # Initialize database
    init_db(app)

    # Error Handlers
    from onam_api.exceptions import OnamError, StorageUnavailableError
    from onam_api.services.rate_limit_service import apply_rate_limit_headers

    @app.errorhandler(OnamError)
    def handle_onam_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"OnamError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"OnamError [{error.status_code}]: {error.message}")
        response = jsonify(error.to_dict())
        response.status_code = error.status_code
        if getattr(error, 'status', None) is not None:
            apply_rate_limit_headers(response, error.status)
        return response

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({
            'success': False,
            'message': 'Invalid or missing CSRF token',
            'code': 'CSRF_TOKEN_INVALID',
        }), 403

    @app.errorhandler(OperationalError)
    @app.errorhandler(DisconnectionError)
    def handle_storage_error(error):
        app.logger.error(f"Database error: {error}")
        from onam_api.database import get_session
        get_session().rollback()
        return handle_onam_error(StorageUnavailableError())

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'success': False, 'message': 'Route not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'success': False, 'message': 'Method not allowed'}), 405

    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException):
            return jsonify({'success': False, 'message': error.description}), error.code

        app.logger.exception(f"Unhandled Exception on {request.method} {request.path}: {error}")
        message = str(error) if app.config.get('ENV') == 'development' else 'Internal server error'
        return jsonify({'success': False, 'message': message}), 500

    # Register blueprints
    from onam_api.blueprints.main import main_bp
    from onam_api.blueprints.auth import auth_bp
    from onam_api.blueprints.orders import orders_bp
    from onam_api.blueprints.metrics import metrics_bp
    from onam_api.blueprints.diagnostics import diagnostics_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(metrics_bp)

    # Auth endpoints use bearer tokens
    csrf.exempt(auth_bp)
    app.register_blueprint(auth_bp)

    if app.config.get('EMAIL_DIAGNOSTICS_ENABLED'):
        csrf.exempt(diagnostics_bp)
        app.register_blueprint(diagnostics_bp)

    # Register CLI commands
    from onam_api.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"MAIL_SERVER={app.config.get('MAIL_SERVER')}")
    app.logger.info(f"MAIL_DEFAULT_SENDER={app.config.get('MAIL_DEFAULT_SENDER')}")

    return app
