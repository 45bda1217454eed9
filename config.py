"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name, default='false'):
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    ENV = os.getenv('APP_ENV') or os.getenv('FLASK_ENV', 'development')
    DEBUG = os.getenv('FLASK_DEBUG', '1' if ENV == 'development' else '0') == '1'
    TESTING = False
    JSON_SORT_KEYS = False

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'onam')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'onam')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'onam')

        DATABASE_URL = (
            f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = _env_bool('SQLALCHEMY_ECHO')
    AUTO_CREATE_TABLES = _env_bool('AUTO_CREATE_TABLES', 'true')

    # Order numbering: ONAM-YYYYMMDD-XXXX
    ORDER_NUMBER_PREFIX = os.getenv('ORDER_NUMBER_PREFIX', 'ONAM')
    ORDER_NUMBER_PADDING = int(os.getenv('ORDER_NUMBER_PADDING', '4'))

    # Payment and communication (exposed through /api/config)
    UPI_ID = os.getenv('UPI_ID')
    PAYMENT_METHODS = ('cash', 'upi')
    WHATSAPP_GROUP_LINK = os.getenv('WHATSAPP_GROUP_LINK')
    ONAM_DATE = os.getenv('ONAM_DATE', '2025-09-12T00:00:00')

    # Order listing
    ORDERS_DEFAULT_LIMIT = int(os.getenv('ORDERS_DEFAULT_LIMIT', '50'))
    ORDERS_MAX_LIMIT = int(os.getenv('ORDERS_MAX_LIMIT', '100'))

    # Authentication (stateless bearer tokens)
    JWT_SECRET = os.getenv('JWT_SECRET', 'your-secret-key-change-in-production')
    JWT_ALGORITHM = os.getenv('JWT_ALGORITHM', 'HS256')
    JWT_EXPIRES_IN = int(os.getenv('JWT_EXPIRES_IN', str(7 * 24 * 3600)))  # 7 days

    # CORS
    FRONTEND_URL = os.getenv('FRONTEND_URL', 'http://localhost:5173')

    # CSRF (Flask-WTF)
    WTF_CSRF_ENABLED = _env_bool('WTF_CSRF_ENABLED', 'true')
    WTF_CSRF_TIME_LIMIT = 30 * 60
    WTF_CSRF_HEADERS = ['X-CSRF-Token', 'X-CSRFToken']
    WTF_CSRF_SSL_STRICT = False

    # Email configuration (Flask-Mail)
    MAIL_SERVER = os.getenv('SMTP_HOST') or os.getenv('EMAIL_HOST', 'smtp.gmail.com')
    MAIL_PORT = int(os.getenv('SMTP_PORT') or os.getenv('EMAIL_PORT', '587'))
    MAIL_USE_TLS = _env_bool('EMAIL_USE_TLS', 'true')
    MAIL_USE_SSL = _env_bool('EMAIL_SECURE')
    MAIL_USERNAME = (os.getenv('SMTP_USER') or os.getenv('EMAIL_USER') or '').strip()
    # Gmail app passwords are often pasted with spaces
    MAIL_PASSWORD = ''.join((os.getenv('SMTP_PASSWORD') or os.getenv('EMAIL_PASSWORD') or '').split())
    MAIL_DEFAULT_SENDER = (
        os.getenv('SMTP_FROM')
        or (f"Onam Festival - MIT ADT University <{MAIL_USERNAME}>" if MAIL_USERNAME else None)
        or 'no-reply@localhost'
    )
    MAIL_SUPPRESS_SEND = _env_bool('MAIL_SUPPRESS_SEND')
    MAIL_SEND_TIMEOUT = int(os.getenv('MAIL_SEND_TIMEOUT', '30'))  # seconds
    MAIL_ASYNC = _env_bool('MAIL_ASYNC', 'true')
    EMAIL_DIAGNOSTICS_ENABLED = _env_bool(
        'EMAIL_DIAGNOSTICS_ENABLED', 'false' if ENV == 'production' else 'true'
    )

    # Redis (rate limiting)
    REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
    RATELIMIT_ENABLED = _env_bool('RATELIMIT_ENABLED', 'true')
    RATELIMIT_KEY_PREFIX = os.getenv('RATELIMIT_KEY_PREFIX', 'onam:ratelimit')
    RATELIMITS = {
        'default': {
            'limit': int(os.getenv('RATELIMIT_DEFAULT', '100')),
            'window': 15 * 60,
            'message': 'Too many requests from this IP, please try again later.',
        },
        'light': {
            'limit': int(os.getenv('RATELIMIT_LIGHT', '30')),
            'window': 60,
            'message': 'Too many requests. Please try again later.',
        },
        'order': {
            'limit': int(os.getenv('RATELIMIT_ORDER', '10')),
            'window': 15 * 60,
            'message': 'Too many order requests. Please wait before creating another order.',
        },
    }

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')


class TestingConfig(Config):
    """Configuration used by the test suite."""

    ENV = 'testing'
    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite:///onam-test.db')
    SQLALCHEMY_ECHO = False
    AUTO_CREATE_TABLES = True
    JWT_SECRET = 'test-jwt-secret-with-at-least-32-bytes!!'
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    MAIL_USERNAME = 'festival@example.com'
    MAIL_PASSWORD = 'app-password'
    MAIL_DEFAULT_SENDER = 'Onam Festival <festival@example.com>'
    MAIL_SUPPRESS_SEND = True
    MAIL_ASYNC = False
    EMAIL_DIAGNOSTICS_ENABLED = True
    UPI_ID = 'onam-fest@ybl'
    WHATSAPP_GROUP_LINK = 'https://chat.whatsapp.com/onam-test'
