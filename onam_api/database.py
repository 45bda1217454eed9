"""Database configuration and initialization."""
import logging
from functools import wraps

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base

logger = logging.getLogger(__name__)

# Create SQLAlchemy base
Base = declarative_base()

# Global session and engine
engine = None
db_session = None


def _engine_options(database_uri, app):
    options = {
        'echo': app.config.get('SQLALCHEMY_ECHO', False),
        'pool_pre_ping': True,  # Enable connection health checks
    }
    if database_uri.startswith('sqlite'):
        # Concurrent writers wait on the file lock instead of failing fast
        options['connect_args'] = {'timeout': 30, 'check_same_thread': False}
    else:
        options['pool_size'] = 10
        options['max_overflow'] = 20
    return options


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine = create_engine(database_uri, **_engine_options(database_uri, app))

    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )

    Base.query = db_session.query_property()

    if app.config.get('AUTO_CREATE_TABLES'):
        # Models must be imported so their tables are registered on Base.metadata
        import onam_api.models  # noqa: F401
        try:
            Base.metadata.create_all(engine)
        except SQLAlchemyError as e:
            app.logger.error(f"Could not create tables (database unavailable?): {e}")

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def get_session():
    """Get database session."""
    return db_session


def get_engine():
    """Get the SQLAlchemy engine."""
    return engine


def is_database_available() -> bool:
    """Ping the database with a trivial query."""
    if engine is None:
        return False
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.warning(f"Database ping failed: {e}")
        return False


def check_database_connection(f):
    """
    Decorator: reject the request with 503 when the database is unreachable.

    Keeps storage outages distinct from validation and business errors.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not is_database_available():
            from flask import request
            from onam_api.exceptions import StorageUnavailableError
            logger.warning(f"Database not connected for {request.method} {request.path}")
            raise StorageUnavailableError()
        return f(*args, **kwargs)
    return decorated_function
