import pytest
import copy
import uuid

from config import TestingConfig
from onam_api import create_app
from onam_api.database import Base, get_engine, get_session
from onam_api.models import AppUser, UserRole
from onam_api.services.auth_service import generate_token


BASE_ORDER = {
    'studentInfo': {
        'name': 'Anjali Nair',
        'studentId': 'MITADT2025001',
        'email': 'Anjali.Nair@Example.com',
        'phone': '9876543210',
        'course': 'B.Tech',
        'department': 'Computer Science',
        'year': '2nd Year',
        'hostel': 'Block A',
    },
    'orderItems': [
        {'id': 'sadya-veg', 'name': 'Onam Sadya', 'quantity': 2, 'price': 250, 'total': 500},
        {'id': 'payasam', 'name': 'Palada Payasam', 'quantity': 1, 'price': 80, 'total': 80},
    ],
    'payment': {'method': 'cash'},
    'totalAmount': 580,
    'notes': 'Vegetarian',
}


class FakeRedis:
    """Minimal in-memory stand-in for the redis commands the rate limiter uses."""

    def __init__(self):
        self.store = {}
        self.expiry = {}

    def ping(self):
        return True

    def incr(self, key):
        self.store[key] = self.store.get(key, 0) + 1
        return self.store[key]

    def expire(self, key, seconds):
        self.expiry[key] = seconds
        return True


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application instance for testing over a temporary SQLite file."""
    db_path = tmp_path_factory.mktemp('db') / 'onam-test.db'

    class _TestConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{db_path}"

    app = create_app(_TestConfig)
    app.config['TESTING'] = True
    app.config['WTF_CSRF_ENABLED'] = False
    return app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Create database session for testing."""
    session = get_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def clean_tables(app):
    """Every test starts from empty tables."""
    yield
    get_session().remove()
    with get_engine().begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture
def order_payload():
    """Factory for valid POST /api/orders bodies; keyword overrides replace top-level keys."""
    def _make(**overrides):
        payload = copy.deepcopy(BASE_ORDER)
        payload.update(overrides)
        return payload
    return _make


@pytest.fixture
def fake_redis():
    return FakeRedis()


def _create_user(app, role):
    suffix = str(uuid.uuid4())[:8]
    password = 'password123'
    with app.app_context():
        db_session = get_session()
        user = AppUser(
            email=f'{role}-{suffix}@example.com',
            student_id=f'STU-{suffix}',
            name=f'{role.title()} {suffix}',
            role=role,
            is_active=True,
        )
        user.set_password(password)
        db_session.add(user)
        db_session.commit()
        data = {
            'id': user.id,
            'email': user.email,
            'password': password,
            'token': generate_token(user),
        }
    return data


@pytest.fixture
def user(app):
    """Regular student account: dict with id, email, password and bearer token."""
    return _create_user(app, UserRole.USER.value)


@pytest.fixture
def admin(app):
    """Organiser account with the admin role."""
    return _create_user(app, UserRole.ADMIN.value)
