"""
Integration tests for authentication and authorization.
"""

import pytest

from onam_api.models import AppUser


def register(client, **overrides):
    body = {
        'email': 'Meera.Menon@Example.com',
        'password': 'secret123',
        'studentId': 'MITADT2025042',
        'name': 'Meera Menon',
    }
    body.update(overrides)
    return client.post('/api/auth/register', json=body)


class TestRegistration:
    """Test user registration flow."""

    def test_register_new_user(self, client, session):
        response = register(client)

        assert response.status_code == 201
        body = response.get_json()
        assert body['success'] is True
        assert body['token']
        assert body['user']['email'] == 'meera.menon@example.com'
        assert body['user']['role'] == 'user'
        assert 'password' not in body['user']

        user = session.query(AppUser).filter_by(email='meera.menon@example.com').first()
        assert user is not None
        assert user.check_password('secret123')

    def test_register_with_existing_email_fails(self, client):
        register(client)
        response = register(client, studentId='MITADT2025099')

        assert response.status_code == 409
        assert response.get_json()['code'] == 'USER_EXISTS'

    def test_register_with_short_password_fails(self, client):
        response = register(client, password='123')

        assert response.status_code == 400
        assert any(error['field'] == 'password' for error in response.get_json()['errors'])

    def test_register_with_invalid_email_fails(self, client):
        assert register(client, email='meera').status_code == 400


class TestLogin:
    """Test password login."""

    def test_login_success(self, client, user):
        response = client.post('/api/auth/login', json={'email': user['email'], 'password': user['password']})

        assert response.status_code == 200
        body = response.get_json()
        assert body['token']
        assert body['user']['id'] == user['id']

    def test_login_with_wrong_password_fails(self, client, user):
        response = client.post('/api/auth/login', json={'email': user['email'], 'password': 'wrongpassword'})

        assert response.status_code == 401
        assert response.get_json()['code'] == 'INVALID_CREDENTIALS'

    def test_login_inactive_user_fails(self, client, user, session):
        session.query(AppUser).filter_by(id=user['id']).update({'is_active': False})
        session.commit()

        response = client.post('/api/auth/login', json={'email': user['email'], 'password': user['password']})
        assert response.status_code == 403
        assert response.get_json()['code'] == 'USER_INACTIVE'

    def test_login_missing_fields(self, client):
        assert client.post('/api/auth/login', json={}).status_code == 400


class TestCurrentUser:
    """Test the bearer-token protected profile endpoint."""

    def test_me_with_token(self, client, user):
        response = client.get('/api/auth/me', headers={'Authorization': f"Bearer {user['token']}"})

        assert response.status_code == 200
        body = response.get_json()
        assert body['user']['email'] == user['email']
        assert body['user']['isActive'] is True

    def test_token_from_register_is_usable(self, client):
        token = register(client).get_json()['token']
        response = client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 200

    @pytest.mark.parametrize('header,code', [
        (None, 'AUTH_TOKEN_MISSING'),
        ('Bearer not-a-real-token', 'AUTH_TOKEN_INVALID'),
        ('Basic dXNlcjpwYXNz', 'AUTH_TOKEN_MISSING'),
    ])
    def test_me_rejects_bad_credentials(self, client, header, code):
        headers = {'Authorization': header} if header else {}
        response = client.get('/api/auth/me', headers=headers)

        assert response.status_code == 401
        assert response.get_json()['code'] == code

    def test_deactivated_user_token_rejected(self, client, user, session):
        session.query(AppUser).filter_by(id=user['id']).update({'is_active': False})
        session.commit()

        response = client.get('/api/auth/me', headers={'Authorization': f"Bearer {user['token']}"})
        assert response.status_code == 403

    def test_deleted_user_token_rejected(self, client, user, session):
        session.query(AppUser).filter_by(id=user['id']).delete()
        session.commit()

        response = client.get('/api/auth/me', headers={'Authorization': f"Bearer {user['token']}"})
        assert response.status_code == 401
        assert response.get_json()['code'] == 'USER_NOT_FOUND'
