import pytest

from app import create_app
from config import TestingConfig
from models import db


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def register_user(client):
    """Register and log in a user; returns a dict with id, email and auth headers."""
    counter = {'n': 0}

    def _register(first_name='Test', last_name='User', email=None, password='password123'):
        counter['n'] += 1
        email = email or f'user{counter["n"]}@example.com'

        response = client.post('/api/auth/register', json={
            'email': email,
            'password': password,
            'first_name': first_name,
            'last_name': last_name
        })
        assert response.status_code == 201, response.get_json()

        response = client.post('/api/auth/login', json={'email': email, 'password': password})
        assert response.status_code == 200, response.get_json()
        data = response.get_json()['data']

        return {
            'id': data['user']['id'],
            'email': email,
            'password': password,
            'headers': {'Authorization': f"Bearer {data['access_token']}"}
        }

    return _register


@pytest.fixture
def create_project(client):
    def _create(owner, name='Redesign', **extra):
        response = client.post('/api/projects', json=dict(name=name, **extra), headers=owner['headers'])
        assert response.status_code == 201, response.get_json()
        return response.get_json()['data']

    return _create


@pytest.fixture
def add_member(client):
    def _add(owner, project_id, user, role='DEVELOPER'):
        response = client.post(
            f'/api/projects/{project_id}/members',
            json={'user_id': user['id'], 'role': role},
            headers=owner['headers']
        )
        assert response.status_code == 201, response.get_json()
        return response.get_json()['data']

    return _add


@pytest.fixture
def create_task(client):
    def _create(actor, project_id, title='Write the brief', **extra):
        response = client.post(
            '/api/tasks',
            json=dict(title=title, project_id=project_id, **extra),
            headers=actor['headers']
        )
        assert response.status_code == 201, response.get_json()
        return response.get_json()['data']

    return _create
