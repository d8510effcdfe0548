import pytest
from app import create_app
from models import db

DEFAULT_PASSWORD = 'password123'


@pytest.fixture
def app():
    app = create_app('testing')
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def auth_headers(token):
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def register(client):
    """註冊使用者,回傳 (user, headers)"""

    def _register(email, password=DEFAULT_PASSWORD, first_name='Test', last_name='User', role='member'):
        response = client.post('/auth/register', json={
            'firstName': first_name,
            'lastName': last_name,
            'email': email,
            'password': password,
            'role': role
        })
        assert response.status_code == 201, response.get_json()
        data = response.get_json()['data']
        return data['user'], auth_headers(data['token'])

    return _register


@pytest.fixture
def create_project(client):
    def _create_project(headers, name='Apollo', **extra):
        response = client.post('/projects', json=dict(name=name, **extra), headers=headers)
        assert response.status_code == 201, response.get_json()
        return response.get_json()['data']

    return _create_project


@pytest.fixture
def create_task(client):
    def _create_task(headers, title='Write docs', **extra):
        response = client.post('/tasks', json=dict(title=title, **extra), headers=headers)
        assert response.status_code == 201, response.get_json()
        return response.get_json()['data']

    return _create_task
