import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from clinic.models import Branch, User

PASSWORD = 'Str0ng-Pass!x'


@pytest.fixture(autouse=True)
def clear_cache():
    # throttles and statistics share the default cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def branch(db):
    return Branch.objects.create(name='Bole')


@pytest.fixture
def other_branch(db):
    return Branch.objects.create(name='Piassa')


def make_user(username, role, branch=None, **extra):
    return User.objects.create_user(username=username, password=PASSWORD, role=role, branch=branch, **extra)


@pytest.fixture
def admin_user(db):
    return make_user('admin1', 'admin')


@pytest.fixture
def reception(branch):
    return make_user('reception1', 'reception', branch)


@pytest.fixture
def doctor(branch):
    return make_user('doctor1', 'doctor', branch)


@pytest.fixture
def store_keeper(branch):
    return make_user('store1', 'user', branch)


@pytest.fixture
def client_for():
    def _client(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client
    return _client
