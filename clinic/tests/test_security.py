from datetime import timedelta

import pytest
from django.urls import reverse
from django.utils import timezone
from rest_framework.authtoken.models import Token
from rest_framework.test import APIClient

from clinic.models import AuditEvent, User
from .conftest import PASSWORD, make_user

pytestmark = pytest.mark.django_db


def login(client, username, password=PASSWORD, **extra):
    return client.post(reverse('login_view'), {'username': username, 'password': password, **extra}, format='json')


def test_login_returns_jwt_and_legacy_token(branch):
    make_user('doc', 'doctor', branch)
    r = login(APIClient(), 'doc')
    assert r.status_code == 200
    assert r.data['token']
    assert r.data['jwt_access'] and r.data['jwt_refresh']
    assert r.data['role'] == 'doctor'
    assert r.data['branch'] == {'id': branch.id, 'name': 'Bole'}


def test_no_role_bypass_in_login():
    u = make_user('u1', 'nurse')
    r = login(APIClient(), 'u1', role='admin')
    assert r.status_code == 200
    assert r.data['role'] == 'nurse'
    u.refresh_from_db()
    assert u.role == 'nurse'


def test_bad_credentials_are_rejected_and_audited():
    make_user('u2', 'nurse')
    r = login(APIClient(), 'u2', password='wrong-password')
    assert r.status_code == 400
    assert AuditEvent.objects.filter(action='login', detail__result='fail').exists()


def test_locked_and_expired_accounts_cannot_log_in():
    make_user('locked_out', 'doctor', lock=True)
    make_user('expired', 'doctor', deadline=timezone.now() - timedelta(days=1))
    client = APIClient()
    assert login(client, 'locked_out').status_code == 403
    assert login(client, 'expired').status_code == 403


def test_existing_token_stops_working_after_lock():
    u = make_user('u3', 'reception')
    token = Token.objects.create(user=u)
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f'Token {token.key}')
    assert client.get('/api/auth/me').status_code == 200
    u.lock = True
    u.save()
    assert client.get('/api/auth/me').status_code in (401, 403)


def test_jwt_bearer_token_authenticates():
    make_user('u4', 'nurse')
    client = APIClient()
    access = login(client, 'u4').data['jwt_access']
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {access}')
    r = client.get('/api/auth/me')
    assert r.status_code == 200
    assert r.data['username'] == 'u4'


def test_non_admin_cannot_manage_users(client_for, doctor):
    client = client_for(doctor)
    assert client.get('/api/users').status_code == 403
    r = client.post('/api/users', {'username': 'x', 'password': PASSWORD, 'role': 'admin'}, format='json')
    assert r.status_code == 403


def test_admin_creates_user_with_password_policy(client_for, admin_user, branch):
    client = client_for(admin_user)
    weak = client.post('/api/users', {'username': 'newdoc', 'password': '123', 'role': 'doctor'}, format='json')
    assert weak.status_code == 400
    r = client.post('/api/users', {'username': 'newdoc', 'password': PASSWORD, 'role': 'doctor',
                                   'branchId': branch.id}, format='json')
    assert r.status_code == 201
    assert r.data['branchId'] == branch.id
    assert User.objects.get(username='newdoc').check_password(PASSWORD)


def test_only_one_lock_account(client_for, admin_user):
    client = client_for(admin_user)
    first = client.post('/api/users', {'username': 'screen', 'password': PASSWORD, 'role': 'locked'}, format='json')
    assert first.status_code == 201
    second = client.post('/api/users', {'username': 'screen2', 'password': PASSWORD, 'role': 'locked'},
                         format='json')
    assert second.status_code == 400


def test_system_lock_verify(client_for, doctor):
    client = client_for(doctor)
    assert client.post('/api/system-lock/verify', {'password': 'anything'}, format='json').status_code == 404
    make_user('screen', 'locked')
    assert client.post('/api/system-lock/verify', {'password': ''}, format='json').status_code == 400
    assert client.post('/api/system-lock/verify', {'password': 'nope-nope'}, format='json').status_code == 403
    assert client.post('/api/system-lock/verify', {'password': PASSWORD}, format='json').status_code == 200


def test_change_password_revokes_tokens():
    u = make_user('u5', 'nurse')
    Token.objects.create(user=u)
    client = APIClient()
    client.force_authenticate(user=u)
    r = client.post('/api/auth/password', {'oldPassword': PASSWORD, 'newPassword': 'An0ther-Pass!y'}, format='json')
    assert r.status_code == 200
    assert not Token.objects.filter(user=u).exists()
    u.refresh_from_db()
    assert u.check_password('An0ther-Pass!y')


def test_error_envelope_for_unauthenticated_requests():
    r = APIClient().get('/api/patients')
    assert r.status_code in (401, 403)
    assert r.data['ok'] is False
    assert r.data['error']['code'] == 'api_error'
