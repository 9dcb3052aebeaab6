import pytest
from django.urls import reverse
from rest_framework.test import APIClient

from clinic.models import AuditEvent, User

pytestmark = pytest.mark.django_db


def login(client, username, password):
    return client.post(reverse('login_view'), {'username': username, 'password': password}, format='json')


def test_login_returns_token_and_role():
    User.objects.create_user(username='desk1', password='P@ssw0rd1', role='staff')
    r = login(APIClient(), 'desk1', 'P@ssw0rd1')
    assert r.status_code == 200
    assert r.data['token']
    assert r.data['user']['role'] == 'staff'
    assert AuditEvent.objects.filter(action='login', detail__result='ok').count() == 1


def test_bad_password_is_rejected_and_audited():
    User.objects.create_user(username='desk1', password='P@ssw0rd1', role='staff')
    r = login(APIClient(), 'desk1', 'wrong')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'invalid_credentials'
    assert AuditEvent.objects.filter(action='login', detail__result='fail').count() == 1


def test_no_role_bypass_in_login():
    u = User.objects.create_user(username='doc1', password='P@ssw0rd1', role='doctor')
    client = APIClient()
    r = client.post(reverse('login_view'), {'username': 'doc1', 'password': 'P@ssw0rd1', 'role': 'admin'}, format='json')
    assert r.status_code == 200
    assert r.data['user']['role'] == 'doctor'
    u.refresh_from_db()
    assert u.role == 'doctor'


def test_token_grants_access_until_logout():
    User.objects.create_user(username='desk1', password='P@ssw0rd1', role='staff')
    client = APIClient()
    token = login(client, 'desk1', 'P@ssw0rd1').data['token']
    client.credentials(HTTP_AUTHORIZATION=f'Token {token}')
    assert client.get('/api/patients').status_code == 200
    assert client.post(reverse('logout_view')).status_code == 200
    assert client.get('/api/patients').status_code == 401


def test_user_without_role_is_forbidden():
    user = User.objects.create_user(username='nobody', password='P@ssw0rd1', role='')
    client = APIClient()
    client.force_authenticate(user=user)
    assert client.get('/api/patients').status_code == 403


def test_doctor_cannot_record_payments(doctor_user, cash):
    client = APIClient()
    client.force_authenticate(user=doctor_user)
    assert client.get('/api/payments').status_code == 200
    r = client.post('/api/payments', {'invoiceId': 1, 'paymentMethodId': cash.id, 'amount': '10.00'}, format='json')
    assert r.status_code == 403


def test_only_admins_delete_alerts(doctor_user, api):
    created = api.post('/api/alerts', {'title': 'Drill', 'message': 'Test', 'level': 'low'}, format='json')
    assert created.status_code == 201
    client = APIClient()
    client.force_authenticate(user=doctor_user)
    assert client.delete(f"/api/alerts/{created.data['data']['id']}").status_code == 403
    assert api.delete(f"/api/alerts/{created.data['data']['id']}").status_code == 204


def test_login_is_throttled():
    User.objects.create_user(username='desk1', password='P@ssw0rd1', role='staff')
    client = APIClient()
    codes = [login(client, 'desk1', 'wrong').status_code for _ in range(11)]
    assert codes[:10] == [400] * 10
    assert codes[10] == 429


def test_text_fields_are_sanitised(api):
    r = api.post(
        '/api/patients',
        {'firstName': '<script>alert(1)</script>Amit', 'lastName': 'Sharma', 'email': 'amit2@example.com',
         'phoneNumber': '9812345670', 'dateOfBirth': '1985-03-14'},
        format='json',
    )
    assert r.status_code == 201
    assert '<script>' not in r.data['data']['firstName']


def test_only_admins_activate_alerts(doctor_user, api):
    created = api.post(
        '/api/alerts',
        {'title': 'Drill', 'message': 'Test', 'targetAudience': 'specific_patients', 'phoneNumbers': ['9800000001']},
        format='json',
    )
    url = f"/api/alerts/{created.data['data']['id']}/activate"
    client = APIClient()
    client.force_authenticate(user=doctor_user)
    assert client.post(url, {}, format='json').status_code == 403
