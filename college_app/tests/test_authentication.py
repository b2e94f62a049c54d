import pytest
from rest_framework.test import APIClient

from college_app import identity
from college_app.models import Notice


ME_URL = '/api/auth/me/'
NOTICES_URL = '/api/admin/notices/'
NOTICE_PAYLOAD = {'title': 'Exam schedule', 'content': 'Final exams start on Monday.'}
CSRF_SECRET = 'a' * 32
NOTICE_PAYLOAD = {'title': 'Exam schedule', 'content': 'Final exams start on Monday.'}


@pytest.mark.django_db
class TestFirebaseAuthentication:
    def test_missing_token_is_unauthenticated(self, api_client):
        response = api_client.get(ME_URL)
        assert response.status_code == 401
        assert response['WWW-Authenticate'] == 'Bearer'
        assert 'error' in response.data

    def test_invalid_token_is_unauthenticated(self, api_client, fake_identity):
        fake_identity.verify_token.side_effect = identity.InvalidIdToken('expired')
        response = api_client.get(ME_URL, HTTP_AUTHORIZATION='Bearer bad-token')
        assert response.status_code == 401
        assert response.data == {'error': 'Invalid or expired token'}

    def test_verified_identity_without_local_user(self, api_client, fake_identity):
        fake_identity.verify_token.return_value = {'uid': 'nobody'}
        response = api_client.get(ME_URL, HTTP_AUTHORIZATION='Bearer good-token')
        assert response.status_code == 401

    def test_inactive_user_is_forbidden(self, api_client, fake_identity, student):
        student.is_active = False
        student.save()
        fake_identity.verify_token.return_value = {'uid': student.firebase_uid}
        response = api_client.get(ME_URL, HTTP_AUTHORIZATION='Bearer good-token')
        assert response.status_code == 403

    def test_bearer_token_returns_profile(self, api_client, fake_identity, hod):
        fake_identity.verify_token.return_value = {'uid': hod.firebase_uid}
        response = api_client.get(ME_URL, HTTP_AUTHORIZATION='Bearer good-token')
        assert response.status_code == 200
        assert response.data['email'] == hod.email
        assert response.data['role'] == 'HOD'
        assert response.data['department']['code'] == 'CSE'
        fake_identity.verify_token.assert_called_once_with('good-token')

    def test_cookie_token_is_accepted(self, api_client, fake_identity, principal):
        fake_identity.verify_token.return_value = {'uid': principal.firebase_uid}
        api_client.cookies['firebase-token'] = 'cookie-token'
        response = api_client.get(ME_URL)
        assert response.status_code == 200
        fake_identity.verify_token.assert_called_once_with('cookie-token')

    def test_cookie_token_write_without_csrf_token_is_forbidden(self, fake_identity, principal):
        fake_identity.verify_token.return_value = {'uid': principal.firebase_uid}
        client = APIClient(enforce_csrf_checks=True)
        client.cookies['firebase-token'] = 'cookie-token'
        response = client.post(NOTICES_URL, NOTICE_PAYLOAD, format='json')
        assert response.status_code == 403
        assert response.data['error'].startswith('CSRF Failed')
        assert not Notice.objects.exists()

    def test_cookie_token_write_with_csrf_token_is_accepted(self, fake_identity, principal):
        fake_identity.verify_token.return_value = {'uid': principal.firebase_uid}
        client = APIClient(enforce_csrf_checks=True)
        client.cookies['firebase-token'] = 'cookie-token'
        client.cookies['csrftoken'] = CSRF_SECRET
        response = client.post(NOTICES_URL, NOTICE_PAYLOAD, format='json', HTTP_X_CSRFTOKEN=CSRF_SECRET)
        assert response.status_code == 201
        assert Notice.objects.get().posted_by == principal

    def test_bearer_token_write_needs_no_csrf_token(self, fake_identity, principal):
        fake_identity.verify_token.return_value = {'uid': principal.firebase_uid}
        client = APIClient(enforce_csrf_checks=True)
        response = client.post(NOTICES_URL, NOTICE_PAYLOAD, format='json', HTTP_AUTHORIZATION='Bearer good-token')
        assert response.status_code == 201

    def test_cookie_token_read_needs_no_csrf_token(self, fake_identity, principal):
        fake_identity.verify_token.return_value = {'uid': principal.firebase_uid}
        client = APIClient(enforce_csrf_checks=True)
        client.cookies['firebase-token'] = 'cookie-token'
        assert client.get(ME_URL).status_code == 200

    def test_wrong_role_is_forbidden(self, api_client, fake_identity, student):
        fake_identity.verify_token.return_value = {'uid': student.firebase_uid}
        response = api_client.get('/api/admin/users/', HTTP_AUTHORIZATION='Bearer good-token')
        assert response.status_code == 403


@pytest.mark.django_db
def test_health_check_needs_no_token(api_client):
    response = api_client.get('/api/health/')
    assert response.status_code == 200
    assert response.data['status'] == 'healthy'
    assert response.data['database'] == 'ok'
