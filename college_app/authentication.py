# authentication.py
import logging

from django.conf import settings
from rest_framework import authentication, exceptions

from . import identity
from .models import User

logger = logging.getLogger(__name__)


class FirebaseAuthentication(authentication.BaseAuthentication):
    """
    Authenticate requests with a Firebase ID token.

    The token is read from the ``Authorization: Bearer`` header, falling back
    to the ``firebase-token`` cookie set by the web client. The token's uid is
    mapped to a local ``User``; a verified identity without a local record is
    treated as unauthenticated.

    Cookie-borne tokens are sent by the browser on its own, so requests
    authenticated that way must also pass Django's CSRF check.
    """
    keyword = 'Bearer'

    def get_token(self, request):
        """Return ``(token, from_cookie)``; token is None when nothing was sent"""
        header = authentication.get_authorization_header(request).split()
        if header:
            if header[0].decode().lower() != self.keyword.lower():
                return None, False
            if len(header) != 2:
                raise exceptions.AuthenticationFailed('Invalid authorization header')
            return header[1].decode(), False
        return request.COOKIES.get(settings.FIREBASE_TOKEN_COOKIE), True

    def authenticate(self, request):
        token, from_cookie = self.get_token(request)
        if not token:
            return None

        try:
            claims = identity.verify_token(token)
        except identity.InvalidIdToken as e:
            logger.info(f"Rejected token: {str(e)}")
            raise exceptions.AuthenticationFailed('Invalid or expired token')

        uid = claims.get('uid') or claims.get('sub')
        try:
            user = User.objects.select_related('department').get(firebase_uid=uid)
        except User.DoesNotExist:
            logger.warning(f"Verified uid {uid} has no local user record")
            raise exceptions.AuthenticationFailed('User not found')

        if not user.is_active:
            raise exceptions.PermissionDenied('Account is deactivated')

        if from_cookie:
            self.enforce_csrf(request)

        return (user, claims)

    def enforce_csrf(self, request):
        def dummy_get_response(request):
            return None

        check = authentication.CSRFCheck(dummy_get_response)
        # populates request.META['CSRF_COOKIE'] for process_view
        check.process_request(request)
        reason = check.process_view(request, None, (), {})
        if reason:
            logger.warning(f"CSRF check failed for cookie-authenticated {request.method} {request.path}: {reason}")
            raise exceptions.PermissionDenied(f'CSRF Failed: {reason}')

    def authenticate_header(self, request):
        return self.keyword
