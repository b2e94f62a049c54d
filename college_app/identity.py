# identity.py
"""
Thin wrapper around firebase_admin.

All calls to the identity provider go through this module so views and
services only see the exceptions defined here and tests have one place to mock.
"""
import logging

import firebase_admin
from firebase_admin import auth, credentials, exceptions as firebase_exceptions
from django.conf import settings

logger = logging.getLogger(__name__)


class IdentityProviderError(Exception):
    """The identity provider rejected or failed a request"""


class EmailAlreadyExists(IdentityProviderError):
    """An account with this email is already registered with the provider"""


class InvalidIdToken(IdentityProviderError):
    """The presented token is missing, malformed, expired or revoked"""


_app = None


def get_app():
    global _app
    if _app is not None:
        return _app
    try:
        _app = firebase_admin.get_app()
    except ValueError:
        options = {'projectId': settings.FIREBASE_PROJECT_ID} if settings.FIREBASE_PROJECT_ID else None
        if settings.FIREBASE_CREDENTIALS:
            cred = credentials.Certificate(settings.FIREBASE_CREDENTIALS)
        else:
            cred = credentials.ApplicationDefault()
        _app = firebase_admin.initialize_app(cred, options)
        logger.info("Firebase app initialized")
    return _app


def verify_token(id_token):
    """Return the decoded claims of a valid ID token"""
    if not id_token:
        raise InvalidIdToken('No token provided')
    try:
        return auth.verify_id_token(id_token, app=get_app(), check_revoked=settings.FIREBASE_CHECK_REVOKED)
    except (auth.InvalidIdTokenError, auth.ExpiredIdTokenError, auth.RevokedIdTokenError,
            auth.UserDisabledError, ValueError) as e:
        raise InvalidIdToken(str(e)) from e
    except auth.CertificateFetchError as e:
        logger.error(f"Could not fetch token signing certificates: {str(e)}")
        raise InvalidIdToken('Token could not be verified') from e


def create_account(email, password, display_name=None):
    """Create a provider account and return its uid"""
    try:
        record = auth.create_user(email=email, password=password, display_name=display_name, app=get_app())
    except auth.EmailAlreadyExistsError as e:
        raise EmailAlreadyExists(f'Email {email} is already registered') from e
    except (firebase_exceptions.FirebaseError, ValueError) as e:
        raise IdentityProviderError(str(e)) from e
    return record.uid


def delete_account(uid):
    try:
        auth.delete_user(uid, app=get_app())
    except auth.UserNotFoundError:
        logger.warning(f"Provider account {uid} already gone")
    except (firebase_exceptions.FirebaseError, ValueError) as e:
        raise IdentityProviderError(str(e)) from e


def update_account(uid, **fields):
    """Update email / display_name / password / disabled on a provider account"""
    if not fields:
        return
    try:
        auth.update_user(uid, app=get_app(), **fields)
    except auth.EmailAlreadyExistsError as e:
        raise EmailAlreadyExists(f"Email {fields.get('email')} is already registered") from e
    except (firebase_exceptions.FirebaseError, ValueError) as e:
        raise IdentityProviderError(str(e)) from e
