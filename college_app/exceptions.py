# exceptions.py
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError
from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .identity import IdentityProviderError, EmailAlreadyExists
from .models import FeeTransitionError

logger = logging.getLogger(__name__)


class Conflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Resource already exists'
    default_code = 'conflict'


class DepartmentNotAssigned(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'HOD not assigned to any department'
    default_code = 'department_not_assigned'


class UpstreamError(APIException):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'Identity provider request failed'
    default_code = 'upstream_error'


def _error_body(detail):
    """Flatten a DRF detail into {'error': str, 'details'?: ...}"""
    if isinstance(detail, (list, dict)):
        return {'error': 'Validation failed', 'details': detail}
    return {'error': str(detail)}


def api_exception_handler(exc, context):
    """
    Project-wide exception handler.
    Every failure leaves the API as {"error": str, "details"?: ...}.
    """
    if isinstance(exc, EmailAlreadyExists):
        exc = Conflict(str(exc))
    elif isinstance(exc, IdentityProviderError):
        logger.error(f"Identity provider error: {str(exc)}")
        exc = UpstreamError()
    elif isinstance(exc, FeeTransitionError):
        exc = ValidationError(str(exc))
    elif isinstance(exc, DjangoValidationError):
        exc = ValidationError(exc.message_dict if hasattr(exc, 'error_dict') else exc.messages)
    elif isinstance(exc, IntegrityError):
        logger.warning(f"Integrity error: {str(exc)}")
        exc = Conflict('Record conflicts with an existing one')

    response = exception_handler(exc, context)

    if response is None:
        view = context.get('view')
        logger.exception(f"Unhandled error in {view.__class__.__name__ if view else 'view'}: {str(exc)}")
        return Response({'error': 'Internal server error'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    detail = exc.detail if isinstance(exc, APIException) else response.data
    if isinstance(exc, ValidationError):
        if isinstance(detail, list) and len(detail) == 1:
            response.data = {'error': str(detail[0])}
        else:
            response.data = {'error': 'Validation failed', 'details': detail}
    elif isinstance(response.data, dict) and 'detail' in response.data:
        response.data = {'error': str(response.data['detail'])}
    else:
        response.data = _error_body(detail)
    return response
