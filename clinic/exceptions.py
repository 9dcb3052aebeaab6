"""
API error types and the DRF exception handler.

Domain services raise the ``APIException`` subclasses below; the
handler renders every error as ``{'ok': False, 'error': {...}}``.
"""
import logging

from django.db.models import ProtectedError, RestrictedError
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException, NotFound
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)

DEPENDENTS_EXIST_MESSAGE = 'cannot delete, dependents exist'


class SchedulingConflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Doctor has a scheduling conflict at this time'
    default_code = 'scheduling_conflict'


class StaleObjectError(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Record not found or already changed'
    default_code = 'stale_object'


class DependentsExist(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = DEPENDENTS_EXIST_MESSAGE
    default_code = 'dependents_exist'


class InvalidState(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Operation not allowed in the current state'
    default_code = 'invalid_state'


class RefundLimitExceeded(InvalidState):
    default_detail = 'Refund amount exceeds the refundable amount of the payment'
    default_code = 'refund_limit_exceeded'


def api_exception_handler(exc, context):
    if isinstance(exc, (ProtectedError, RestrictedError)):
        exc = DependentsExist()
    elif isinstance(exc, Http404):
        exc = NotFound(str(exc) or None)
    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.exception('Unhandled error in %s', context.get('view'), exc_info=exc)
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': 'Internal server error'}}, status=500)
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = resp.data
    code = getattr(exc, 'default_code', 'api_error')
    if resp.status_code >= 500:
        logger.error('API error %s: %s', resp.status_code, detail)
    else:
        logger.info('API error %s (%s): %s', resp.status_code, code, detail)
    return Response({'ok': False, 'error': {'code': code, 'message': detail}}, status=resp.status_code)
