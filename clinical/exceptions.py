import logging

from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from clinical.models import AppendOnlyError

logger = logging.getLogger(__name__)


class InvalidTransition(APIException):
    """The record is not in a state that allows the requested change."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'invalid state transition'
    default_code = 'invalid_transition'


def _as_lists(data):
    # field errors raised from services as plain strings get the same shape serializers produce
    if isinstance(data, dict):
        return {key: _as_lists(value) for key, value in data.items()}
    if isinstance(data, str):
        return [data]
    return data


def api_exception_handler(exc, context):
    if isinstance(exc, AppendOnlyError):
        exc = InvalidTransition(str(exc))
    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.error('unhandled API error in %s', context.get('view'), exc_info=exc)
        return Response(
            {'ok': False, 'error': {'code': 'server_error', 'message': 'Internal server error'}},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    # normalize response
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = resp.data
    if isinstance(exc, ValidationError) and isinstance(detail, dict):
        detail = _as_lists(detail)
    code = getattr(exc, 'default_code', None) or 'api_error'
    return Response({'ok': False, 'error': {'code': code, 'message': detail}}, status=resp.status_code, headers=_auth_headers(resp))


def _auth_headers(resp) -> dict:
    value = resp.headers.get('WWW-Authenticate') if hasattr(resp, 'headers') else None
    return {'WWW-Authenticate': value} if value else {}
