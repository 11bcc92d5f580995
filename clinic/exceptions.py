import logging

from rest_framework.views import exception_handler as drf_exception_handler
from rest_framework.response import Response

logger = logging.getLogger(__name__)


class ClinicError(Exception):
    """Business rule violation raised by the service layer."""
    code = 'clinic_error'
    status_code = 400

    def __init__(self, message: str, **detail):
        super().__init__(message)
        self.message = message
        self.detail = detail


class InsufficientStock(ClinicError):
    code = 'insufficient_stock'


class InvalidTransition(ClinicError):
    code = 'invalid_transition'


class PaymentError(ClinicError):
    code = 'payment_error'


def api_exception_handler(exc, context):
    if isinstance(exc, ClinicError):
        logger.warning('%s: %s %s', exc.code, exc.message, exc.detail or '')
        error = {'code': exc.code, 'message': exc.message}
        if exc.detail:
            error['detail'] = exc.detail
        return Response({'ok': False, 'error': error}, status=exc.status_code)
    resp = drf_exception_handler(exc, context)
    if resp is None:
        request = context.get('request')
        logger.exception('Unhandled error on %s', getattr(request, 'path', None))
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': str(exc)}}, status=500)
    # normalize response
    detail = None
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = resp.data
    return Response({'ok': False, 'error': {'code': 'api_error', 'message': detail}}, status=resp.status_code)
