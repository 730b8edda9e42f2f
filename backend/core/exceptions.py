"""
Error taxonomy for the shipment ledger and the project-wide DRF exception handler.

Every ledger error is an ``APIException`` so views can let them propagate and
DRF renders the right status code. Storage errors carry a generic message; the
underlying database error is chained (``raise ... from exc``) and logged, never
returned to the client.
"""
import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class LedgerError(APIException):
    """Base class for shipment ledger failures."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Shipment operation failed.'
    default_code = 'ledger_error'

    def __init__(self, detail=None, code=None, field_errors=None):
        super().__init__(detail, code)
        self.field_errors = field_errors

    def for_item(self, position):
        """Return a copy of this error naming the 1-based position of a bulk item."""
        error = self.__class__(f"Item {position}: {self.detail}", field_errors=self.field_errors)
        error.position = position
        return error


class ShipmentValidationError(LedgerError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Missing required fields'
    default_code = 'validation_error'


class NotFoundError(LedgerError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = 'not_found'


class InsufficientStockError(LedgerError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Insufficient stock for the SKU'
    default_code = 'insufficient_stock'


class ConflictError(LedgerError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Conflict.'
    default_code = 'conflict'


class StorageError(LedgerError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Internal Server Error'
    default_code = 'storage_error'


class TransientStorageError(StorageError):
    """Lock-wait timeout or deadlock reported by the database."""
    default_code = 'transient_storage_error'


def api_exception_handler(exc, context):
    """
    Wrap DRF's default handler so every error response has the shape
    ``{"success": false, "error": <message>, "details": <field errors>}``.
    """
    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, LedgerError):
        payload = {'success': False, 'error': str(exc.detail)}
        if exc.field_errors:
            payload['details'] = exc.field_errors
    elif isinstance(response.data, dict) and set(response.data) == {'detail'}:
        payload = {'success': False, 'error': str(response.data['detail'])}
    else:
        payload = {'success': False, 'error': 'Invalid request', 'details': response.data}

    if response.status_code >= 500:
        view = context.get('view') if context else None
        logger.error(f"Request failed in {view.__class__.__name__ if view else 'unknown view'}: {exc.__class__.__name__}")

    response.data = payload
    return response
