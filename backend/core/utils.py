"""Utility functions for audit logging"""
import logging

from django.db import DatabaseError, transaction

from .models import AuditLog

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """Extract client IP address from request"""
    if not request or not hasattr(request, 'META'):
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None


def create_audit_log(request=None, action=None, model_name=None, object_id=None,
                     changes=None, user=None, object_name=None, object_reference=None,
                     sku=None, using=None):
    """
    Create an audit log entry

    Args:
        request: Django request object (for user and IP) - optional if user is provided
        action: Action type (create, update, delete, stock_inbound, ...)
        model_name: Name of the model being acted upon
        object_id: ID of the object (as string)
        changes: Dictionary of changes made
        user: Optional user override (defaults to request.user if request provided)
        object_name: Human-readable name of the object
        object_reference: Reference identifier (e.g., order id, box label)
        sku: SKU affected by the operation
        using: Database alias; the entry joins that alias' open transaction

    The insert runs in its own savepoint, so a failed audit write is rolled back
    on its own and never breaks the caller's transaction.
    """
    audit_user = None
    if user:
        audit_user = user
    elif request and hasattr(request, 'user'):
        audit_user = request.user

    if not action or not model_name or object_id is None:
        logger.warning(
            f"Audit log creation skipped: missing required fields "
            f"(action={action}, model_name={model_name}, object_id={object_id})"
        )
        return None

    try:
        with transaction.atomic(using=using):
            return AuditLog.objects.using(using).create(
                user=audit_user if audit_user and audit_user.is_authenticated else None,
                action=action,
                model_name=model_name,
                object_id=str(object_id),
                object_name=object_name,
                object_reference=object_reference,
                sku=sku,
                changes=changes or {},
                ip_address=get_client_ip(request) if request else None,
            )
    except DatabaseError as e:
        # Don't fail the main operation if audit logging fails
        logger.error(f"Failed to create audit log: {str(e)}")
        return None
