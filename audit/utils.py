"""
Helpers for writing audit entries from API views.
"""

import logging

from .models import AuditLog

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """Return the originating client IP, honouring X-Forwarded-For."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def log_action(request, action, resource_type, resource_id, status, metadata=None):
    """
    Create an audit log entry for an API action.

    Args:
        request: HTTP request object
        action: Action type (CHECKOUT, VERIFY_PAYMENT, CANCEL, ...)
        resource_type: Type of resource (ORDER, COUPON, ...)
        resource_id: ID of the resource, if one exists
        status: AuditLog.Status value
        metadata: Additional JSON-serialisable data

    A failure to write the entry is logged and never fails the request.
    """
    try:
        user = getattr(request, 'user', None)
        AuditLog.objects.create(
            user=user if user is not None and user.is_authenticated else None,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            ip_address=get_client_ip(request),
            user_agent=request.META.get('HTTP_USER_AGENT', ''),
            request_path=request.path,
            request_method=request.method,
            status=status,
            metadata=metadata or {},
        )
    except Exception as e:
        logger.error(f"Error writing audit log for {action} {resource_type}: {e}")
