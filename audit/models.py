"""
Audit trail for order-affecting API actions.

Every checkout, payment confirmation, cancellation and status change that
arrives over the API leaves one AuditLog row, independent of the order's own
timeline (which is customer-facing).
"""

from django.conf import settings
from django.db import models


class AuditLog(models.Model):
    """
    Record of a single API action against a storefront resource.

    Rows are append-only; admin exposes them read-only.
    """

    class Status(models.TextChoices):
        SUCCESS = 'SUCCESS', 'Success'
        FAILURE = 'FAILURE', 'Failure'
        BLOCKED = 'BLOCKED', 'Blocked'

    # Nullable for guest checkouts and gateway callbacks
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs',
        help_text="User who performed the action (null for anonymous callers)",
    )

    action = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Action type: CHECKOUT, VERIFY_PAYMENT, CANCEL, UPDATE_STATUS, etc.",
    )
    resource_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Resource type: ORDER, COUPON, etc.",
    )
    resource_id = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        help_text="ID of the affected resource (if applicable)",
    )

    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    request_path = models.CharField(max_length=500, blank=True)
    request_method = models.CharField(max_length=10, blank=True)

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.SUCCESS,
        db_index=True,
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Action-specific data in JSON format",
    )
    timestamp = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['action', 'status', 'timestamp'], name='audit_action_status_idx'),
            models.Index(fields=['resource_type', 'resource_id'], name='audit_resource_idx'),
        ]
        verbose_name = "Audit Log"
        verbose_name_plural = "Audit Logs"

    def __str__(self):
        user_str = self.user.email if self.user else "Anonymous"
        return f"{self.action} on {self.resource_type} by {user_str} at {self.timestamp}"
