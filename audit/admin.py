from django.contrib import admin

from .models import AuditLog


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    """Admin interface for AuditLog model."""
    list_display = ['action', 'resource_type', 'resource_id', 'user', 'status', 'ip_address', 'timestamp']
    list_filter = ['action', 'resource_type', 'status', 'timestamp']
    search_fields = ['user__email', 'ip_address', 'action', 'resource_id']
    readonly_fields = ['timestamp', 'user', 'action', 'resource_type', 'resource_id',
                       'ip_address', 'user_agent', 'request_path', 'request_method',
                       'status', 'metadata']
    date_hierarchy = 'timestamp'

    def has_add_permission(self, request):
        return False
