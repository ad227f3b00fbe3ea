"""Audit admin: read-only view of the ledger."""
from django.contrib import admin
from .models import AuditEntry


@admin.register(AuditEntry)
class AuditEntryAdmin(admin.ModelAdmin):
    list_display = ['id', 'action_kind', 'actor_name', 'target_table', 'target_id', 'occurred_at']
    list_filter = ['action_kind', 'target_table', 'occurred_at']
    search_fields = ['target_id', 'request_id', 'actor_name']
    date_hierarchy = 'occurred_at'
    ordering = ['-id']
    readonly_fields = [
        'id', 'actor_id', 'actor_name', 'action_kind', 'target_table', 'target_id',
        'payload', 'request_id', 'ip_address', 'user_agent', 'occurred_at',
    ]

    def has_add_permission(self, request):
        """Entries are written by services only."""
        return False

    def has_change_permission(self, request, obj=None):
        """
        SECURITY: The ledger is append-only, even for superusers.
        """
        return False

    def has_delete_permission(self, request, obj=None):
        return False
