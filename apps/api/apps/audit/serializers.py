"""Audit serializers."""
from rest_framework import serializers
from .models import AuditEntry


class AuditEntrySerializer(serializers.ModelSerializer):
    """Read-only representation of a ledger entry."""

    class Meta:
        model = AuditEntry
        fields = [
            'id', 'actor_id', 'actor_name', 'action_kind',
            'target_table', 'target_id', 'payload',
            'request_id', 'ip_address', 'user_agent', 'occurred_at',
        ]
        read_only_fields = fields
