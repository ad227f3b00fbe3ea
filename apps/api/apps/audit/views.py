"""Audit views: read-only ledger access."""
from rest_framework import viewsets
from rest_framework.permissions import IsAuthenticated

from .models import AuditEntry
from .serializers import AuditEntrySerializer


class AuditEntryViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Read-only ledger listing.

    Query params:
    - target_table, target_id: entries about one subject
    - action_kind: filter by action
    """
    serializer_class = AuditEntrySerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = AuditEntry.objects.all().order_by('id')
        params = self.request.query_params

        for field in ['target_table', 'target_id', 'action_kind']:
            value = params.get(field)
            if value:
                queryset = queryset.filter(**{field: value})

        return queryset
