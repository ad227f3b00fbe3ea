"""
Audit ledger repository.

AuditLedger is the only write path to audit_entry and it can only append.
It has no update or delete method; the model and the database triggers
reject those as well.

Two ways to write:
- ledger.append(...): mandatory entries written inside a business
  transaction (dispense success/block, stock updates, allergy changes).
  Failure raises and rolls the surrounding unit back.
- append_best_effort(ledger, ...): edge entries such as DISPENSE_ATTEMPT.
  Failure is logged and swallowed; the request proceeds.
"""
from dataclasses import dataclass
from typing import Optional

from django.db import transaction

from apps.core.observability import get_sanitized_logger, metrics
from apps.core.observability.correlation import get_client_ip, get_request_id
from .models import AuditEntry

logger = get_sanitized_logger(__name__)


@dataclass(frozen=True)
class AuditContext:
    """Request metadata stamped on audit entries."""
    request_id: str = ''
    ip_address: Optional[str] = None
    user_agent: str = ''

    @classmethod
    def from_request(cls, request):
        return cls(
            request_id=getattr(request, 'request_id', None) or get_request_id() or '',
            ip_address=get_client_ip(request),
            user_agent=request.META.get('HTTP_USER_AGENT', '')[:1000],
        )


class AuditLedger:
    """Append-only access to the audit ledger."""

    def append(
        self,
        action_kind,
        operator=None,
        target_table='',
        target_id='',
        payload=None,
        context=None,
    ):
        """
        Append one entry and return it.

        operator may be None for system actions. Raises on storage failure.
        """
        context = context or AuditContext(request_id=get_request_id() or '')
        entry = AuditEntry.objects.create(
            actor_id=operator.id if operator else None,
            actor_name=operator.display_name if operator else '',
            action_kind=action_kind,
            target_table=target_table or '',
            target_id=str(target_id) if target_id else '',
            payload=payload or {},
            request_id=context.request_id or '',
            ip_address=context.ip_address,
            user_agent=context.user_agent or '',
        )
        metrics.audit_entries_total.labels(action_kind=action_kind).inc()
        return entry

    def entries_for(self, target_table, target_id):
        """Entries about one target, in append order."""
        return AuditEntry.objects.filter(
            target_table=target_table,
            target_id=str(target_id),
        ).order_by('id')

    def entries_by_actor(self, actor_id):
        return AuditEntry.objects.filter(actor_id=actor_id).order_by('id')

    def latest(self, action_kind=None, limit=50):
        queryset = AuditEntry.objects.all()
        if action_kind:
            queryset = queryset.filter(action_kind=action_kind)
        return queryset.order_by('-id')[:limit]


def append_best_effort(ledger, action_kind, **kwargs):
    """
    Append an entry without letting a failure escape.

    The append runs in its own savepoint so a storage error cannot poison an
    enclosing transaction. Returns the entry, or None if the append failed.
    """
    try:
        with transaction.atomic():
            return ledger.append(action_kind, **kwargs)
    except Exception as e:
        metrics.audit_best_effort_failures_total.labels(action_kind=action_kind).inc()
        logger.error(
            'Best-effort audit append failed',
            exc_info=True,
            extra={
                'event': 'audit_append_failed',
                'action_kind': action_kind,
                'target_table': kwargs.get('target_table', ''),
                'target_id': str(kwargs.get('target_id', '')),
                'error': str(e),
            }
        )
        return None
