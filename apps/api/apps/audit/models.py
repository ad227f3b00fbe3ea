"""
Audit ledger: append-only record of every security-relevant action.

Entries reference their subject by (target_table, target_id) rather than by
foreign key, so the ledger outlives the rows it describes (an allergy record
can be hard-deleted; its ALLERGY_REMOVED entry stays).

Immutability is enforced three times over:
- the repository (apps.audit.ledger.AuditLedger) only appends
- the model and its queryset refuse update/delete
- database triggers (migration 0002) reject UPDATE/DELETE from raw SQL
"""
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils import timezone


class AuditActionChoices(models.TextChoices):
    """Kinds of audited actions."""
    DISPENSE_ATTEMPT = 'DISPENSE_ATTEMPT', 'Dispense Attempt'
    DISPENSE_SUCCESS = 'DISPENSE_SUCCESS', 'Dispense Success'
    DISPENSE_BLOCKED_ALLERGY = 'DISPENSE_BLOCKED_ALLERGY', 'Dispense Blocked (Allergy)'
    STOCK_UPDATE = 'STOCK_UPDATE', 'Stock Update'
    ALLERGY_ADDED = 'ALLERGY_ADDED', 'Allergy Added'
    ALLERGY_REMOVED = 'ALLERGY_REMOVED', 'Allergy Removed'
    EPISODE_OPENED = 'EPISODE_OPENED', 'Episode Opened'
    EPISODE_CLOSED = 'EPISODE_CLOSED', 'Episode Closed'
    RECORD_VIEW = 'RECORD_VIEW', 'Record View'


class AuditEntryImmutableError(Exception):
    """Raised on any attempt to modify or delete an audit entry."""


class AuditEntryQuerySet(models.QuerySet):
    """QuerySet without bulk mutation."""

    def update(self, **kwargs):
        raise AuditEntryImmutableError('Audit entries cannot be updated')

    def delete(self):
        raise AuditEntryImmutableError('Audit entries cannot be deleted')

    def bulk_update(self, objs, fields, batch_size=None):
        raise AuditEntryImmutableError('Audit entries cannot be updated')

    def update_or_create(self, defaults=None, **kwargs):
        raise AuditEntryImmutableError('Audit entries cannot be updated')


class AuditEntry(models.Model):
    """
    One immutable audit ledger entry.

    id is a monotonically increasing integer: entry order is append order.
    """
    id = models.BigAutoField(primary_key=True)

    actor_id = models.UUIDField(
        null=True,
        blank=True,
        db_index=True,
        help_text='Operator who performed the action (no FK: survives user deletion)'
    )
    actor_name = models.CharField(max_length=255, blank=True, default='')
    action_kind = models.CharField(max_length=40, choices=AuditActionChoices.choices)
    target_table = models.CharField(max_length=64, blank=True, default='')
    target_id = models.CharField(max_length=64, blank=True, default='')
    payload = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)

    request_id = models.CharField(max_length=64, blank=True, default='')
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True, default='')

    occurred_at = models.DateTimeField(default=timezone.now, db_index=True)

    objects = AuditEntryQuerySet.as_manager()

    class Meta:
        db_table = 'audit_entry'
        ordering = ['id']
        verbose_name = 'Audit Entry'
        verbose_name_plural = 'Audit Entries'
        indexes = [
            models.Index(fields=['target_table', 'target_id'], name='idx_audit_target'),
            models.Index(fields=['action_kind', 'occurred_at'], name='idx_audit_action_time'),
        ]

    def __str__(self):
        return f"#{self.pk} {self.action_kind} {self.target_table}:{self.target_id}"

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise AuditEntryImmutableError('Audit entries cannot be updated')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise AuditEntryImmutableError('Audit entries cannot be deleted')
