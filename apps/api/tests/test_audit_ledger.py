"""
Audit ledger: append-only at every layer.

Test coverage:
1. AuditLedger.append stamps actor, target and request context
2. Entries are ordered by append (monotonic ids)
3. Model save/delete of an existing entry is refused
4. QuerySet update/delete is refused
5. Raw SQL UPDATE/DELETE is rejected by the database triggers
6. append_best_effort swallows storage failures
"""
import uuid
from unittest.mock import Mock, patch

import pytest
from django.db import DatabaseError, connection, transaction

from apps.audit.ledger import AuditContext, AuditLedger, append_best_effort
from apps.audit.models import AuditActionChoices, AuditEntry, AuditEntryImmutableError
from apps.authz.operators import Operator


@pytest.fixture
def ledger():
    return AuditLedger()


@pytest.fixture
def entry(ledger, operator):
    return ledger.append(
        AuditActionChoices.STOCK_UPDATE,
        operator=operator,
        target_table='inventory_lots',
        target_id=uuid.uuid4(),
        payload={'operation': 'LOT_RECEIVED', 'quantity_total': 100},
    )


@pytest.mark.django_db
class TestAppend:

    def test_append_records_actor_and_target(self, ledger, operator):
        target = uuid.uuid4()

        entry = ledger.append(
            AuditActionChoices.EPISODE_OPENED,
            operator=operator,
            target_table='clinical_episode',
            target_id=target,
            payload={'patient_id': 'p-1'},
        )

        assert entry.pk is not None
        assert entry.actor_id == operator.id
        assert entry.actor_name == 'Marta Nurse'
        assert entry.target_table == 'clinical_episode'
        assert entry.target_id == str(target)
        assert entry.payload == {'patient_id': 'p-1'}
        assert entry.occurred_at is not None

    def test_system_action_without_operator(self, ledger):
        entry = ledger.append(AuditActionChoices.STOCK_UPDATE, target_table='inventory_lots')

        assert entry.actor_id is None
        assert entry.actor_name == ''
        assert entry.payload == {}

    def test_request_context_is_stamped(self, ledger, operator):
        context = AuditContext(request_id='req-42', ip_address='10.0.0.7', user_agent='pytest')

        entry = ledger.append(AuditActionChoices.RECORD_VIEW, operator=operator, context=context)

        assert entry.request_id == 'req-42'
        assert entry.ip_address == '10.0.0.7'
        assert entry.user_agent == 'pytest'

    def test_context_from_request_prefers_forwarded_address(self):
        request = Mock(
            META={
                'HTTP_X_FORWARDED_FOR': '203.0.113.9, 10.0.0.1',
                'REMOTE_ADDR': '10.0.0.1',
                'HTTP_USER_AGENT': 'Mozilla/5.0',
            },
            request_id='abc',
        )

        context = AuditContext.from_request(request)

        assert context == AuditContext(request_id='abc', ip_address='203.0.113.9', user_agent='Mozilla/5.0')

    def test_entries_keep_append_order(self, ledger, operator):
        target = uuid.uuid4()
        kinds = [
            AuditActionChoices.EPISODE_OPENED,
            AuditActionChoices.DISPENSE_ATTEMPT,
            AuditActionChoices.DISPENSE_SUCCESS,
        ]
        for kind in kinds:
            ledger.append(kind, operator=operator, target_table='clinical_episode', target_id=target)

        entries = list(ledger.entries_for('clinical_episode', target))

        assert [e.action_kind for e in entries] == kinds
        assert entries[0].pk < entries[1].pk < entries[2].pk

    def test_entries_by_actor_and_latest(self, ledger, operator):
        other = Operator(id=uuid.uuid4(), display_name='Someone Else')
        ledger.append(AuditActionChoices.RECORD_VIEW, operator=operator)
        ledger.append(AuditActionChoices.RECORD_VIEW, operator=other)
        ledger.append(AuditActionChoices.STOCK_UPDATE, operator=operator)

        assert ledger.entries_by_actor(operator.id).count() == 2
        latest = list(ledger.latest(action_kind=AuditActionChoices.RECORD_VIEW))
        assert [e.actor_id for e in latest] == [other.id, operator.id]


@pytest.mark.django_db
class TestOrmImmutability:

    def test_save_existing_entry_refused(self, entry):
        entry.payload = {'operation': 'TAMPERED'}

        with pytest.raises(AuditEntryImmutableError):
            entry.save()

        assert AuditEntry.objects.get(pk=entry.pk).payload['operation'] == 'LOT_RECEIVED'

    def test_delete_instance_refused(self, entry):
        with pytest.raises(AuditEntryImmutableError):
            entry.delete()
        assert AuditEntry.objects.filter(pk=entry.pk).exists()

    def test_queryset_update_refused(self, entry):
        with pytest.raises(AuditEntryImmutableError):
            AuditEntry.objects.filter(pk=entry.pk).update(actor_name='Mallory')

    def test_queryset_delete_refused(self, entry):
        with pytest.raises(AuditEntryImmutableError):
            AuditEntry.objects.all().delete()
        assert AuditEntry.objects.count() == 1

    def test_bulk_update_refused(self, entry):
        entry.actor_name = 'Mallory'
        with pytest.raises(AuditEntryImmutableError):
            AuditEntry.objects.bulk_update([entry], ['actor_name'])


@pytest.mark.django_db
class TestDatabaseImmutability:
    """Raw SQL bypasses the ORM guards; the triggers still refuse it."""

    def test_raw_update_rejected(self, entry):
        with pytest.raises(DatabaseError):
            with transaction.atomic():
                with connection.cursor() as cursor:
                    cursor.execute(
                        'UPDATE audit_entry SET actor_name = %s WHERE id = %s',
                        ['Mallory', entry.pk]
                    )

        assert AuditEntry.objects.get(pk=entry.pk).actor_name == 'Marta Nurse'

    def test_raw_delete_rejected(self, entry):
        with pytest.raises(DatabaseError):
            with transaction.atomic():
                with connection.cursor() as cursor:
                    cursor.execute('DELETE FROM audit_entry WHERE id = %s', [entry.pk])

        assert AuditEntry.objects.filter(pk=entry.pk).exists()

    def test_raw_insert_still_allowed(self, entry):
        with connection.cursor() as cursor:
            cursor.execute(
                "INSERT INTO audit_entry (actor_name, action_kind, target_table, target_id, payload, "
                "request_id, user_agent, occurred_at) "
                "VALUES ('', 'RECORD_VIEW', '', '', '{}', '', '', CURRENT_TIMESTAMP)"
            )
        assert AuditEntry.objects.count() == 2


@pytest.mark.django_db
class TestBestEffortAppend:

    def test_success_returns_entry(self, ledger, operator):
        entry = append_best_effort(ledger, AuditActionChoices.DISPENSE_ATTEMPT, operator=operator)
        assert entry is not None
        assert entry.action_kind == AuditActionChoices.DISPENSE_ATTEMPT

    def test_failure_is_swallowed_and_logged(self, ledger, operator):
        with patch.object(AuditEntry.objects, 'create', side_effect=DatabaseError('disk full')):
            with patch('apps.audit.ledger.logger') as mock_logger:
                result = append_best_effort(
                    ledger,
                    AuditActionChoices.DISPENSE_ATTEMPT,
                    operator=operator,
                    target_table='clinical_episode',
                )

        assert result is None
        mock_logger.error.assert_called_once()
        extra = mock_logger.error.call_args.kwargs['extra']
        assert extra['event'] == 'audit_append_failed'
        assert extra['action_kind'] == AuditActionChoices.DISPENSE_ATTEMPT

    def test_failure_does_not_poison_outer_transaction(self, ledger, operator):
        with transaction.atomic():
            with patch.object(AuditEntry.objects, 'create', side_effect=DatabaseError('disk full')):
                append_best_effort(ledger, AuditActionChoices.DISPENSE_ATTEMPT, operator=operator)
            ledger.append(AuditActionChoices.RECORD_VIEW, operator=operator)

        assert AuditEntry.objects.filter(action_kind=AuditActionChoices.RECORD_VIEW).count() == 1
