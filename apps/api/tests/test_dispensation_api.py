"""
POST /api/v1/clinical/dispensations/

Outcome -> HTTP status:
    success 201 | blocked 409 | stock_insufficient 409
    batch_expired 400 | episode_closed 400 | not_found 404 | internal 500
Every request, valid or not, leaves a DISPENSE_ATTEMPT entry (best effort).
"""
import uuid
from unittest.mock import patch

import pytest
from django.db import DatabaseError

from apps.audit.models import AuditActionChoices, AuditEntry
from apps.clinical.models import (
    AllergyRecord,
    AllergySeverityChoices,
    DispensationRecord,
    EpisodeStatusChoices,
)

URL = '/api/v1/clinical/dispensations/'


def _payload(episode_obj, lot_obj, quantity=1, **overrides):
    data = {
        'episode': str(episode_obj.pk),
        'lot': str(lot_obj.pk),
        'quantity': quantity,
        'dosage_instructions': '1 tablet orally, once',
    }
    data.update(overrides)
    return data


def _allergy(patient, severity):
    return AllergyRecord.objects.create(
        patient=patient,
        normalized_ingredient='dipirona sodica',
        display_allergen_name='Dipirona Sódica',
        severity=severity,
        reaction_note='Hives',
    )


@pytest.mark.django_db
class TestDispensationEndpoint:

    def test_success_201(self, nurse_client, episode, lot):
        response = nurse_client.post(URL, _payload(episode, lot, quantity=2), format='json')

        assert response.status_code == 201
        assert response.data['outcome'] == 'success'
        assert response.data['remaining_stock'] == 48
        assert response.data['dispensation']['quantity'] == 2
        assert response.data['dispensation']['lot_number'] == lot.lot_number
        assert response.data['allergy_warnings'] == []
        assert response.data['stock_alert'] is None

    def test_success_audits_attempt_then_success(self, nurse_client, episode, lot, nurse_user):
        nurse_client.post(URL, _payload(episode, lot), format='json')

        kinds = list(AuditEntry.objects.order_by('id').values_list('action_kind', flat=True))
        assert kinds == [AuditActionChoices.DISPENSE_ATTEMPT, AuditActionChoices.DISPENSE_SUCCESS]

        attempt = AuditEntry.objects.get(action_kind=AuditActionChoices.DISPENSE_ATTEMPT)
        assert attempt.actor_id == nurse_user.pk
        assert attempt.target_id == str(episode.pk)
        assert attempt.payload['lot'] == str(lot.pk)

    def test_request_id_is_stamped_on_entries(self, nurse_client, episode, lot):
        response = nurse_client.post(
            URL, _payload(episode, lot), format='json', HTTP_X_REQUEST_ID='req-dispense-1'
        )

        assert response['X-Request-ID'] == 'req-dispense-1'
        assert set(AuditEntry.objects.values_list('request_id', flat=True)) == {'req-dispense-1'}

    def test_warning_allergy_201_with_warnings(self, nurse_client, patient, episode, lot):
        _allergy(patient, AllergySeverityChoices.MODERATE)

        response = nurse_client.post(URL, _payload(episode, lot), format='json')

        assert response.status_code == 201
        assert response.data['allergy_warnings'][0]['severity'] == 'moderate'

    def test_blocked_409(self, nurse_client, patient, episode, lot):
        _allergy(patient, AllergySeverityChoices.ANAPHYLACTIC)

        response = nurse_client.post(URL, _payload(episode, lot), format='json')

        assert response.status_code == 409
        assert response.data['outcome'] == 'blocked'
        assert response.data['error_type'] == 'allergy_blocked'
        check = response.data['allergy_check']
        assert check['has_blocking_conflict'] is True
        assert check['most_severe_conflict']['severity'] == 'anaphylactic'
        assert 'Dipirona Sódica' in check['block_message']

        episode.refresh_from_db()
        assert episode.status == EpisodeStatusChoices.BLOCKED_ALLERGY
        assert not DispensationRecord.objects.exists()

    def test_insufficient_stock_409(self, nurse_client, episode, lot):
        response = nurse_client.post(URL, _payload(episode, lot, quantity=51), format='json')

        assert response.status_code == 409
        assert response.data['error_type'] == 'insufficient_stock'
        assert response.data['requested'] == 51
        assert response.data['available'] == 50

    def test_expired_lot_400(self, nurse_client, episode, medication, make_lot):
        expired = make_lot(medication, 'EXP', expires_in_days=0)

        response = nurse_client.post(URL, _payload(episode, expired), format='json')

        assert response.status_code == 400
        assert response.data['error_type'] == 'batch_expired'
        assert response.data['lot_id'] == str(expired.pk)

    def test_closed_episode_400(self, nurse_client, episode, lot):
        nurse_client.post(URL, _payload(episode, lot), format='json')

        response = nurse_client.post(URL, _payload(episode, lot), format='json')

        assert response.status_code == 400
        assert response.data['error_type'] == 'episode_closed'
        assert response.data['status'] == EpisodeStatusChoices.DISPENSED

    def test_unknown_episode_404(self, nurse_client, lot, episode):
        data = _payload(episode, lot, episode=str(uuid.uuid4()))

        response = nurse_client.post(URL, data, format='json')

        assert response.status_code == 404
        assert response.data['entity'] == 'episode'

    def test_unknown_lot_404(self, nurse_client, episode, lot):
        response = nurse_client.post(URL, _payload(episode, lot, lot=str(uuid.uuid4())), format='json')

        assert response.status_code == 404
        assert response.data['entity'] == 'lot'

    def test_internal_failure_500(self, nurse_client, episode, lot):
        with patch('apps.clinical.dispensation.AuditLedger.append', side_effect=RuntimeError('down')):
            response = nurse_client.post(URL, _payload(episode, lot), format='json')

        assert response.status_code == 500
        assert response.data['error_type'] == 'internal'
        lot.refresh_from_db()
        assert lot.quantity_available == 50


@pytest.mark.django_db
class TestDispensationInputValidation:

    @pytest.mark.parametrize('overrides', [
        {'quantity': 0},
        {'quantity': -1},
        {'dosage_instructions': '  1x '},
        {'episode': 'not-a-uuid'},
    ])
    def test_invalid_input_400(self, nurse_client, episode, lot, overrides):
        response = nurse_client.post(URL, _payload(episode, lot, **overrides), format='json')

        assert response.status_code == 400
        assert not DispensationRecord.objects.exists()

    def test_invalid_attempt_is_still_audited(self, nurse_client, episode, lot):
        nurse_client.post(URL, _payload(episode, lot, quantity=0), format='json')

        attempt = AuditEntry.objects.get()
        assert attempt.action_kind == AuditActionChoices.DISPENSE_ATTEMPT
        assert attempt.payload['quantity'] == '0'

    def test_unauthenticated_401(self, api_client, episode, lot):
        response = api_client.post(URL, _payload(episode, lot), format='json')

        assert response.status_code == 401
        assert not AuditEntry.objects.exists()


@pytest.mark.django_db
class TestBestEffortAttemptAudit:

    def test_attempt_audit_failure_does_not_block_dispensation(self, nurse_client, episode, lot):
        with patch('apps.clinical.views.AuditLedger') as ledger_cls:
            ledger_cls.return_value.append.side_effect = DatabaseError('audit store full')
            response = nurse_client.post(URL, _payload(episode, lot), format='json')

        assert response.status_code == 201
        kinds = list(AuditEntry.objects.values_list('action_kind', flat=True))
        assert kinds == [AuditActionChoices.DISPENSE_SUCCESS]


@pytest.mark.django_db
class TestDispensationRead:

    def test_retrieve_record(self, nurse_client, episode, lot):
        created = nurse_client.post(URL, _payload(episode, lot), format='json')
        record_id = created.data['dispensation']['id']

        response = nurse_client.get(f'{URL}{record_id}/')

        assert response.status_code == 200
        assert response.data['medication_name'] == 'Novalgina'
        assert response.data['allergy_check_passed'] is True

    def test_no_update_or_delete(self, nurse_client, episode, lot):
        created = nurse_client.post(URL, _payload(episode, lot), format='json')
        record_id = created.data['dispensation']['id']

        assert nurse_client.put(f'{URL}{record_id}/', {}, format='json').status_code == 405
        assert nurse_client.delete(f'{URL}{record_id}/').status_code == 405

    def test_retrieve_is_audited_as_record_view(self, nurse_client, nurse_user, episode, lot):
        created = nurse_client.post(URL, _payload(episode, lot), format='json')
        record_id = created.data['dispensation']['id']

        nurse_client.get(f'{URL}{record_id}/', HTTP_X_REQUEST_ID='req-view-1')

        view = AuditEntry.objects.get(action_kind=AuditActionChoices.RECORD_VIEW)
        assert view.target_table == DispensationRecord._meta.db_table
        assert view.target_id == record_id
        assert view.actor_id == nurse_user.pk
        assert view.request_id == 'req-view-1'
        assert view.payload == {'episode_id': str(episode.pk)}
