"""
Clinical API: patients, allergies, episodes and the speculative allergy check.
"""
import uuid

import pytest

from apps.audit.models import AuditActionChoices, AuditEntry
from apps.clinical.allergies import register_allergy
from apps.clinical.models import AllergyRecord, AllergySeverityChoices, EpisodeStatusChoices

BASE = '/api/v1/clinical'


@pytest.mark.django_db
class TestPatientsAPI:

    def test_create_and_list(self, nurse_client):
        response = nurse_client.post(f'{BASE}/patients/', {
            'display_name': 'Bruno Lima',
            'registration_code': '2024-0099',
            'grade': '3B',
        }, format='json')

        assert response.status_code == 201
        assert response.data['display_name'] == 'Bruno Lima'

        listing = nurse_client.get(f'{BASE}/patients/')
        assert listing.status_code == 200
        assert [p['registration_code'] for p in listing.data] == ['2024-0099']

    def test_requires_authentication(self, api_client):
        assert api_client.get(f'{BASE}/patients/').status_code == 401


@pytest.mark.django_db
class TestAllergiesAPI:

    def test_register_allergy(self, nurse_client, patient):
        response = nurse_client.post(f'{BASE}/patients/{patient.pk}/allergies/', {
            'allergen_name': 'Dipirona Sódica',
            'ingredient': 'Dipirona Sódica',
            'severity': 'severe',
            'reaction_note': 'Hives',
        }, format='json')

        assert response.status_code == 201
        assert response.data['normalized_ingredient'] == 'dipirona sodica'
        assert AuditEntry.objects.filter(action_kind=AuditActionChoices.ALLERGY_ADDED).count() == 1

    def test_duplicate_allergy_409(self, nurse_client, patient, operator):
        register_allergy(patient, 'Dipirona', 'dipirona sodica', AllergySeverityChoices.MILD, operator)

        response = nurse_client.post(f'{BASE}/patients/{patient.pk}/allergies/', {
            'allergen_name': 'Dipirona',
            'ingredient': 'DIPIRONA SÓDICA',
            'severity': 'severe',
        }, format='json')

        assert response.status_code == 409
        assert response.data['error_type'] == 'duplicate_allergy'

    def test_invalid_severity_400(self, nurse_client, patient):
        response = nurse_client.post(f'{BASE}/patients/{patient.pk}/allergies/', {
            'allergen_name': 'X', 'ingredient': 'x', 'severity': 'lethal',
        }, format='json')

        assert response.status_code == 400

    def test_profile_most_severe_first(self, nurse_client, patient, operator):
        register_allergy(patient, 'Lactose', 'lactose', AllergySeverityChoices.MILD, operator)
        register_allergy(patient, 'Penicilina', 'penicilina', AllergySeverityChoices.ANAPHYLACTIC, operator)

        response = nurse_client.get(f'{BASE}/patients/{patient.pk}/allergies/')

        assert response.status_code == 200
        assert [a['severity'] for a in response.data] == ['anaphylactic', 'mild']

    def test_unknown_patient_404(self, nurse_client):
        response = nurse_client.get(f'{BASE}/patients/{uuid.uuid4()}/allergies/')
        assert response.status_code == 404

    def test_delete_allergy(self, nurse_client, patient, operator):
        allergy = register_allergy(patient, 'Lactose', 'lactose', AllergySeverityChoices.MILD, operator)

        response = nurse_client.delete(f'{BASE}/allergies/{allergy.pk}/')

        assert response.status_code == 204
        assert not AllergyRecord.objects.filter(pk=allergy.pk).exists()
        assert AuditEntry.objects.filter(action_kind=AuditActionChoices.ALLERGY_REMOVED).count() == 1

    def test_delete_missing_allergy_404(self, nurse_client):
        response = nurse_client.delete(f'{BASE}/allergies/{uuid.uuid4()}/')

        assert response.status_code == 404
        assert response.data['error_type'] == 'not_found'


@pytest.mark.django_db
class TestEpisodesAPI:

    def test_open_episode(self, nurse_client, patient, nurse_user):
        response = nurse_client.post(f'{BASE}/episodes/', {
            'patient': str(patient.pk),
            'symptoms': 'Headache and nausea',
            'temperature_c': '37.8',
        }, format='json')

        assert response.status_code == 201
        assert response.data['status'] == EpisodeStatusChoices.OPEN
        assert response.data['status_label'] == 'In progress'
        assert str(response.data['opened_by']) == str(nurse_user.pk)
        assert AuditEntry.objects.filter(action_kind=AuditActionChoices.EPISODE_OPENED).count() == 1

    def test_implausible_temperature_400(self, nurse_client, patient):
        response = nurse_client.post(f'{BASE}/episodes/', {
            'patient': str(patient.pk),
            'symptoms': 'Fever',
            'temperature_c': '50.0',
        }, format='json')

        assert response.status_code == 400
        assert 'temperature_c' in response.data

    def test_status_cannot_be_set_on_create(self, nurse_client, patient):
        response = nurse_client.post(f'{BASE}/episodes/', {
            'patient': str(patient.pk),
            'symptoms': 'Cough',
            'status': 'dispensed',
        }, format='json')

        assert response.status_code == 201
        assert response.data['status'] == EpisodeStatusChoices.OPEN

    def test_filter_by_patient_and_status(self, nurse_client, patient, make_episode):
        make_episode(patient)

        response = nurse_client.get(f'{BASE}/episodes/', {'patient': str(patient.pk), 'status': 'open'})
        assert len(response.data) == 1

        response = nurse_client.get(f'{BASE}/episodes/', {'status': 'closed'})
        assert response.data == []

    def test_refer_requires_destination(self, nurse_client, episode):
        response = nurse_client.post(f'{BASE}/episodes/{episode.pk}/close/', {'status': 'referred'}, format='json')

        assert response.status_code == 400
        assert 'referral_destination' in response.data

    def test_refer_episode(self, nurse_client, episode):
        response = nurse_client.post(f'{BASE}/episodes/{episode.pk}/close/', {
            'status': 'referred',
            'referral_destination': 'UPA Centro',
        }, format='json')

        assert response.status_code == 200
        assert response.data['status'] == 'referred'
        assert response.data['closed_at'] is not None

    def test_close_twice_400(self, nurse_client, episode):
        nurse_client.post(f'{BASE}/episodes/{episode.pk}/close/', {'status': 'closed'}, format='json')

        response = nurse_client.post(f'{BASE}/episodes/{episode.pk}/close/', {'status': 'closed'}, format='json')

        assert response.status_code == 400
        assert response.data['error_type'] == 'episode_state'

    def test_close_as_dispensed_not_allowed(self, nurse_client, episode):
        response = nurse_client.post(f'{BASE}/episodes/{episode.pk}/close/', {'status': 'dispensed'}, format='json')
        assert response.status_code == 400

    def test_close_unknown_episode_404(self, nurse_client):
        response = nurse_client.post(f'{BASE}/episodes/{uuid.uuid4()}/close/', {'status': 'closed'}, format='json')
        assert response.status_code == 404


@pytest.mark.django_db
class TestAllergyCheckAPI:

    def test_check_by_lot(self, nurse_client, patient, lot, operator):
        register_allergy(patient, 'Dipirona Sódica', 'dipirona sodica', AllergySeverityChoices.SEVERE, operator)
        entries_before = AuditEntry.objects.count()

        response = nurse_client.post(f'{BASE}/allergy-check/', {
            'patient': str(patient.pk),
            'lot': str(lot.pk),
        }, format='json')

        assert response.status_code == 200
        assert response.data['safe'] is False
        assert response.data['has_blocking_conflict'] is True
        assert response.data['block_message'].startswith('DISPENSATION BLOCKED')
        assert AuditEntry.objects.count() == entries_before

    def test_check_by_medication_safe(self, nurse_client, patient, medication):
        response = nurse_client.post(f'{BASE}/allergy-check/', {
            'patient': str(patient.pk),
            'medication': str(medication.pk),
        }, format='json')

        assert response.status_code == 200
        assert response.data['safe'] is True
        assert response.data['ingredient_checked'] == 'dipirona sodica'
        assert response.data['block_message'] is None

    def test_requires_lot_or_medication(self, nurse_client, patient):
        response = nurse_client.post(f'{BASE}/allergy-check/', {'patient': str(patient.pk)}, format='json')
        assert response.status_code == 400

    def test_unknown_patient_404(self, nurse_client, medication):
        response = nurse_client.post(f'{BASE}/allergy-check/', {
            'patient': str(uuid.uuid4()),
            'medication': str(medication.pk),
        }, format='json')
        assert response.status_code == 404
