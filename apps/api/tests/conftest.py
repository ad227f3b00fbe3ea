"""
Global test fixtures for pytest.

Provides reusable fixtures for API and service testing:
- Operators and authenticated API clients
- Model instances (Patient, Medication, InventoryLot, ClinicalEpisode)
- A dispensation orchestrator wired with real collaborators
"""
from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from apps.audit.ledger import AuditLedger
from apps.authz.models import User
from apps.authz.operators import operator_from_user
from apps.clinical.crosscheck import AllergyCrossCheck
from apps.clinical.dispensation import DispensationOrchestrator
from apps.clinical.models import ClinicalEpisode, Patient
from apps.core.observability.correlation import clear_request_context
from apps.inventory.models import InventoryLot, Medication
from apps.inventory.selectors import LotSelector


@pytest.fixture(autouse=True)
def _clean_request_context():
    clear_request_context()
    yield
    clear_request_context()


# ============================================================================
# Users and clients
# ============================================================================

@pytest.fixture
def nurse_user(db):
    """School nurse account."""
    return User.objects.create_user(
        email='nurse@school.test',
        password='testpass123',
        full_name='Marta Nurse',
        is_active=True
    )


@pytest.fixture
def other_nurse_user(db):
    return User.objects.create_user(
        email='nurse2@school.test',
        password='testpass123',
        full_name='Paulo Nurse',
        is_active=True
    )


@pytest.fixture
def operator(nurse_user):
    return operator_from_user(nurse_user)


@pytest.fixture
def api_client():
    """Unauthenticated DRF API client."""
    return APIClient()


@pytest.fixture
def nurse_client(nurse_user):
    """Authenticated API client for the nurse."""
    client = APIClient()
    client.force_authenticate(user=nurse_user)
    return client


# ============================================================================
# Domain fixtures
# ============================================================================

@pytest.fixture
def today():
    return timezone.localdate()


@pytest.fixture
def patient(db):
    return Patient.objects.create(
        display_name='Ana Souza',
        registration_code='2024-0001',
        grade='5A'
    )


@pytest.fixture
def medication(db):
    """Dipyrone 500mg, stored with its normalized ingredient."""
    return Medication.objects.create(
        sku='DIP-500',
        commercial_name='Novalgina',
        active_ingredient='dipirona sodica',
        dosage='500mg',
        minimum_stock_qty=5
    )


@pytest.fixture
def make_lot(db, today):
    """Factory for lots; expiry is given in days from today."""
    def _make_lot(medication, lot_number='L-001', quantity=50, expires_in_days=180,
                  available=None, received_at=None, alert_window_days=30):
        return InventoryLot.objects.create(
            medication=medication,
            lot_number=lot_number,
            quantity_total=quantity,
            quantity_available=quantity if available is None else available,
            expiry_date=today + timedelta(days=expires_in_days),
            alert_window_days=alert_window_days,
            received_at=received_at or timezone.now(),
        )
    return _make_lot


@pytest.fixture
def lot(medication, make_lot):
    """Fresh lot with 50 units, expiring in 180 days."""
    return make_lot(medication)


@pytest.fixture
def make_episode(db, nurse_user):
    def _make_episode(patient, symptoms='Headache since morning'):
        return ClinicalEpisode.objects.create(
            patient=patient,
            opened_by=nurse_user,
            symptoms=symptoms
        )
    return _make_episode


@pytest.fixture
def episode(patient, make_episode):
    """Open episode for the patient."""
    return make_episode(patient)


@pytest.fixture
def orchestrator():
    """Orchestrator with real collaborators and the default runner."""
    return DispensationOrchestrator(
        cross_check=AllergyCrossCheck(),
        lot_selector=LotSelector(),
        ledger=AuditLedger(),
        max_attempts=3,
    )
