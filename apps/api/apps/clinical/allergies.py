"""
Allergy record services.

Registration and removal are audited (ALLERGY_ADDED / ALLERGY_REMOVED) in the
same transaction as the change. Removal is a hard delete; the audit entry
keeps a snapshot of what was removed.
"""
from django.db import IntegrityError, transaction

from apps.audit.ledger import AuditLedger
from apps.audit.models import AuditActionChoices
from apps.core.exceptions import BusinessRuleError, NotFoundError
from apps.core.ingredients import normalize_ingredient
from apps.core.observability import get_sanitized_logger, log_domain_event
from .models import (
    AllergyRecord,
    AllergySeverityChoices,
    BLOCKING_SEVERITIES,
    Patient,
    SEVERITY_RANK,
)

logger = get_sanitized_logger(__name__)


class DuplicateAllergyError(BusinessRuleError):
    """Raised when the patient already has an allergy to the same ingredient."""
    error_type = 'duplicate_allergy'


class InvalidAllergenError(BusinessRuleError):
    """Raised when the ingredient is empty after normalization."""
    error_type = 'invalid_allergen'


def _snapshot(allergy):
    return {
        'patient_id': str(allergy.patient_id),
        'normalized_ingredient': allergy.normalized_ingredient,
        'display_allergen_name': allergy.display_allergen_name,
        'severity': allergy.severity,
        'reaction_note': allergy.reaction_note,
        'diagnosed_by': allergy.diagnosed_by,
    }


def register_allergy(
    patient,
    allergen_name,
    ingredient,
    severity,
    operator,
    reaction_note=None,
    diagnosed_by=None,
    created_by=None,
    ledger=None,
):
    """
    Add an allergy to a patient's record.

    Raises:
        InvalidAllergenError: ingredient normalizes to an empty string
        DuplicateAllergyError: same normalized ingredient already on file
        ValueError: unknown severity
    """
    if severity not in AllergySeverityChoices.values:
        raise ValueError(f"Unknown allergy severity: {severity!r}")

    normalized = normalize_ingredient(ingredient)
    if not normalized:
        raise InvalidAllergenError('Allergen ingredient is empty after normalization')

    ledger = ledger or AuditLedger()

    with transaction.atomic():
        if AllergyRecord.objects.filter(patient=patient, normalized_ingredient=normalized).exists():
            raise DuplicateAllergyError(
                f'Patient already has an allergy registered for "{normalized}"'
            )

        try:
            with transaction.atomic():
                allergy = AllergyRecord.objects.create(
                    patient=patient,
                    normalized_ingredient=normalized,
                    display_allergen_name=allergen_name.strip(),
                    severity=severity,
                    reaction_note=reaction_note,
                    diagnosed_by=diagnosed_by,
                    created_by=created_by,
                )
        except IntegrityError:
            # Concurrent registration won the unique constraint
            raise DuplicateAllergyError(
                f'Patient already has an allergy registered for "{normalized}"'
            )

        ledger.append(
            AuditActionChoices.ALLERGY_ADDED,
            operator=operator,
            target_table=AllergyRecord._meta.db_table,
            target_id=allergy.pk,
            payload=_snapshot(allergy),
        )

    log_domain_event(
        'allergy_registered',
        entity_type='AllergyRecord',
        entity_id=str(allergy.pk),
        entity_ids={'patient_id': str(patient.pk)},
        severity=severity,
    )
    return allergy


def remove_allergy(allergy_id, operator, ledger=None):
    """
    Delete an allergy record, auditing a snapshot of it first.

    Raises:
        NotFoundError: no such allergy record
    """
    ledger = ledger or AuditLedger()

    with transaction.atomic():
        allergy = AllergyRecord.objects.select_for_update().filter(pk=allergy_id).first()
        if allergy is None:
            raise NotFoundError('allergy', allergy_id)

        ledger.append(
            AuditActionChoices.ALLERGY_REMOVED,
            operator=operator,
            target_table=AllergyRecord._meta.db_table,
            target_id=allergy.pk,
            payload=_snapshot(allergy),
        )
        patient_id = allergy.patient_id
        allergy.delete()

    log_domain_event(
        'allergy_removed',
        entity_type='AllergyRecord',
        entity_id=str(allergy_id),
        entity_ids={'patient_id': str(patient_id)},
    )


def _severity_sorted(records):
    # Stable sort: creation order is kept within a severity.
    return sorted(records, key=lambda r: SEVERITY_RANK[r.severity], reverse=True)


def allergy_profile(patient_id):
    """
    All allergies of a patient, most severe first.

    Raises:
        NotFoundError: no such patient
    """
    if not Patient.objects.filter(pk=patient_id).exists():
        raise NotFoundError('patient', patient_id)

    records = AllergyRecord.objects.filter(patient_id=patient_id).order_by('created_at', 'pk')
    return _severity_sorted(records)


def blocking_allergies(patient_id):
    """Only the allergies severe enough to block dispensation."""
    return [record for record in allergy_profile(patient_id) if record.severity in BLOCKING_SEVERITIES]
