"""
Allergy cross-check engine.

Compares a medication's active ingredient against every allergy on file
for a patient. Read-only: it never writes and never audits, so it can be
used for speculative checks as well as inside the dispensation pipeline.
"""
from dataclasses import dataclass, field
from typing import Optional, Tuple

from apps.core.exceptions import NotFoundError
from apps.core.ingredients import normalize_ingredient
from apps.core.observability import metrics
from .models import AllergyRecord, BLOCKING_SEVERITIES, Patient, SEVERITY_RANK


@dataclass(frozen=True)
class Conflict:
    """One allergy record matching the checked ingredient."""
    allergy_id: object
    allergen_name: str
    ingredient: str
    severity: str
    reaction_note: Optional[str] = None
    diagnosed_by: Optional[str] = None

    @property
    def is_blocking(self):
        return self.severity in BLOCKING_SEVERITIES

    def as_dict(self):
        return {
            'allergy_id': str(self.allergy_id),
            'allergen_name': self.allergen_name,
            'ingredient': self.ingredient,
            'severity': str(self.severity),
            'reaction_note': self.reaction_note,
            'diagnosed_by': self.diagnosed_by,
        }


@dataclass(frozen=True)
class CheckResult:
    """
    Verdict of a cross-check.

    conflicts are ordered most severe first; equal severities keep the order
    in which the allergy records were created.
    """
    patient_id: object
    patient_name: str
    ingredient_checked: str
    conflicts: Tuple[Conflict, ...] = field(default_factory=tuple)

    @property
    def safe(self):
        return not self.conflicts

    @property
    def has_blocking_conflict(self):
        return any(conflict.is_blocking for conflict in self.conflicts)

    @property
    def has_warning_only(self):
        return bool(self.conflicts) and not self.has_blocking_conflict

    @property
    def most_severe_conflict(self):
        return self.conflicts[0] if self.conflicts else None

    @property
    def verdict(self):
        if self.has_blocking_conflict:
            return 'blocking'
        if self.has_warning_only:
            return 'warning'
        return 'safe'


class AllergyCrossCheck:
    """Pure allergy verdicts over the patient's allergy records."""

    def check(self, patient_id, medication_ingredient):
        """
        Cross-check one ingredient for one patient.

        Raises:
            NotFoundError: no such patient
        """
        patient = Patient.objects.filter(pk=patient_id).only('id', 'display_name').first()
        if patient is None:
            raise NotFoundError('patient', patient_id)

        target = normalize_ingredient(medication_ingredient)
        conflicts = []

        if target:
            records = AllergyRecord.objects.filter(patient_id=patient_id).order_by('created_at', 'pk')
            for record in records:
                if normalize_ingredient(record.normalized_ingredient) != target:
                    continue
                conflicts.append(Conflict(
                    allergy_id=record.pk,
                    allergen_name=record.display_allergen_name,
                    ingredient=record.normalized_ingredient,
                    severity=record.severity,
                    reaction_note=record.reaction_note,
                    diagnosed_by=record.diagnosed_by,
                ))

        conflicts.sort(key=lambda c: SEVERITY_RANK[c.severity], reverse=True)

        result = CheckResult(
            patient_id=patient.pk,
            patient_name=patient.display_name,
            ingredient_checked=target,
            conflicts=tuple(conflicts),
        )
        metrics.allergy_crosscheck_total.labels(verdict=result.verdict).inc()
        return result


def build_block_message(result):
    """Nurse-facing explanation of a blocking verdict."""
    worst = result.most_severe_conflict
    if worst is None:
        return ''

    lines = [
        'DISPENSATION BLOCKED: ALLERGY RISK',
        f'Patient: {result.patient_name}',
        f'Active ingredient: {result.ingredient_checked}',
        f'Registered allergen: {worst.allergen_name}',
        f'Severity: {str(worst.severity).upper()}',
    ]
    if worst.reaction_note:
        lines.append(f'Previous reaction: {worst.reaction_note}')
    if len(result.conflicts) > 1:
        lines.append(f'{len(result.conflicts)} conflicting allergy records on file.')
    lines.append('Do not give this medication. Contact the family or refer for medical care.')
    return '\n'.join(lines)
