"""
Clinical models: patient, allergy_record, clinical_episode, dispensation_record.

A clinical episode is one visit of a student to the nurse office. It opens
when the student arrives and ends in exactly one terminal status:
dispensed, referred, closed, or blocked_allergy.
"""
import uuid
from django.db import models
from django.conf import settings
from django.db.models import Q


# ============================================================================
# Enums
# ============================================================================

class AllergySeverityChoices(models.TextChoices):
    """
    Allergy severity.

    severe and anaphylactic block dispensation; mild and moderate only warn.
    """
    MILD = 'mild', 'Mild'
    MODERATE = 'moderate', 'Moderate'
    SEVERE = 'severe', 'Severe'
    ANAPHYLACTIC = 'anaphylactic', 'Anaphylactic'


SEVERITY_RANK = {
    AllergySeverityChoices.MILD: 1,
    AllergySeverityChoices.MODERATE: 2,
    AllergySeverityChoices.SEVERE: 3,
    AllergySeverityChoices.ANAPHYLACTIC: 4,
}

BLOCKING_SEVERITIES = frozenset({
    AllergySeverityChoices.SEVERE,
    AllergySeverityChoices.ANAPHYLACTIC,
})


class EpisodeStatusChoices(models.TextChoices):
    """Clinical episode status"""
    OPEN = 'open', 'Open'
    DISPENSED = 'dispensed', 'Medication Dispensed'
    REFERRED = 'referred', 'Referred'
    CLOSED = 'closed', 'Closed'
    BLOCKED_ALLERGY = 'blocked_allergy', 'Blocked (Allergy)'


# ============================================================================
# Patient
# ============================================================================

class Patient(models.Model):
    """
    A student known to the nurse office.

    Only what the dispensation pipeline needs; the school information system
    owns the full student record.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    display_name = models.CharField(max_length=255)
    registration_code = models.CharField(
        max_length=50,
        unique=True,
        blank=True,
        null=True,
        help_text='School registration number'
    )
    birth_date = models.DateField(blank=True, null=True)
    grade = models.CharField(max_length=30, blank=True, default='')
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'patient'
        ordering = ['display_name']
        verbose_name = 'Patient'
        verbose_name_plural = 'Patients'

    def __str__(self):
        return self.display_name


class AllergyRecord(models.Model):
    """
    A diagnosed allergy to an active ingredient.

    normalized_ingredient holds normalize_ingredient(<ingredient as entered>);
    display_allergen_name keeps the name as the nurse typed it.
    At most one record per (patient, normalized_ingredient).
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(
        Patient,
        on_delete=models.PROTECT,
        related_name='allergies'
    )
    normalized_ingredient = models.CharField(max_length=200)
    display_allergen_name = models.CharField(max_length=200)
    severity = models.CharField(max_length=20, choices=AllergySeverityChoices.choices)
    reaction_note = models.TextField(blank=True, null=True, help_text='Reaction previously observed')
    diagnosed_by = models.CharField(max_length=150, blank=True, null=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='registered_allergies'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'allergy_record'
        ordering = ['created_at']
        verbose_name = 'Allergy Record'
        verbose_name_plural = 'Allergy Records'
        constraints = [
            models.UniqueConstraint(
                fields=['patient', 'normalized_ingredient'],
                name='unique_allergy_per_patient_ingredient'
            ),
        ]

    def __str__(self):
        return f"{self.display_allergen_name} ({self.severity})"


# ============================================================================
# Episodes and dispensations
# ============================================================================

class ClinicalEpisode(models.Model):
    """
    One nurse-office visit.

    Status moves only open -> {dispensed, referred, closed, blocked_allergy};
    see apps.clinical.episodes for the transition rules.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(
        Patient,
        on_delete=models.PROTECT,
        related_name='episodes'
    )
    opened_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='opened_episodes'
    )
    status = models.CharField(
        max_length=20,
        choices=EpisodeStatusChoices.choices,
        default=EpisodeStatusChoices.OPEN
    )
    symptoms = models.TextField()
    clinical_notes = models.TextField(blank=True, null=True)
    temperature_c = models.DecimalField(max_digits=4, decimal_places=1, blank=True, null=True)
    blood_pressure = models.CharField(max_length=20, blank=True, null=True)
    referral_destination = models.CharField(max_length=200, blank=True, null=True)

    opened_at = models.DateTimeField(auto_now_add=True)
    closed_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        db_table = 'clinical_episode'
        ordering = ['-opened_at']
        verbose_name = 'Clinical Episode'
        verbose_name_plural = 'Clinical Episodes'
        indexes = [
            models.Index(fields=['patient', 'opened_at'], name='idx_episode_patient_opened'),
            models.Index(fields=['status'], name='idx_episode_status'),
        ]

    def __str__(self):
        return f"Episode {self.id} ({self.status})"


class DispensationRecordImmutableError(Exception):
    """Raised on any attempt to modify or delete a dispensation record."""


class DispensationRecordQuerySet(models.QuerySet):

    def update(self, **kwargs):
        raise DispensationRecordImmutableError('Dispensation records cannot be updated')

    def delete(self):
        raise DispensationRecordImmutableError('Dispensation records cannot be deleted')


class DispensationRecord(models.Model):
    """
    Immutable proof that medication was given.

    Written once inside the dispensation transaction; never updated or
    deleted.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    episode = models.ForeignKey(
        ClinicalEpisode,
        on_delete=models.PROTECT,
        related_name='dispensations'
    )
    lot = models.ForeignKey(
        'inventory.InventoryLot',
        on_delete=models.PROTECT,
        related_name='dispensations'
    )
    dispensed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='dispensations'
    )
    quantity = models.PositiveIntegerField()
    dosage_instructions = models.TextField()
    allergy_check_passed = models.BooleanField(default=True)
    notes = models.TextField(blank=True, null=True)
    dispensed_at = models.DateTimeField(auto_now_add=True)

    objects = DispensationRecordQuerySet.as_manager()

    class Meta:
        db_table = 'dispensation_record'
        ordering = ['-dispensed_at']
        verbose_name = 'Dispensation Record'
        verbose_name_plural = 'Dispensation Records'
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity__gte=1),
                name='dispensation_quantity_positive'
            ),
            models.UniqueConstraint(
                fields=['episode'],
                name='unique_dispensation_per_episode'
            ),
        ]
        indexes = [
            models.Index(fields=['lot', 'dispensed_at'], name='idx_dispensation_lot'),
        ]

    def __str__(self):
        return f"Dispensation {self.id} ({self.quantity} x lot {self.lot_id})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise DispensationRecordImmutableError('Dispensation records cannot be updated')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise DispensationRecordImmutableError('Dispensation records cannot be deleted')
