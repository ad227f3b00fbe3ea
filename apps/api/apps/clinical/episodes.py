"""
Clinical episode state machine.

    open -> dispensed | referred | closed | blocked_allergy

All four targets are terminal. dispensed and blocked_allergy are reached
only through the dispensation orchestrator; referred and closed through
close_episode().

Status changes are conditional updates (`WHERE status = 'open'`), so two
concurrent writers can never both move the same episode out of open.
"""
from django.db import transaction
from django.utils import timezone

from apps.audit.ledger import AuditLedger
from apps.audit.models import AuditActionChoices
from apps.core.exceptions import BusinessRuleError, NotFoundError
from apps.core.observability import log_domain_event
from .models import ClinicalEpisode, EpisodeStatusChoices


VALID_TRANSITIONS = {
    EpisodeStatusChoices.OPEN: [
        EpisodeStatusChoices.DISPENSED,
        EpisodeStatusChoices.REFERRED,
        EpisodeStatusChoices.CLOSED,
        EpisodeStatusChoices.BLOCKED_ALLERGY,
    ],
    EpisodeStatusChoices.DISPENSED: [],
    EpisodeStatusChoices.REFERRED: [],
    EpisodeStatusChoices.CLOSED: [],
    EpisodeStatusChoices.BLOCKED_ALLERGY: [],
}

MANUAL_CLOSE_STATUSES = (EpisodeStatusChoices.REFERRED, EpisodeStatusChoices.CLOSED)

STATUS_LABELS = {
    EpisodeStatusChoices.OPEN: 'In progress',
    EpisodeStatusChoices.DISPENSED: 'Medication dispensed',
    EpisodeStatusChoices.REFERRED: 'Referred for external care',
    EpisodeStatusChoices.CLOSED: 'Closed without medication',
    EpisodeStatusChoices.BLOCKED_ALLERGY: 'Dispensation blocked (allergy)',
}


class EpisodeStateError(BusinessRuleError):
    """Raised when an episode cannot make the requested transition."""
    error_type = 'episode_state'


def can_transition(from_status, to_status):
    return to_status in VALID_TRANSITIONS.get(from_status, [])


def is_open(episode):
    return episode.status == EpisodeStatusChoices.OPEN


def status_label(status):
    return STATUS_LABELS.get(status, str(status))


def transition_from_open(episode_id, to_status, **fields):
    """
    Move an episode out of open, only if it is still open.

    Returns True if this call performed the transition, False if the episode
    was no longer open. Must run inside a transaction.
    """
    if not can_transition(EpisodeStatusChoices.OPEN, to_status):
        raise ValueError(f"Invalid episode transition: open -> {to_status}")

    updated = ClinicalEpisode.objects.filter(
        pk=episode_id,
        status=EpisodeStatusChoices.OPEN,
    ).update(status=to_status, **fields)
    return updated == 1


def open_episode(patient, operator, opened_by, symptoms, clinical_notes=None,
                 temperature_c=None, blood_pressure=None, ledger=None):
    """Start a new nurse-office visit for a patient."""
    ledger = ledger or AuditLedger()

    with transaction.atomic():
        episode = ClinicalEpisode.objects.create(
            patient=patient,
            opened_by=opened_by,
            symptoms=symptoms,
            clinical_notes=clinical_notes,
            temperature_c=temperature_c,
            blood_pressure=blood_pressure,
        )
        ledger.append(
            AuditActionChoices.EPISODE_OPENED,
            operator=operator,
            target_table=ClinicalEpisode._meta.db_table,
            target_id=episode.pk,
            payload={'patient_id': str(patient.pk)},
        )

    log_domain_event(
        'episode_opened',
        entity_type='ClinicalEpisode',
        entity_id=str(episode.pk),
        entity_ids={'patient_id': str(patient.pk)},
    )
    return episode


def close_episode(episode_id, status, operator, referral_destination=None, clinical_notes=None, ledger=None):
    """
    End an open episode without dispensing (referred or closed).

    Raises:
        ValueError: status is not referred/closed
        NotFoundError: no such episode
        EpisodeStateError: episode is not open
    """
    if status not in MANUAL_CLOSE_STATUSES:
        raise ValueError(f"Episodes can only be closed as referred or closed, not {status!r}")

    ledger = ledger or AuditLedger()

    with transaction.atomic():
        episode = ClinicalEpisode.objects.select_for_update().filter(pk=episode_id).first()
        if episode is None:
            raise NotFoundError('episode', episode_id)
        if not is_open(episode):
            raise EpisodeStateError(
                f'Episode is already {episode.status}; only open episodes can be closed'
            )

        fields = {'closed_at': timezone.now()}
        if referral_destination is not None:
            fields['referral_destination'] = referral_destination
        if clinical_notes is not None:
            fields['clinical_notes'] = clinical_notes

        transition_from_open(episode.pk, status, **fields)

        ledger.append(
            AuditActionChoices.EPISODE_CLOSED,
            operator=operator,
            target_table=ClinicalEpisode._meta.db_table,
            target_id=episode.pk,
            payload={
                'patient_id': str(episode.patient_id),
                'from_status': EpisodeStatusChoices.OPEN,
                'to_status': status,
                'referral_destination': referral_destination,
            },
        )

    episode.refresh_from_db()
    log_domain_event(
        'episode_closed',
        entity_type='ClinicalEpisode',
        entity_id=str(episode.pk),
        from_status=EpisodeStatusChoices.OPEN,
        to_status=status,
    )
    return episode
