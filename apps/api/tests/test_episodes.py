"""
Clinical episode state machine.

open -> dispensed | referred | closed | blocked_allergy, all terminal.
"""
import uuid

import pytest

from apps.audit.models import AuditActionChoices, AuditEntry
from apps.clinical.episodes import (
    EpisodeStateError,
    can_transition,
    close_episode,
    open_episode,
    status_label,
    transition_from_open,
)
from apps.clinical.models import ClinicalEpisode, EpisodeStatusChoices
from apps.core.exceptions import NotFoundError


TERMINAL = [
    EpisodeStatusChoices.DISPENSED,
    EpisodeStatusChoices.REFERRED,
    EpisodeStatusChoices.CLOSED,
    EpisodeStatusChoices.BLOCKED_ALLERGY,
]


class TestTransitionTable:

    @pytest.mark.parametrize('target', TERMINAL)
    def test_open_reaches_every_terminal_status(self, target):
        assert can_transition(EpisodeStatusChoices.OPEN, target)

    @pytest.mark.parametrize('source', TERMINAL)
    @pytest.mark.parametrize('target', TERMINAL + [EpisodeStatusChoices.OPEN])
    def test_terminal_statuses_are_final(self, source, target):
        assert not can_transition(source, target)

    def test_labels(self):
        assert status_label(EpisodeStatusChoices.BLOCKED_ALLERGY) == 'Dispensation blocked (allergy)'
        assert status_label('unknown') == 'unknown'


@pytest.mark.django_db
class TestOpenEpisode:

    def test_open_episode_is_audited(self, patient, operator, nurse_user):
        episode = open_episode(patient, operator, nurse_user, symptoms='Stomach ache')

        assert episode.status == EpisodeStatusChoices.OPEN
        assert episode.closed_at is None
        entry = AuditEntry.objects.get()
        assert entry.action_kind == AuditActionChoices.EPISODE_OPENED
        assert entry.target_id == str(episode.pk)


@pytest.mark.django_db
class TestCloseEpisode:

    def test_refer_episode(self, episode, operator):
        closed = close_episode(
            episode.pk,
            EpisodeStatusChoices.REFERRED,
            operator,
            referral_destination='UPA Centro',
        )

        assert closed.status == EpisodeStatusChoices.REFERRED
        assert closed.referral_destination == 'UPA Centro'
        assert closed.closed_at is not None
        entry = AuditEntry.objects.get()
        assert entry.action_kind == AuditActionChoices.EPISODE_CLOSED
        assert entry.payload['to_status'] == 'referred'

    def test_close_without_medication(self, episode, operator):
        closed = close_episode(episode.pk, EpisodeStatusChoices.CLOSED, operator, clinical_notes='Rested 20 min')

        assert closed.status == EpisodeStatusChoices.CLOSED
        assert closed.clinical_notes == 'Rested 20 min'

    def test_cannot_close_twice(self, episode, operator):
        close_episode(episode.pk, EpisodeStatusChoices.CLOSED, operator)

        with pytest.raises(EpisodeStateError):
            close_episode(episode.pk, EpisodeStatusChoices.REFERRED, operator, referral_destination='UPA')

        episode.refresh_from_db()
        assert episode.status == EpisodeStatusChoices.CLOSED
        assert AuditEntry.objects.count() == 1

    @pytest.mark.parametrize('status', [EpisodeStatusChoices.DISPENSED, EpisodeStatusChoices.BLOCKED_ALLERGY])
    def test_pipeline_statuses_not_allowed_manually(self, episode, operator, status):
        with pytest.raises(ValueError):
            close_episode(episode.pk, status, operator)

    def test_unknown_episode(self, operator):
        with pytest.raises(NotFoundError):
            close_episode(uuid.uuid4(), EpisodeStatusChoices.CLOSED, operator)


@pytest.mark.django_db
class TestConditionalTransition:

    def test_only_first_writer_wins(self, episode):
        assert transition_from_open(episode.pk, EpisodeStatusChoices.DISPENSED) is True
        assert transition_from_open(episode.pk, EpisodeStatusChoices.BLOCKED_ALLERGY) is False

        assert ClinicalEpisode.objects.get(pk=episode.pk).status == EpisodeStatusChoices.DISPENSED

    def test_rejects_invalid_target(self, episode):
        with pytest.raises(ValueError):
            transition_from_open(episode.pk, EpisodeStatusChoices.OPEN)
