"""
Safe dispensation orchestrator.

Given (episode, lot, quantity) it either gives the medication, with the
record, the stock decrement, the episode transition and the audit entry
committed as one unit, or refuses with a typed outcome. Outcomes are values,
not exceptions: the caller maps them to a response.

Flow:
    1. episode exists and is open
    2. lot exists
    3. lot is not expired (checked before quantity)
    4. lot holds enough stock
    5. allergy cross-check against the lot's active ingredient
       - blocking: episode -> blocked_allergy + DISPENSE_BLOCKED_ALLERGY, atomically
       - warning-only / safe: continue
    6. atomic unit: lock lot, re-check stock, episode -> dispensed,
       create record, decrement stock, DISPENSE_SUCCESS
    7. after commit: derive stock alert

Nothing is written before step 5. If the lot or the episode changed under
us between the reads and the atomic unit (or the database reports lock
contention), the attempt is discarded and the whole flow re-runs from
step 1 on fresh data, up to max_attempts times.
"""
from dataclasses import dataclass, field
import time
from typing import Any, ClassVar, Optional, Tuple

from django.conf import settings
from django.db import OperationalError
from django.db.models import F
from django.utils import timezone

from apps.audit.ledger import AuditLedger
from apps.audit.models import AuditActionChoices
from apps.core.exceptions import NotFoundError
from apps.core.observability import get_sanitized_logger, metrics
from apps.core.observability.events import (
    log_consistency_checkpoint,
    log_dispensation_outcome,
    log_stock_alert,
)
from apps.core.transactions import run_in_transaction
from apps.inventory.models import InventoryLot
from apps.inventory.rules import is_expired
from apps.inventory.selectors import LotSelector
from .crosscheck import AllergyCrossCheck
from .episodes import is_open, transition_from_open
from .models import ClinicalEpisode, DispensationRecord, EpisodeStatusChoices

logger = get_sanitized_logger(__name__)


# ============================================================================
# Outcomes
# ============================================================================

@dataclass(frozen=True)
class Success:
    kind: ClassVar[str] = 'success'
    http_status: ClassVar[int] = 201

    record: DispensationRecord
    remaining_stock: int
    stock_alert: Optional[Any] = None
    warnings: Tuple[Any, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Blocked:
    kind: ClassVar[str] = 'blocked'
    http_status: ClassVar[int] = 409

    conflicts: Tuple[Any, ...]
    most_severe: Any
    check: Any


@dataclass(frozen=True)
class EpisodeClosed:
    kind: ClassVar[str] = 'episode_closed'
    http_status: ClassVar[int] = 400

    episode_id: Any
    status: str


@dataclass(frozen=True)
class BatchExpired:
    kind: ClassVar[str] = 'batch_expired'
    http_status: ClassVar[int] = 400

    lot_id: Any
    lot_number: str
    expiry_date: Any


@dataclass(frozen=True)
class StockInsufficient:
    kind: ClassVar[str] = 'stock_insufficient'
    http_status: ClassVar[int] = 409

    requested: int
    available: int


@dataclass(frozen=True)
class NotFound:
    kind: ClassVar[str] = 'not_found'
    http_status: ClassVar[int] = 404

    entity: str
    identifier: Any


@dataclass(frozen=True)
class Internal:
    kind: ClassVar[str] = 'internal'
    http_status: ClassVar[int] = 500

    reason: str


DispensationOutcome = (Success, Blocked, EpisodeClosed, BatchExpired, StockInsufficient, NotFound, Internal)


@dataclass(frozen=True)
class DispensationRequest:
    episode_id: Any
    lot_id: Any
    quantity: int
    dosage_instructions: str
    operator: Any
    notes: Optional[str] = None


class _Contention(Exception):
    """State read before the atomic unit no longer holds; start over."""
    reason = 'contention'


class _StockChanged(_Contention):
    reason = 'stock_changed'


class _EpisodeChanged(_Contention):
    reason = 'episode_changed'


# ============================================================================
# Orchestrator
# ============================================================================

class DispensationOrchestrator:
    """
    Runs the dispensation flow with injected collaborators.

    Args:
        cross_check: AllergyCrossCheck
        lot_selector: LotSelector (also provides the reference date)
        ledger: AuditLedger
        run_in_transaction: callable(fn, *args) executing fn atomically
        max_attempts: attempts before contention becomes Internal
    """

    def __init__(self, cross_check, lot_selector, ledger, run_in_transaction=run_in_transaction, max_attempts=3):
        if max_attempts < 1:
            raise ValueError("max_attempts must be positive")
        self.cross_check = cross_check
        self.lot_selector = lot_selector
        self.ledger = ledger
        self.run_in_transaction = run_in_transaction
        self.max_attempts = max_attempts

    def dispense(self, episode_id, lot_id, quantity, dosage_instructions, operator, notes=None):
        if quantity < 1:
            raise ValueError("quantity must be positive")

        request = DispensationRequest(
            episode_id=episode_id,
            lot_id=lot_id,
            quantity=quantity,
            dosage_instructions=dosage_instructions,
            operator=operator,
            notes=notes,
        )

        start_time = time.time()
        attempts = 0
        while True:
            attempts += 1
            try:
                outcome = self._attempt(request)
                break
            except _Contention as e:
                reason = e.reason
            except OperationalError as e:
                reason = 'db_contention'
                logger.warning(
                    'Database contention during dispensation',
                    extra={
                        'event': 'dispensation_db_contention',
                        'episode_id': str(episode_id),
                        'lot_id': str(lot_id),
                        'attempt': attempts,
                        'error': str(e),
                    }
                )
            except Exception as e:
                logger.exception(
                    'Dispensation failed',
                    extra={
                        'event': 'dispensation_failed',
                        'episode_id': str(episode_id),
                        'lot_id': str(lot_id),
                        'attempt': attempts,
                        'exception_type': e.__class__.__name__,
                    }
                )
                outcome = Internal(reason='unexpected_error')
                break

            metrics.dispensation_retries_total.labels(reason=reason).inc()
            if attempts >= self.max_attempts:
                outcome = Internal(reason=f'retries_exhausted:{reason}')
                break

        metrics.dispensation_outcomes_total.labels(outcome=outcome.kind).inc()
        metrics.dispensation_duration_seconds.observe(time.time() - start_time)
        log_dispensation_outcome(outcome, episode_id, lot_id, attempts=attempts)
        return outcome

    # ------------------------------------------------------------------
    # One attempt
    # ------------------------------------------------------------------

    def _attempt(self, request):
        episode = ClinicalEpisode.objects.filter(pk=request.episode_id).first()
        if episode is None:
            return NotFound(entity='episode', identifier=request.episode_id)
        if not is_open(episode):
            return EpisodeClosed(episode_id=episode.pk, status=episode.status)

        lot = InventoryLot.objects.select_related('medication').filter(pk=request.lot_id).first()
        if lot is None:
            return NotFound(entity='lot', identifier=request.lot_id)

        if is_expired(lot, self.lot_selector.today()):
            return BatchExpired(lot_id=lot.pk, lot_number=lot.lot_number, expiry_date=lot.expiry_date)

        if lot.quantity_available < request.quantity:
            return StockInsufficient(requested=request.quantity, available=lot.quantity_available)

        try:
            check = self.cross_check.check(episode.patient_id, lot.medication.active_ingredient)
        except NotFoundError as e:
            return NotFound(entity=e.entity, identifier=e.identifier)

        if check.has_blocking_conflict:
            return self.run_in_transaction(self._commit_block, request, episode, lot, check)

        record, remaining = self.run_in_transaction(self._commit_dispense, request, episode, lot, check)

        # Committed from here on: nothing below may turn this into a failure.
        self._checkpoint(request, record, lot, remaining)

        return Success(
            record=record,
            remaining_stock=remaining,
            stock_alert=self._stock_alert(lot),
            warnings=check.conflicts,
        )

    def _commit_block(self, request, episode, lot, check):
        if not transition_from_open(episode.pk, EpisodeStatusChoices.BLOCKED_ALLERGY, closed_at=timezone.now()):
            raise _EpisodeChanged()

        most_severe = check.most_severe_conflict
        self.ledger.append(
            AuditActionChoices.DISPENSE_BLOCKED_ALLERGY,
            operator=request.operator,
            target_table=ClinicalEpisode._meta.db_table,
            target_id=episode.pk,
            payload={
                'episode_id': str(episode.pk),
                'patient_id': str(episode.patient_id),
                'medication_id': str(lot.medication_id),
                'medication': lot.medication.commercial_name,
                'active_ingredient': check.ingredient_checked,
                'lot_id': str(lot.pk),
                'lot_number': lot.lot_number,
                'quantity_requested': request.quantity,
                'conflicts': [conflict.as_dict() for conflict in check.conflicts],
                'most_severe': most_severe.as_dict(),
            },
        )
        return Blocked(conflicts=check.conflicts, most_severe=most_severe, check=check)

    def _commit_dispense(self, request, episode, lot, check):
        now = timezone.now()

        locked_lot = InventoryLot.objects.select_for_update().get(pk=lot.pk)
        if locked_lot.quantity_available < request.quantity:
            raise _StockChanged()

        if not transition_from_open(episode.pk, EpisodeStatusChoices.DISPENSED, closed_at=now):
            raise _EpisodeChanged()

        record = DispensationRecord.objects.create(
            episode_id=episode.pk,
            lot_id=lot.pk,
            dispensed_by_id=request.operator.id,
            quantity=request.quantity,
            dosage_instructions=request.dosage_instructions,
            allergy_check_passed=True,
            notes=request.notes,
        )

        decremented = InventoryLot.objects.filter(
            pk=lot.pk,
            quantity_available__gte=request.quantity,
        ).update(
            quantity_available=F('quantity_available') - request.quantity,
            updated_at=now,
        )
        if decremented != 1:
            raise _StockChanged()

        remaining = locked_lot.quantity_available - request.quantity

        self.ledger.append(
            AuditActionChoices.DISPENSE_SUCCESS,
            operator=request.operator,
            target_table=DispensationRecord._meta.db_table,
            target_id=record.pk,
            payload={
                'dispensation_id': str(record.pk),
                'episode_id': str(episode.pk),
                'patient_id': str(episode.patient_id),
                'patient_name': check.patient_name,
                'medication_id': str(lot.medication_id),
                'medication': lot.medication.commercial_name,
                'active_ingredient': lot.medication.active_ingredient,
                'dosage': lot.medication.dosage,
                'lot_id': str(lot.pk),
                'lot_number': lot.lot_number,
                'expiry_date': lot.expiry_date,
                'quantity': request.quantity,
                'dosage_instructions': request.dosage_instructions,
                'remaining_stock': remaining,
                'allergy_warnings': [conflict.as_dict() for conflict in check.conflicts],
            },
        )
        return record, remaining

    def _checkpoint(self, request, record, lot, remaining):
        try:
            log_consistency_checkpoint(
                'dispensation_stock_consistency',
                entity_ids={'record_id': str(record.pk), 'lot_id': str(lot.pk)},
                checks_passed={
                    'stock_non_negative': remaining >= 0,
                    'record_quantity_matches': record.quantity == request.quantity,
                },
                quantity=request.quantity,
                remaining_stock=remaining,
            )
        except Exception:
            logger.exception(
                'Consistency checkpoint failed',
                extra={'event': 'consistency_checkpoint_failed', 'record_id': str(record.pk)}
            )

    def _stock_alert(self, lot):
        """Post-commit stock alert; a failure here never undoes the dispensation."""
        try:
            lot.refresh_from_db(fields=['quantity_available'])
            alert = self.lot_selector.alert_for(lot.medication, lot=lot)
        except Exception:
            logger.exception(
                'Stock alert derivation failed',
                extra={'event': 'stock_alert_failed', 'lot_id': str(lot.pk)}
            )
            return None

        if alert is not None:
            metrics.stock_alerts_total.labels(level=alert.level).inc()
            log_stock_alert(alert)
        return alert


def build_orchestrator():
    """Orchestrator wired with the default collaborators."""
    return DispensationOrchestrator(
        cross_check=AllergyCrossCheck(),
        lot_selector=LotSelector(),
        ledger=AuditLedger(),
        run_in_transaction=run_in_transaction,
        max_attempts=getattr(settings, 'DISPENSATION_MAX_ATTEMPTS', 3),
    )
