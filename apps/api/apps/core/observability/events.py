"""
Domain events logging helpers.

Provides structured event logging for business operations. Event payloads
go through sanitize_dict(), so PHI passed by mistake is redacted.
"""
from typing import Dict, Any, Optional
from .logging import get_sanitized_logger, sanitize_dict

logger = get_sanitized_logger(__name__)


def log_domain_event(
    event_name: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    entity_ids: Optional[Dict[str, str]] = None,
    result: str = 'success',
    **extra_fields: Any
):
    """
    Log a domain event with structured data.

    Args:
        event_name: Name of the event (e.g., 'dispensation_completed', 'lot_received')
        entity_type: Type of entity (e.g., 'DispensationRecord', 'InventoryLot')
        entity_id: ID of primary entity
        entity_ids: Dictionary of related entity IDs
        result: Result of operation (success, blocked, failure, ...)
        **extra_fields: Additional fields to log (will be sanitized)

    Example:
        log_domain_event(
            'dispensation_completed',
            entity_type='DispensationRecord',
            entity_id=str(record.id),
            entity_ids={'episode_id': str(episode.id), 'lot_id': str(lot.id)},
            result='success',
            quantity=2,
        )
    """
    event_data = {
        'event': event_name,
        'result': result,
    }

    if entity_type:
        event_data['entity_type'] = entity_type

    if entity_id:
        event_data['entity_id'] = entity_id

    if entity_ids:
        event_data.update(entity_ids)

    event_data.update(sanitize_dict(extra_fields))

    if result in ['failure', 'error']:
        logger.error(f'Domain event: {event_name}', extra=event_data)
    elif result in ['warning', 'blocked', 'rejected']:
        logger.warning(f'Domain event: {event_name}', extra=event_data)
    else:
        logger.info(f'Domain event: {event_name}', extra=event_data)


def log_consistency_checkpoint(
    checkpoint_name: str,
    entity_ids: Dict[str, str],
    checks_passed: Dict[str, bool],
    **extra_fields: Any
):
    """
    Log a consistency checkpoint event.

    Used to verify data integrity at critical points, e.g. that the stock
    decrement and the dispensation record agree after a commit.
    """
    all_passed = all(checks_passed.values())

    event_data = {
        'event': 'consistency_checkpoint',
        'checkpoint': checkpoint_name,
        'status': 'passed' if all_passed else 'failed',
        'checks': checks_passed,
    }
    event_data.update(entity_ids)
    event_data.update(sanitize_dict(extra_fields))

    if all_passed:
        logger.info(f'Checkpoint passed: {checkpoint_name}', extra=event_data)
    else:
        logger.error(f'Checkpoint FAILED: {checkpoint_name}', extra=event_data)


def log_dispensation_outcome(outcome, episode_id, lot_id, attempts=1, **extra):
    """Log the final outcome of a dispensation request."""
    results = {
        'success': 'success',
        'blocked': 'blocked',
        'internal': 'failure',
    }
    log_domain_event(
        f'dispensation_{outcome.kind}',
        entity_type='ClinicalEpisode',
        entity_id=str(episode_id),
        entity_ids={'episode_id': str(episode_id), 'lot_id': str(lot_id)},
        result=results.get(outcome.kind, 'rejected'),
        attempts=attempts,
        **extra
    )


def log_stock_alert(alert):
    """Log a stock alert raised after a dispensation."""
    log_domain_event(
        'stock_alert_raised',
        entity_type='Medication',
        entity_id=str(alert.medication_id),
        result='warning',
        level=alert.level,
        sku=alert.sku,
        total_stock=alert.total_stock,
        minimum_stock_qty=alert.minimum_stock_qty,
        lot_exhausted=alert.lot_exhausted,
        has_expired_lot=alert.has_expired_lot,
    )
