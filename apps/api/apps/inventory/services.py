"""
Inventory services - catalogue registration and lot receipt.

Every stock change is audited as STOCK_UPDATE in the same transaction as the
change itself.
"""
from django.db import IntegrityError, transaction

from apps.audit.ledger import AuditLedger
from apps.audit.models import AuditActionChoices
from apps.core.exceptions import BusinessRuleError
from apps.core.ingredients import normalize_ingredient
from apps.core.observability import get_sanitized_logger, log_domain_event
from .models import InventoryLot, Medication

logger = get_sanitized_logger(__name__)


class DuplicateMedicationError(BusinessRuleError):
    """Raised when a SKU is already registered."""
    error_type = 'duplicate_medication'


class DuplicateLotError(BusinessRuleError):
    """Raised when a lot number already exists for the medication."""
    error_type = 'duplicate_lot'


class InvalidIngredientError(BusinessRuleError):
    """Raised when an ingredient normalizes to an empty string."""
    error_type = 'invalid_ingredient'


def register_medication(operator, sku, commercial_name, active_ingredient, dosage, ledger=None, **fields):
    """
    Add a medication to the catalogue.

    The active ingredient is stored normalized so allergy cross-checks
    compare like with like.

    Raises:
        DuplicateMedicationError: sku already exists
        InvalidIngredientError: ingredient is empty after normalization
    """
    ledger = ledger or AuditLedger()
    normalized = normalize_ingredient(active_ingredient)
    if not normalized:
        raise InvalidIngredientError('Active ingredient is empty after normalization')

    with transaction.atomic():
        if Medication.objects.filter(sku=sku).exists():
            raise DuplicateMedicationError(f'SKU "{sku}" is already registered')

        try:
            with transaction.atomic():
                medication = Medication.objects.create(
                    sku=sku,
                    commercial_name=commercial_name,
                    active_ingredient=normalized,
                    dosage=dosage,
                    **fields
                )
        except IntegrityError:
            raise DuplicateMedicationError(f'SKU "{sku}" is already registered')

        ledger.append(
            AuditActionChoices.STOCK_UPDATE,
            operator=operator,
            target_table=Medication._meta.db_table,
            target_id=medication.pk,
            payload={
                'operation': 'CREATE',
                'sku': medication.sku,
                'commercial_name': medication.commercial_name,
                'active_ingredient': medication.active_ingredient,
                'dosage': medication.dosage,
            },
        )

    log_domain_event(
        'medication_registered',
        entity_type='Medication',
        entity_id=str(medication.pk),
        sku=medication.sku,
    )
    return medication


def receive_lot(
    medication,
    lot_number,
    quantity_total,
    expiry_date,
    operator,
    received_by=None,
    manufacturer='',
    alert_window_days=30,
    notes='',
    ledger=None,
):
    """
    Record the receipt of a new lot; all received units are available.

    Raises:
        ValueError: quantity_total < 1 or alert_window_days < 1
        DuplicateLotError: lot_number already recorded for this medication
    """
    if quantity_total < 1:
        raise ValueError("quantity_total must be positive")
    if alert_window_days < 1:
        raise ValueError("alert_window_days must be positive")

    ledger = ledger or AuditLedger()

    with transaction.atomic():
        if InventoryLot.objects.filter(medication=medication, lot_number=lot_number).exists():
            raise DuplicateLotError(
                f'Lot "{lot_number}" already exists for {medication.sku}'
            )

        try:
            with transaction.atomic():
                lot = InventoryLot.objects.create(
                    medication=medication,
                    lot_number=lot_number,
                    manufacturer=manufacturer,
                    quantity_total=quantity_total,
                    quantity_available=quantity_total,
                    expiry_date=expiry_date,
                    alert_window_days=alert_window_days,
                    received_by=received_by,
                    notes=notes,
                )
        except IntegrityError:
            raise DuplicateLotError(
                f'Lot "{lot_number}" already exists for {medication.sku}'
            )

        ledger.append(
            AuditActionChoices.STOCK_UPDATE,
            operator=operator,
            target_table=InventoryLot._meta.db_table,
            target_id=lot.pk,
            payload={
                'operation': 'LOT_RECEIVED',
                'medication_id': str(medication.pk),
                'sku': medication.sku,
                'lot_number': lot.lot_number,
                'quantity_total': lot.quantity_total,
                'expiry_date': lot.expiry_date,
            },
        )

    log_domain_event(
        'lot_received',
        entity_type='InventoryLot',
        entity_id=str(lot.pk),
        entity_ids={'medication_id': str(medication.pk)},
        quantity=quantity_total,
    )
    return lot
