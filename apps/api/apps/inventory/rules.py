"""
Expiry and stock-level rules.

Pure functions over lots and dates. `today` is always passed in explicitly so
the same rule gives the same answer in the selector, the orchestrator and
the tests.

Expiry boundary: a lot is expired ON its expiry date (expiry_date <= today).
Only lots with expiry_date > today may be dispensed.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from django.db import models
from django.utils import timezone


class AlertLevel(models.TextChoices):
    """Stock alert urgency, most urgent first."""
    CRITICAL = 'critical', 'Critical'
    WARNING = 'warning', 'Warning'
    INFO = 'info', 'Info'


ALERT_LEVEL_ORDER = {
    AlertLevel.CRITICAL: 0,
    AlertLevel.WARNING: 1,
    AlertLevel.INFO: 2,
}


def local_today():
    return timezone.localdate()


def is_expired(lot, today: date) -> bool:
    return lot.expiry_date <= today


def is_expiring_soon(lot, today: date) -> bool:
    """Not yet expired but inside the lot's own alert window."""
    if is_expired(lot, today):
        return False
    return lot.expiry_date - timedelta(days=lot.alert_window_days) <= today


def is_eligible(lot, quantity: int, today: date) -> bool:
    """Can `quantity` units be dispensed from this lot today?"""
    return not is_expired(lot, today) and lot.quantity_available >= quantity


def days_until_expiry(expiry_date: date, today: date) -> int:
    """Negative once past expiry."""
    return (expiry_date - today).days


def expiry_status_label(expiry_date: Optional[date], today: date, alert_window_days: int = 30) -> str:
    """Human-readable expiry status for alert listings."""
    if expiry_date is None:
        return 'No expiry information'
    days = days_until_expiry(expiry_date, today)
    if days < 0:
        return f'Expired {-days} day(s) ago'
    if days == 0:
        return 'Expires today'
    if days <= alert_window_days:
        return f'Expires in {days} day(s)'
    return f'Valid until {expiry_date.isoformat()}'


@dataclass(frozen=True)
class StockAlert:
    """Stock situation of one medication, classified by urgency."""
    medication_id: object
    sku: str
    commercial_name: str
    active_ingredient: str
    total_stock: int
    minimum_stock_qty: int
    is_low_stock: bool
    nearest_expiry_date: Optional[date]
    is_expiring_soon: bool
    has_expired_lot: bool
    expiry_status_label: str
    level: str
    lot_exhausted: bool = False

    def as_dict(self):
        return {
            'medication_id': str(self.medication_id),
            'sku': self.sku,
            'commercial_name': self.commercial_name,
            'active_ingredient': self.active_ingredient,
            'total_stock': self.total_stock,
            'minimum_stock_qty': self.minimum_stock_qty,
            'is_low_stock': self.is_low_stock,
            'nearest_expiry_date': self.nearest_expiry_date.isoformat() if self.nearest_expiry_date else None,
            'is_expiring_soon': self.is_expiring_soon,
            'has_expired_lot': self.has_expired_lot,
            'expiry_status_label': self.expiry_status_label,
            'level': self.level,
            'lot_exhausted': self.lot_exhausted,
        }


def classify_stock(total_stock: int, minimum_stock_qty: int, has_expired_lot: bool, expiring_soon: bool) -> str:
    """
    Alert level for a medication.

    critical: an expired lot still holds stock, or no usable stock left
    warning:  usable stock at/below the minimum, or a lot expiring soon
    info:     nothing urgent
    """
    if has_expired_lot or total_stock == 0:
        return AlertLevel.CRITICAL
    if total_stock <= minimum_stock_qty or expiring_soon:
        return AlertLevel.WARNING
    return AlertLevel.INFO


def build_stock_alert(medication, lots, today: date, lot_exhausted: bool = False) -> StockAlert:
    """
    Classify a medication from its lots (only lots with stock matter).
    """
    stocked = [lot for lot in lots if lot.quantity_available > 0]
    usable = [lot for lot in stocked if not is_expired(lot, today)]

    total_stock = sum(lot.quantity_available for lot in usable)
    has_expired_lot = any(is_expired(lot, today) for lot in stocked)
    expiring = [lot for lot in usable if is_expiring_soon(lot, today)]

    nearest = min(stocked, key=lambda lot: lot.expiry_date, default=None)
    nearest_expiry_date = nearest.expiry_date if nearest else None
    window = nearest.alert_window_days if nearest else 30

    return StockAlert(
        medication_id=medication.pk,
        sku=medication.sku,
        commercial_name=medication.commercial_name,
        active_ingredient=medication.active_ingredient,
        total_stock=total_stock,
        minimum_stock_qty=medication.minimum_stock_qty,
        is_low_stock=total_stock <= medication.minimum_stock_qty,
        nearest_expiry_date=nearest_expiry_date,
        is_expiring_soon=bool(expiring),
        has_expired_lot=has_expired_lot,
        expiry_status_label=expiry_status_label(nearest_expiry_date, today, window),
        level=classify_stock(total_stock, medication.minimum_stock_qty, has_expired_lot, bool(expiring)),
        lot_exhausted=lot_exhausted,
    )
