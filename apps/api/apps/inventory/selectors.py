"""
Lot selection and stock reporting.

LotSelector answers read-only questions about stock:
- which lot should be dispensed next (FEFO)
- how much usable stock a medication has
- which medications need attention (alerts)
"""
from collections import defaultdict

from django.db.models import Sum
from django.db.models.functions import Coalesce

from apps.core.observability import metrics
from .models import InventoryLot, Medication
from .rules import (
    ALERT_LEVEL_ORDER,
    AlertLevel,
    build_stock_alert,
    local_today,
)


class LotSelector:
    """
    FEFO (First Expired, First Out) lot selection and stock alerts.

    today_provider is injectable so tests can pin the reference date.
    """

    def __init__(self, today_provider=local_today):
        self._today = today_provider

    def today(self):
        return self._today()

    @metrics.track_duration(metrics.stock_lot_selection_duration_seconds)
    def best_lot(self, medication_id, quantity_needed):
        """
        Lot to dispense `quantity_needed` units from, or None.

        Algorithm:
            1. Lots of the medication with quantity_available >= quantity_needed
            2. Exclude expired lots (expiry_date <= today)
            3. Earliest expiry first; ties go to the lot received first
        """
        if quantity_needed <= 0:
            raise ValueError("quantity_needed must be positive")

        return (
            InventoryLot.objects
            .filter(
                medication_id=medication_id,
                quantity_available__gte=quantity_needed,
                expiry_date__gt=self.today(),
            )
            .order_by('expiry_date', 'received_at', 'created_at')
            .first()
        )

    def total_stock(self, medication_id):
        """Sum of quantity_available across non-expired lots (0 if none)."""
        return InventoryLot.objects.filter(
            medication_id=medication_id,
            expiry_date__gt=self.today(),
        ).aggregate(
            total=Coalesce(Sum('quantity_available'), 0)
        )['total']

    def alerts(self, min_level=AlertLevel.INFO):
        """
        Classify every active medication, most urgent first.

        min_level filters out less urgent levels: min_level='warning' keeps
        critical and warning alerts.
        """
        threshold = ALERT_LEVEL_ORDER[AlertLevel(min_level)]
        today = self.today()

        lots_by_medication = defaultdict(list)
        for lot in InventoryLot.objects.filter(
            medication__is_active=True,
            quantity_available__gt=0,
        ):
            lots_by_medication[lot.medication_id].append(lot)

        alerts = []
        for medication in Medication.objects.filter(is_active=True):
            alert = build_stock_alert(medication, lots_by_medication.get(medication.pk, []), today)
            if ALERT_LEVEL_ORDER[alert.level] <= threshold:
                alerts.append(alert)

        alerts.sort(key=lambda a: (ALERT_LEVEL_ORDER[a.level], a.commercial_name))
        return alerts

    def alert_counts(self):
        counts = {level.value: 0 for level in AlertLevel}
        for alert in self.alerts():
            counts[alert.level] += 1
        counts['total'] = sum(counts.values())
        return counts

    def alert_for(self, medication, lot=None):
        """
        Alert to surface after a dispensation, or None.

        Returned when the medication is critical/warning, or when `lot`
        (the lot just dispensed from) is now exhausted.
        """
        lots = list(InventoryLot.objects.filter(medication=medication, quantity_available__gt=0))
        lot_exhausted = lot is not None and lot.quantity_available == 0
        alert = build_stock_alert(medication, lots, self.today(), lot_exhausted=lot_exhausted)

        if alert.level == AlertLevel.INFO and not lot_exhausted:
            return None
        return alert
