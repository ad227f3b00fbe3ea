"""
Inventory models: medication catalogue and received lots.

- Medication.active_ingredient is stored normalized (apps.core.ingredients)
- InventoryLot tracks one received lot with its own expiry and stock
- Lots are never deleted: dispensation records reference them (PROTECT)

Expiry and alert logic lives in apps.inventory.rules as free functions of
(lot, today), not as model properties, so it can be evaluated against any
reference date.
"""
from django.db import models
from django.db.models import F, Q
from django.utils.translation import gettext_lazy as _
from django.conf import settings
from django.utils import timezone
import uuid


class PharmaceuticalFormChoices(models.TextChoices):
    """Dosage forms stocked by a school nurse office."""
    TABLET = 'tablet', _('Tablet')
    CAPSULE = 'capsule', _('Capsule')
    ORAL_SOLUTION = 'oral_solution', _('Oral Solution')
    DROPS = 'drops', _('Drops')
    SYRUP = 'syrup', _('Syrup')
    OINTMENT = 'ointment', _('Ointment')
    CREAM = 'cream', _('Cream')
    INJECTABLE = 'injectable', _('Injectable')
    INHALER = 'inhaler', _('Inhaler')
    OTHER = 'other', _('Other')


class UnitMeasureChoices(models.TextChoices):
    UNIT = 'unit', _('Unit')
    ML = 'ml', _('Millilitre')
    MG = 'mg', _('Milligram')
    G = 'g', _('Gram')
    DROP = 'drop', _('Drop')


class Medication(models.Model):
    """
    Catalogue entry for a medication.

    Business Rules:
    - sku unique
    - active_ingredient persisted in normalized form
    - minimum_stock_qty drives low-stock alerts
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    sku = models.CharField(_('SKU'), max_length=50, unique=True)
    commercial_name = models.CharField(_('Commercial Name'), max_length=200)
    active_ingredient = models.CharField(
        _('Active Ingredient'),
        max_length=200,
        help_text=_('Normalized active ingredient used for allergy cross-checks')
    )
    dosage = models.CharField(_('Dosage'), max_length=50, help_text=_('e.g. 500mg, 10mg/ml'))
    pharmaceutical_form = models.CharField(
        _('Pharmaceutical Form'),
        max_length=20,
        choices=PharmaceuticalFormChoices.choices,
        default=PharmaceuticalFormChoices.TABLET
    )
    unit_measure = models.CharField(
        _('Unit Measure'),
        max_length=10,
        choices=UnitMeasureChoices.choices,
        default=UnitMeasureChoices.UNIT
    )
    minimum_stock_qty = models.PositiveIntegerField(_('Minimum Stock'), default=10)
    is_controlled = models.BooleanField(_('Controlled Substance'), default=False)
    requires_prescription = models.BooleanField(_('Requires Prescription'), default=False)
    is_active = models.BooleanField(_('Active'), default=True)

    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)
    updated_at = models.DateTimeField(_('Updated At'), auto_now=True)

    class Meta:
        db_table = 'inventory_medications'
        ordering = ['commercial_name']
        verbose_name = _('Medication')
        verbose_name_plural = _('Medications')
        indexes = [
            models.Index(fields=['active_ingredient'], name='idx_med_ingredient'),
            models.Index(fields=['is_active'], name='idx_med_active'),
        ]

    def __str__(self):
        return f"{self.commercial_name} {self.dosage} ({self.sku})"


class InventoryLot(models.Model):
    """
    One received lot of a medication.

    Business Rules:
    - lot_number unique per medication
    - quantity_total >= 1
    - 0 <= quantity_available <= quantity_total
    - expired from expiry_date onward; never dispensed once expired
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    medication = models.ForeignKey(
        Medication,
        on_delete=models.PROTECT,
        related_name='lots',
        verbose_name=_('Medication')
    )
    lot_number = models.CharField(_('Lot Number'), max_length=50)
    manufacturer = models.CharField(_('Manufacturer'), max_length=150, blank=True, default='')
    quantity_total = models.PositiveIntegerField(_('Quantity Received'))
    quantity_available = models.PositiveIntegerField(_('Quantity Available'))
    expiry_date = models.DateField(_('Expiry Date'))
    alert_window_days = models.PositiveIntegerField(
        _('Expiry Alert Window (days)'),
        default=30,
        help_text=_('Warn this many days before expiry')
    )
    received_at = models.DateTimeField(_('Received At'), default=timezone.now)
    received_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='received_lots',
        verbose_name=_('Received By')
    )
    notes = models.TextField(_('Notes'), blank=True, default='')

    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)
    updated_at = models.DateTimeField(_('Updated At'), auto_now=True)

    class Meta:
        db_table = 'inventory_lots'
        ordering = ['expiry_date', 'received_at']
        verbose_name = _('Inventory Lot')
        verbose_name_plural = _('Inventory Lots')
        constraints = [
            models.UniqueConstraint(
                fields=['medication', 'lot_number'],
                name='unique_lot_per_medication'
            ),
            models.CheckConstraint(
                condition=Q(quantity_total__gte=1),
                name='lot_quantity_total_positive'
            ),
            models.CheckConstraint(
                condition=Q(quantity_available__gte=0) & Q(quantity_available__lte=F('quantity_total')),
                name='lot_quantity_available_in_range'
            ),
            models.CheckConstraint(
                condition=Q(alert_window_days__gte=1),
                name='lot_alert_window_positive'
            ),
        ]
        indexes = [
            models.Index(fields=['medication', 'expiry_date'], name='idx_lot_med_expiry'),
            models.Index(fields=['expiry_date'], name='idx_lot_expiry'),
        ]

    def __str__(self):
        return f"{self.medication.commercial_name} lot {self.lot_number} (exp: {self.expiry_date})"
