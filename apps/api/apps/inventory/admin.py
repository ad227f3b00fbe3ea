"""Inventory admin."""
from django.contrib import admin
from .models import Medication, InventoryLot
from apps.core.ingredients import normalize_ingredient
from .rules import is_expired, local_today


class InventoryLotInline(admin.TabularInline):
    model = InventoryLot
    extra = 0
    fields = ['lot_number', 'quantity_total', 'quantity_available', 'expiry_date', 'alert_window_days']
    readonly_fields = ['lot_number', 'quantity_total', 'quantity_available', 'expiry_date', 'alert_window_days']
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Medication)
class MedicationAdmin(admin.ModelAdmin):
    list_display = ['sku', 'commercial_name', 'active_ingredient', 'dosage', 'minimum_stock_qty', 'is_active']
    list_filter = ['is_active', 'is_controlled', 'requires_prescription', 'pharmaceutical_form']
    search_fields = ['sku', 'commercial_name', 'active_ingredient']
    readonly_fields = ['id', 'created_at', 'updated_at']
    ordering = ['commercial_name']
    inlines = [InventoryLotInline]

    def save_model(self, request, obj, form, change):
        obj.active_ingredient = normalize_ingredient(obj.active_ingredient)
        super().save_model(request, obj, form, change)


@admin.register(InventoryLot)
class InventoryLotAdmin(admin.ModelAdmin):
    list_display = [
        'lot_number', 'medication', 'quantity_available', 'quantity_total',
        'expiry_date', 'expired', 'received_at'
    ]
    list_filter = ['expiry_date', 'received_at']
    search_fields = ['lot_number', 'medication__sku', 'medication__commercial_name']
    autocomplete_fields = ['medication']
    readonly_fields = ['id', 'quantity_available', 'received_by', 'created_at', 'updated_at']
    date_hierarchy = 'expiry_date'
    ordering = ['expiry_date', 'lot_number']

    def expired(self, obj):
        return is_expired(obj, local_today())
    expired.boolean = True

    def has_add_permission(self, request):
        """Lots are received through the API so the receipt is audited."""
        return False

    def has_delete_permission(self, request, obj=None):
        """Lots are referenced by dispensation records and never deleted."""
        return False
