"""Inventory serializers with lot and expiry validation."""
from rest_framework import serializers

from .models import Medication, InventoryLot
from .rules import AlertLevel, days_until_expiry, is_expired, local_today


class MedicationSerializer(serializers.ModelSerializer):
    """Serializer for Medication (ingredient normalized by the service)."""

    class Meta:
        model = Medication
        fields = [
            'id', 'sku', 'commercial_name', 'active_ingredient', 'dosage',
            'pharmaceutical_form', 'unit_measure', 'minimum_stock_qty',
            'is_controlled', 'requires_prescription', 'is_active',
            'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
        # Uniqueness is checked by register_medication() so the error
        # carries its error_type.
        extra_kwargs = {'sku': {'validators': []}}


class InventoryLotSerializer(serializers.ModelSerializer):
    """Serializer for InventoryLot with derived expiry fields."""

    medication_sku = serializers.CharField(source='medication.sku', read_only=True)
    medication_name = serializers.CharField(source='medication.commercial_name', read_only=True)
    is_expired = serializers.SerializerMethodField()
    days_until_expiry = serializers.SerializerMethodField()

    class Meta:
        model = InventoryLot
        fields = [
            'id', 'medication', 'medication_sku', 'medication_name',
            'lot_number', 'manufacturer', 'quantity_total', 'quantity_available',
            'expiry_date', 'alert_window_days', 'received_at', 'received_by', 'notes',
            'is_expired', 'days_until_expiry',
            'created_at', 'updated_at',
        ]
        read_only_fields = [
            'id', 'quantity_available', 'received_at', 'received_by',
            'is_expired', 'days_until_expiry', 'created_at', 'updated_at',
        ]
        validators = []

    def get_is_expired(self, obj):
        return is_expired(obj, local_today())

    def get_days_until_expiry(self, obj):
        return days_until_expiry(obj.expiry_date, local_today())

    def validate_quantity_total(self, value):
        if value < 1:
            raise serializers.ValidationError('Quantity received must be at least 1')
        return value

    def validate_alert_window_days(self, value):
        if value < 1:
            raise serializers.ValidationError('Alert window must be at least 1 day')
        return value

    def validate(self, attrs):
        """Reject receiving lots that are already expired."""
        expiry_date = attrs.get('expiry_date')
        if expiry_date and expiry_date <= local_today():
            raise serializers.ValidationError({
                'expiry_date': 'Cannot receive a lot that is already expired'
            })
        return attrs


class StockAlertSerializer(serializers.Serializer):
    """Read-only rendering of a StockAlert."""
    medication_id = serializers.UUIDField()
    sku = serializers.CharField()
    commercial_name = serializers.CharField()
    active_ingredient = serializers.CharField()
    total_stock = serializers.IntegerField()
    minimum_stock_qty = serializers.IntegerField()
    is_low_stock = serializers.BooleanField()
    nearest_expiry_date = serializers.DateField(allow_null=True)
    is_expiring_soon = serializers.BooleanField()
    has_expired_lot = serializers.BooleanField()
    expiry_status_label = serializers.CharField()
    level = serializers.ChoiceField(choices=AlertLevel.choices)
    lot_exhausted = serializers.BooleanField()


class AlertQuerySerializer(serializers.Serializer):
    level = serializers.ChoiceField(choices=AlertLevel.choices, default=AlertLevel.INFO)


class BestLotQuerySerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1, default=1)
