"""
Clinical serializers: patients, allergies, episodes, dispensations.

Request serializers validate input only; the services decide business
outcomes. render_outcome() turns a dispensation outcome into a response
body.
"""
from rest_framework import serializers

from apps.inventory.models import InventoryLot, Medication
from .models import (
    AllergyRecord,
    AllergySeverityChoices,
    ClinicalEpisode,
    DispensationRecord,
    EpisodeStatusChoices,
    Patient,
)
from .crosscheck import build_block_message
from .episodes import MANUAL_CLOSE_STATUSES, status_label


MIN_DOSAGE_INSTRUCTIONS_LENGTH = 5


class PatientSerializer(serializers.ModelSerializer):

    class Meta:
        model = Patient
        fields = [
            'id', 'display_name', 'registration_code', 'birth_date', 'grade',
            'is_active', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']


class AllergyRecordSerializer(serializers.ModelSerializer):
    """Read representation of an allergy record."""

    class Meta:
        model = AllergyRecord
        fields = [
            'id', 'patient', 'display_allergen_name', 'normalized_ingredient',
            'severity', 'reaction_note', 'diagnosed_by', 'created_at',
        ]
        read_only_fields = fields


class AllergyCreateSerializer(serializers.Serializer):
    """Input for registering an allergy."""
    allergen_name = serializers.CharField(max_length=200)
    ingredient = serializers.CharField(max_length=200)
    severity = serializers.ChoiceField(choices=AllergySeverityChoices.choices)
    reaction_note = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    diagnosed_by = serializers.CharField(max_length=150, required=False, allow_blank=True, allow_null=True)

    def validate_allergen_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError('Allergen name is required')
        return value


class ClinicalEpisodeSerializer(serializers.ModelSerializer):
    status_label = serializers.SerializerMethodField()

    class Meta:
        model = ClinicalEpisode
        fields = [
            'id', 'patient', 'opened_by', 'status', 'status_label',
            'symptoms', 'clinical_notes', 'temperature_c', 'blood_pressure',
            'referral_destination', 'opened_at', 'closed_at',
        ]
        read_only_fields = [
            'id', 'opened_by', 'status', 'status_label',
            'referral_destination', 'opened_at', 'closed_at',
        ]

    def get_status_label(self, obj):
        return status_label(obj.status)

    def validate_temperature_c(self, value):
        if value is not None and not (30 <= value <= 45):
            raise serializers.ValidationError('Temperature must be between 30 and 45 °C')
        return value


class EpisodeCloseSerializer(serializers.Serializer):
    status = serializers.ChoiceField(
        choices=[(status, status.label) for status in MANUAL_CLOSE_STATUSES]
    )
    referral_destination = serializers.CharField(max_length=200, required=False, allow_null=True)
    clinical_notes = serializers.CharField(required=False, allow_null=True)

    def validate(self, attrs):
        if attrs['status'] == EpisodeStatusChoices.REFERRED and not attrs.get('referral_destination'):
            raise serializers.ValidationError({
                'referral_destination': 'Referral destination is required when referring'
            })
        return attrs


class DispensationRecordSerializer(serializers.ModelSerializer):
    lot_number = serializers.CharField(source='lot.lot_number', read_only=True)
    medication = serializers.UUIDField(source='lot.medication_id', read_only=True)
    medication_name = serializers.CharField(source='lot.medication.commercial_name', read_only=True)

    class Meta:
        model = DispensationRecord
        fields = [
            'id', 'episode', 'lot', 'lot_number', 'medication', 'medication_name',
            'dispensed_by', 'quantity', 'dosage_instructions',
            'allergy_check_passed', 'notes', 'dispensed_at',
        ]
        read_only_fields = fields


class DispenseRequestSerializer(serializers.Serializer):
    """Input for POST /dispensations/."""
    episode = serializers.UUIDField()
    lot = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)
    dosage_instructions = serializers.CharField()
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate_dosage_instructions(self, value):
        value = value.strip()
        if len(value) < MIN_DOSAGE_INSTRUCTIONS_LENGTH:
            raise serializers.ValidationError(
                f'Dosage instructions must have at least {MIN_DOSAGE_INSTRUCTIONS_LENGTH} characters'
            )
        return value


class AllergyCheckRequestSerializer(serializers.Serializer):
    """Speculative cross-check: by lot or by medication."""
    patient = serializers.UUIDField()
    lot = serializers.PrimaryKeyRelatedField(queryset=InventoryLot.objects.select_related('medication'), required=False)
    medication = serializers.PrimaryKeyRelatedField(queryset=Medication.objects.all(), required=False)

    def validate(self, attrs):
        if not attrs.get('lot') and not attrs.get('medication'):
            raise serializers.ValidationError('Provide either lot or medication')
        return attrs

    def ingredient(self):
        data = self.validated_data
        medication = data['lot'].medication if data.get('lot') else data['medication']
        return medication.active_ingredient


# ============================================================================
# Outcome rendering
# ============================================================================

def render_check(result):
    return {
        'patient_id': str(result.patient_id),
        'ingredient_checked': result.ingredient_checked,
        'safe': result.safe,
        'has_blocking_conflict': result.has_blocking_conflict,
        'has_warning_only': result.has_warning_only,
        'conflicts': [conflict.as_dict() for conflict in result.conflicts],
        'most_severe_conflict': (
            result.most_severe_conflict.as_dict() if result.most_severe_conflict else None
        ),
        'block_message': build_block_message(result) if result.has_blocking_conflict else None,
    }


def render_outcome(outcome):
    """Response body for a dispensation outcome."""
    body = {'outcome': outcome.kind}

    if outcome.kind == 'success':
        body.update({
            'dispensation': DispensationRecordSerializer(outcome.record).data,
            'remaining_stock': outcome.remaining_stock,
            'allergy_warnings': [conflict.as_dict() for conflict in outcome.warnings],
            'stock_alert': outcome.stock_alert.as_dict() if outcome.stock_alert else None,
        })
    elif outcome.kind == 'blocked':
        body.update({
            'error': 'Dispensation blocked: severe allergy on file',
            'error_type': 'allergy_blocked',
            'allergy_check': render_check(outcome.check),
        })
    elif outcome.kind == 'episode_closed':
        body.update({
            'error': f'Episode is {outcome.status}; only open episodes accept dispensations',
            'error_type': 'episode_closed',
            'episode_id': str(outcome.episode_id),
            'status': outcome.status,
        })
    elif outcome.kind == 'batch_expired':
        body.update({
            'error': f'Lot {outcome.lot_number} expired on {outcome.expiry_date.isoformat()}',
            'error_type': 'batch_expired',
            'lot_id': str(outcome.lot_id),
        })
    elif outcome.kind == 'stock_insufficient':
        body.update({
            'error': f'Insufficient stock. Requested: {outcome.requested}, available: {outcome.available}',
            'error_type': 'insufficient_stock',
            'requested': outcome.requested,
            'available': outcome.available,
        })
    elif outcome.kind == 'not_found':
        body.update({
            'error': f'{outcome.entity.capitalize()} not found',
            'error_type': 'not_found',
            'entity': outcome.entity,
        })
    else:
        body.update({
            'error': 'Dispensation could not be completed. No changes were made; please retry.',
            'error_type': 'internal',
        })

    return body
