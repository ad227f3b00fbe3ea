"""Clinical admin."""
from django.contrib import admin
from .models import AllergyRecord, ClinicalEpisode, DispensationRecord, Patient


class AllergyRecordInline(admin.TabularInline):
    """
    Allergies are shown here but managed through the API so that every
    change is audited.
    """
    model = AllergyRecord
    extra = 0
    fields = ['display_allergen_name', 'normalized_ingredient', 'severity', 'reaction_note', 'created_at']
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ['display_name', 'registration_code', 'grade', 'is_active', 'created_at']
    list_filter = ['is_active', 'grade']
    search_fields = ['display_name', 'registration_code']
    readonly_fields = ['id', 'created_at', 'updated_at']
    inlines = [AllergyRecordInline]

    def has_delete_permission(self, request, obj=None):
        """Deactivate instead; allergy history must stay on record."""
        return False


@admin.register(ClinicalEpisode)
class ClinicalEpisodeAdmin(admin.ModelAdmin):
    list_display = ['id', 'patient', 'status', 'opened_by', 'opened_at', 'closed_at']
    list_filter = ['status', 'opened_at']
    search_fields = ['patient__display_name']
    date_hierarchy = 'opened_at'
    readonly_fields = ['id', 'patient', 'opened_by', 'status', 'opened_at', 'closed_at']

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(DispensationRecord)
class DispensationRecordAdmin(admin.ModelAdmin):
    list_display = ['id', 'episode', 'lot', 'quantity', 'dispensed_by', 'dispensed_at']
    list_filter = ['dispensed_at']
    search_fields = ['lot__lot_number', 'lot__medication__commercial_name']
    date_hierarchy = 'dispensed_at'
    readonly_fields = [
        'id', 'episode', 'lot', 'dispensed_by', 'quantity', 'dosage_instructions',
        'allergy_check_passed', 'notes', 'dispensed_at',
    ]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        """
        SECURITY: Dispensation records are evidence and never edited.
        """
        return False

    def has_delete_permission(self, request, obj=None):
        return False
