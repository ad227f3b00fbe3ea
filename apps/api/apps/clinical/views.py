"""
Clinical views: patients, allergies, episodes and dispensation.

Views validate input, build the Operator from request.user and delegate
to the services. No business decision is taken here.
"""
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.audit.ledger import AuditContext, AuditLedger, append_best_effort
from apps.audit.models import AuditActionChoices
from apps.authz.operators import operator_from_user
from apps.core.exceptions import BusinessRuleError, NotFoundError
from apps.core.observability.correlation import set_user_id
from .allergies import allergy_profile, register_allergy, remove_allergy
from .crosscheck import AllergyCrossCheck
from .dispensation import build_orchestrator
from .episodes import close_episode, open_episode
from .models import AllergyRecord, ClinicalEpisode, DispensationRecord, Patient
from .serializers import (
    AllergyCheckRequestSerializer,
    AllergyCreateSerializer,
    AllergyRecordSerializer,
    ClinicalEpisodeSerializer,
    DispensationRecordSerializer,
    DispenseRequestSerializer,
    EpisodeCloseSerializer,
    PatientSerializer,
    render_check,
    render_outcome,
)


UUID_PATTERN = '[0-9a-fA-F-]{36}'


def business_error_response(error, status_code=status.HTTP_400_BAD_REQUEST):
    return Response(
        {'error': ' '.join(error.messages), 'error_type': error.error_type},
        status=status_code
    )


def not_found_response(error):
    return Response(
        {'error': f'{error.entity.capitalize()} not found', 'error_type': 'not_found'},
        status=status.HTTP_404_NOT_FOUND
    )


class PatientViewSet(mixins.CreateModelMixin,
                     mixins.ListModelMixin,
                     mixins.RetrieveModelMixin,
                     viewsets.GenericViewSet):
    """Patients and their allergy records."""

    queryset = Patient.objects.all()
    serializer_class = PatientSerializer
    permission_classes = [IsAuthenticated]

    @action(detail=True, methods=['get', 'post'], url_path='allergies')
    def allergies(self, request, pk=None):
        """
        GET  /api/v1/clinical/patients/{id}/allergies/  -> profile, most severe first
        POST /api/v1/clinical/patients/{id}/allergies/  -> register an allergy
        """
        patient = self.get_object()
        set_user_id(request.user.pk)

        if request.method == 'GET':
            records = allergy_profile(patient.pk)
            return Response(AllergyRecordSerializer(records, many=True).data)

        serializer = AllergyCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            allergy = register_allergy(
                patient=patient,
                allergen_name=data['allergen_name'],
                ingredient=data['ingredient'],
                severity=data['severity'],
                operator=operator_from_user(request.user),
                reaction_note=data.get('reaction_note') or None,
                diagnosed_by=data.get('diagnosed_by') or None,
                created_by=request.user,
            )
        except BusinessRuleError as e:
            status_code = (
                status.HTTP_409_CONFLICT if e.error_type == 'duplicate_allergy'
                else status.HTTP_400_BAD_REQUEST
            )
            return business_error_response(e, status_code)

        return Response(AllergyRecordSerializer(allergy).data, status=status.HTTP_201_CREATED)


class AllergyRecordViewSet(mixins.RetrieveModelMixin,
                           mixins.DestroyModelMixin,
                           viewsets.GenericViewSet):
    """Single allergy records (removal is audited)."""

    queryset = AllergyRecord.objects.all()
    lookup_value_regex = UUID_PATTERN
    serializer_class = AllergyRecordSerializer
    permission_classes = [IsAuthenticated]

    def destroy(self, request, *args, **kwargs):
        set_user_id(request.user.pk)
        try:
            remove_allergy(kwargs['pk'], operator=operator_from_user(request.user))
        except NotFoundError as e:
            return not_found_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ClinicalEpisodeViewSet(mixins.CreateModelMixin,
                             mixins.ListModelMixin,
                             mixins.RetrieveModelMixin,
                             viewsets.GenericViewSet):
    """
    Nurse-office visits.

    Query params:
    - patient: episodes of one patient
    - status: filter by status
    """

    queryset = ClinicalEpisode.objects.all()
    lookup_value_regex = UUID_PATTERN
    serializer_class = ClinicalEpisodeSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params
        if params.get('patient'):
            queryset = queryset.filter(patient_id=params['patient'])
        if params.get('status'):
            queryset = queryset.filter(status=params['status'])
        return queryset

    def create(self, request, *args, **kwargs):
        set_user_id(request.user.pk)
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        episode = open_episode(
            patient=data['patient'],
            operator=operator_from_user(request.user),
            opened_by=request.user,
            symptoms=data['symptoms'],
            clinical_notes=data.get('clinical_notes'),
            temperature_c=data.get('temperature_c'),
            blood_pressure=data.get('blood_pressure'),
        )
        return Response(self.get_serializer(episode).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='close')
    def close(self, request, pk=None):
        """
        End an open episode without dispensing.

        POST /api/v1/clinical/episodes/{id}/close/
        {"status": "referred", "referral_destination": "UPA Centro"}
        """
        set_user_id(request.user.pk)
        serializer = EpisodeCloseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            episode = close_episode(
                episode_id=pk,
                status=data['status'],
                operator=operator_from_user(request.user),
                referral_destination=data.get('referral_destination'),
                clinical_notes=data.get('clinical_notes'),
            )
        except NotFoundError as e:
            return not_found_response(e)
        except BusinessRuleError as e:
            return business_error_response(e)

        return Response(self.get_serializer(episode).data)


class DispensationViewSet(mixins.RetrieveModelMixin,
                          viewsets.GenericViewSet):
    """
    Dispense medication and read dispensation records.

    POST /api/v1/clinical/dispensations/
    {
        "episode": "uuid-episode-id",
        "lot": "uuid-lot-id",
        "quantity": 1,
        "dosage_instructions": "1 tablet orally, once",
        "notes": "optional"
    }

    Status codes: 201 success, 409 blocked or insufficient stock,
    400 episode closed / lot expired / invalid input, 404 unknown episode
    or lot, 500 internal failure.
    """

    queryset = DispensationRecord.objects.select_related('lot', 'lot__medication')
    serializer_class = DispensationRecordSerializer
    permission_classes = [IsAuthenticated]

    def create(self, request, *args, **kwargs):
        set_user_id(request.user.pk)
        operator = operator_from_user(request.user)
        raw = request.data if hasattr(request.data, 'get') else {}

        # Written before validation so malformed attempts are on record too.
        append_best_effort(
            AuditLedger(),
            AuditActionChoices.DISPENSE_ATTEMPT,
            operator=operator,
            target_table=ClinicalEpisode._meta.db_table,
            target_id=str(raw.get('episode', ''))[:64],
            payload={
                'episode': str(raw.get('episode', '')),
                'lot': str(raw.get('lot', '')),
                'quantity': str(raw.get('quantity', '')),
            },
            context=AuditContext.from_request(request),
        )

        serializer = DispenseRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        outcome = build_orchestrator().dispense(
            episode_id=data['episode'],
            lot_id=data['lot'],
            quantity=data['quantity'],
            dosage_instructions=data['dosage_instructions'],
            operator=operator,
            notes=data.get('notes') or None,
        )
        return Response(render_outcome(outcome), status=outcome.http_status)

    def retrieve(self, request, *args, **kwargs):
        """Reading a dispensation record is itself audited (RECORD_VIEW)."""
        record = self.get_object()
        set_user_id(request.user.pk)

        append_best_effort(
            AuditLedger(),
            AuditActionChoices.RECORD_VIEW,
            operator=operator_from_user(request.user),
            target_table=DispensationRecord._meta.db_table,
            target_id=record.pk,
            payload={'episode_id': str(record.episode_id)},
            context=AuditContext.from_request(request),
        )
        return Response(self.get_serializer(record).data)


class AllergyCheckView(APIView):
    """
    Speculative allergy cross-check (no writes, no audit).

    POST /api/v1/clinical/allergy-check/
    {"patient": "uuid", "lot": "uuid"}   or   {"patient": "uuid", "medication": "uuid"}
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = AllergyCheckRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            result = AllergyCrossCheck().check(serializer.validated_data['patient'], serializer.ingredient())
        except NotFoundError as e:
            return not_found_response(e)

        return Response(render_check(result))
