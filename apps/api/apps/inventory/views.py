"""Inventory views with lot receipt, FEFO lookup and stock alerts."""
from rest_framework import mixins, viewsets, status
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.authz.operators import operator_from_user
from apps.core.exceptions import BusinessRuleError
from apps.core.observability.correlation import set_user_id
from .models import Medication, InventoryLot
from .selectors import LotSelector
from .serializers import (
    AlertQuerySerializer,
    BestLotQuerySerializer,
    InventoryLotSerializer,
    MedicationSerializer,
    StockAlertSerializer,
)
from .services import receive_lot, register_medication


def business_error_response(error):
    """400 response for a service-level business rule violation."""
    return Response(
        {'error': ' '.join(error.messages), 'error_type': error.error_type},
        status=status.HTTP_400_BAD_REQUEST
    )


class MedicationViewSet(mixins.CreateModelMixin,
                        mixins.ListModelMixin,
                        mixins.RetrieveModelMixin,
                        viewsets.GenericViewSet):
    """Medication catalogue (no updates or deletes through the API)."""

    queryset = Medication.objects.all()
    serializer_class = MedicationSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.request.query_params.get('active') == 'true':
            queryset = queryset.filter(is_active=True)
        return queryset

    def create(self, request, *args, **kwargs):
        set_user_id(request.user.pk)
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            medication = register_medication(
                operator=operator_from_user(request.user),
                **serializer.validated_data
            )
        except BusinessRuleError as e:
            return business_error_response(e)

        return Response(self.get_serializer(medication).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['get'], url_path='best-lot')
    def best_lot(self, request, pk=None):
        """
        Lot FEFO would dispense from.

        GET /api/v1/inventory/medications/{id}/best-lot/?quantity=2
        """
        medication = self.get_object()
        query = BestLotQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        selector = LotSelector()
        lot = selector.best_lot(medication.pk, query.validated_data['quantity'])

        return Response({
            'lot': InventoryLotSerializer(lot).data if lot else None,
            'total_stock': selector.total_stock(medication.pk),
        })


class InventoryLotViewSet(mixins.CreateModelMixin,
                          mixins.ListModelMixin,
                          mixins.RetrieveModelMixin,
                          viewsets.GenericViewSet):
    """
    Lots are created by receipt and changed only by dispensation.

    Query params:
    - medication: lots of one medication
    """

    queryset = InventoryLot.objects.select_related('medication').all()
    serializer_class = InventoryLotSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = super().get_queryset().order_by('expiry_date', 'received_at')
        medication_id = self.request.query_params.get('medication')
        if medication_id:
            queryset = queryset.filter(medication_id=medication_id)
        return queryset

    def create(self, request, *args, **kwargs):
        set_user_id(request.user.pk)
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            lot = receive_lot(
                medication=data['medication'],
                lot_number=data['lot_number'],
                quantity_total=data['quantity_total'],
                expiry_date=data['expiry_date'],
                operator=operator_from_user(request.user),
                received_by=request.user,
                manufacturer=data.get('manufacturer', ''),
                alert_window_days=data.get('alert_window_days', 30),
                notes=data.get('notes', ''),
            )
        except BusinessRuleError as e:
            return business_error_response(e)

        return Response(self.get_serializer(lot).data, status=status.HTTP_201_CREATED)


class StockAlertView(APIView):
    """
    Stock alerts, most urgent first.

    GET /api/v1/inventory/alerts/?level=warning
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        query = AlertQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        selector = LotSelector()
        alerts = selector.alerts(min_level=query.validated_data['level'])

        return Response({
            'counts': selector.alert_counts(),
            'alerts': StockAlertSerializer(alerts, many=True).data,
        })
