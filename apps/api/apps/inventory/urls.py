"""Inventory URLs."""
from django.urls import include, path
from rest_framework.routers import DefaultRouter
from .views import InventoryLotViewSet, MedicationViewSet, StockAlertView

router = DefaultRouter()
router.register(r'medications', MedicationViewSet, basename='inventory-medication')
router.register(r'lots', InventoryLotViewSet, basename='inventory-lot')

urlpatterns = [
    path('alerts/', StockAlertView.as_view(), name='inventory-alerts'),
    path('', include(router.urls)),
]
