"""Clinical URLs."""
from django.urls import include, path
from rest_framework.routers import DefaultRouter
from .views import (
    AllergyCheckView,
    AllergyRecordViewSet,
    ClinicalEpisodeViewSet,
    DispensationViewSet,
    PatientViewSet,
)

router = DefaultRouter()
router.register(r'patients', PatientViewSet, basename='patient')
router.register(r'allergies', AllergyRecordViewSet, basename='allergy')
router.register(r'episodes', ClinicalEpisodeViewSet, basename='episode')
router.register(r'dispensations', DispensationViewSet, basename='dispensation')

urlpatterns = [
    path('allergy-check/', AllergyCheckView.as_view(), name='allergy-check'),
    path('', include(router.urls)),
]
