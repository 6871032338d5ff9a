"""
Resources URLs.
"""
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    OccupancySummaryView,
    ParseLabelView,
    RoomViewSet,
    SterilizationCycleViewSet,
    TreatmentChairViewSet,
)

router = DefaultRouter()
router.register(r'chairs', TreatmentChairViewSet, basename='chair')
router.register(r'rooms', RoomViewSet, basename='room')
router.register(r'sterilization/cycles', SterilizationCycleViewSet, basename='sterilization-cycle')

urlpatterns = [
    path('occupancy/', OccupancySummaryView.as_view(), name='occupancy-summary'),
    path('sterilization/parse/', ParseLabelView.as_view(), name='sterilization-parse'),
    path('', include(router.urls)),
]
