"""
Booking URLs.
"""
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import AppointmentCancellationViewSet, AppointmentTypeViewSet, AppointmentViewSet

router = DefaultRouter()
router.register(r'appointment-types', AppointmentTypeViewSet, basename='appointment-type')
router.register(r'appointments', AppointmentViewSet, basename='appointment')
router.register(r'cancellations', AppointmentCancellationViewSet, basename='cancellation')

urlpatterns = [
    path('', include(router.urls)),
]
