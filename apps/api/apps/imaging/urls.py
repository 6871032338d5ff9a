"""
Imaging URLs.
"""
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import PatientImageViewSet

router = DefaultRouter()
router.register(r'images', PatientImageViewSet, basename='patient-image')

urlpatterns = [
    path('', include(router.urls)),
]
