"""
Lab URLs.
"""
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import LabBatchView, LabOrderViewSet, LabVendorViewSet, RemakeRequestViewSet

router = DefaultRouter()
router.register(r'vendors', LabVendorViewSet, basename='lab-vendor')
router.register(r'orders', LabOrderViewSet, basename='lab-order')
router.register(r'remakes', RemakeRequestViewSet, basename='remake')

urlpatterns = [
    path('batch/', LabBatchView.as_view(), name='lab-batch'),
    path('', include(router.urls)),
]
