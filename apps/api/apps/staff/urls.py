"""
Staff URLs.
"""
from django.urls import include, path
from rest_framework.routers import SimpleRouter

from .views import StaffProfileViewSet

router = SimpleRouter()
router.register(r'', StaffProfileViewSet, basename='staff')

urlpatterns = [
    path('', include(router.urls)),
]
