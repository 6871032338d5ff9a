"""
Content URLs.
"""
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import ContentArticleViewSet, ContentDeliveryViewSet

router = DefaultRouter()
router.register(r'articles', ContentArticleViewSet, basename='content-article')
router.register(r'deliveries', ContentDeliveryViewSet, basename='content-delivery')

urlpatterns = [
    path('', include(router.urls)),
]
