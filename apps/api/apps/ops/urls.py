"""
Ops URLs.
"""
from django.urls import include, path
from rest_framework.routers import SimpleRouter

from .views import DayDashboardView, MonthDashboardView, PatientFlowViewSet, WeekDashboardView

router = SimpleRouter()
router.register(r'flow', PatientFlowViewSet, basename='flow')

urlpatterns = [
    path('dashboard/day/', DayDashboardView.as_view(), name='dashboard-day'),
    path('dashboard/week/', WeekDashboardView.as_view(), name='dashboard-week'),
    path('dashboard/month/', MonthDashboardView.as_view(), name='dashboard-month'),
    path('', include(router.urls)),
]
