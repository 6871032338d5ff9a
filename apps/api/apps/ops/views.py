"""
Ops views: patient flow board and actions, scheduling dashboards.
"""
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.views import APIView

from apps.authz.permissions import CanOperateFront, CanViewDashboards
from apps.core.responses import success_response
from apps.core.tenancy import get_request_clinic, get_scoped_object

from . import dashboards, flow as flow_service
from .models import FlowStageChoices
from .serializers import (
    CallPatientSerializer,
    DayQuerySerializer,
    FlowNotesSerializer,
    FlowPrioritySerializer,
    FlowTransitionSerializer,
    MonthQuerySerializer,
    PatientFlowStateSerializer,
    SeatPatientSerializer,
    WeekQuerySerializer,
)


def _resolve_chair(clinic, chair_id):
    from apps.resources.models import TreatmentChair

    if not chair_id:
        return None
    return get_scoped_object(
        TreatmentChair.objects.filter(is_active=True),
        clinic,
        message='Chair not found',
        pk=chair_id,
    )


class PatientFlowViewSet(viewsets.ViewSet):
    """
    Patient flow keyed by appointment id.

    Endpoints:
    - GET /api/ops/flow/?date=YYYY-MM-DD (board grouped by stage)
    - GET /api/ops/flow/{appointmentId}/
    - POST /api/ops/flow/{appointmentId}/check-in/
    - POST /api/ops/flow/{appointmentId}/waiting/
    - POST /api/ops/flow/{appointmentId}/call/ {chairId?}
    - POST /api/ops/flow/{appointmentId}/seat/ {chairId}
    - POST /api/ops/flow/{appointmentId}/complete/
    - POST /api/ops/flow/{appointmentId}/check-out/
    - POST /api/ops/flow/{appointmentId}/departed/
    - POST /api/ops/flow/{appointmentId}/priority/ {priority}
    - POST /api/ops/flow/{appointmentId}/transition/ {toStage, chairId?, notes?}
    """
    permission_classes = [CanOperateFront]

    @property
    def clinic(self):
        return get_request_clinic(self.request)

    def list(self, request):
        query = DayQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        board = flow_service.build_flow_board(self.clinic, query.validated_data.get('date'))
        return success_response(board)

    def retrieve(self, request, pk=None):
        flow = flow_service.get_flow(self.clinic, pk)
        return success_response(PatientFlowStateSerializer(flow).data)

    def _move(self, request, pk, to_stage, serializer_class=FlowNotesSerializer, create=False):
        clinic = self.clinic
        serializer = serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        to_stage = data.get('toStage', to_stage)
        create = create or to_stage == FlowStageChoices.CHECKED_IN

        flow = flow_service.get_flow(clinic, pk, create=create, user=request.user)
        flow = flow_service.transition_flow(
            flow,
            to_stage,
            chair=_resolve_chair(clinic, data.get('chairId')),
            notes=data.get('notes'),
            user=request.user,
        )
        return success_response(PatientFlowStateSerializer(flow).data)

    @action(detail=True, methods=['post'], url_path='check-in')
    def check_in(self, request, pk=None):
        return self._move(request, pk, FlowStageChoices.CHECKED_IN, create=True)

    @action(detail=True, methods=['post'], url_path='waiting')
    def waiting(self, request, pk=None):
        return self._move(request, pk, FlowStageChoices.WAITING)

    @action(detail=True, methods=['post'], url_path='call')
    def call(self, request, pk=None):
        return self._move(request, pk, FlowStageChoices.CALLED, CallPatientSerializer)

    @action(detail=True, methods=['post'], url_path='seat')
    def seat(self, request, pk=None):
        return self._move(request, pk, FlowStageChoices.IN_CHAIR, SeatPatientSerializer)

    @action(detail=True, methods=['post'], url_path='complete')
    def complete(self, request, pk=None):
        return self._move(request, pk, FlowStageChoices.COMPLETED)

    @action(detail=True, methods=['post'], url_path='check-out')
    def check_out(self, request, pk=None):
        return self._move(request, pk, FlowStageChoices.CHECKED_OUT)

    @action(detail=True, methods=['post'], url_path='departed')
    def departed(self, request, pk=None):
        return self._move(request, pk, FlowStageChoices.DEPARTED)

    @action(detail=True, methods=['post'], url_path='transition')
    def transition(self, request, pk=None):
        return self._move(request, pk, None, FlowTransitionSerializer)

    @action(detail=True, methods=['post'], url_path='priority')
    def priority(self, request, pk=None):
        serializer = FlowPrioritySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        flow = flow_service.get_flow(self.clinic, pk)
        flow = flow_service.set_priority(
            flow,
            serializer.validated_data['priority'],
            notes=serializer.validated_data.get('notes'),
            user=request.user,
        )
        return success_response(PatientFlowStateSerializer(flow).data)


class DayDashboardView(APIView):
    """GET /api/ops/dashboard/day/?date=YYYY-MM-DD&providerId="""
    permission_classes = [CanViewDashboards]

    def get(self, request):
        clinic = get_request_clinic(request)
        query = DayQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        return success_response(dashboards.build_day_dashboard(
            clinic,
            day=query.validated_data.get('date'),
            provider_id=query.validated_data.get('providerId'),
        ))


class WeekDashboardView(APIView):
    """GET /api/ops/dashboard/week/?weekStart=YYYY-MM-DD (normalized to its Monday)"""
    permission_classes = [CanViewDashboards]

    def get(self, request):
        clinic = get_request_clinic(request)
        query = WeekQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        return success_response(dashboards.build_week_dashboard(
            clinic,
            week_start=query.validated_data.get('weekStart'),
            provider_id=query.validated_data.get('providerId'),
        ))


class MonthDashboardView(APIView):
    """GET /api/ops/dashboard/month/?month=1..12&year=2020..2100"""
    permission_classes = [CanViewDashboards]

    def get(self, request):
        clinic = get_request_clinic(request)
        query = MonthQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        return success_response(dashboards.build_month_dashboard(
            clinic,
            month=query.validated_data.get('month'),
            year=query.validated_data.get('year'),
            provider_id=query.validated_data.get('providerId'),
        ))
