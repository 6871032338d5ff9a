"""
Resources views: chairs, rooms, occupancy and sterilization labels.
"""
from rest_framework import mixins, viewsets
from rest_framework.decorators import action
from rest_framework.views import APIView

from apps.authz.permissions import CanOperateFront
from apps.core.exceptions import DomainValidationError
from apps.core.models import AuditActionChoices, log_audit
from apps.core.responses import EnvelopeResponseMixin, success_response
from apps.core.tenancy import ClinicScopedMixin, get_request_clinic

from .models import Room, SterilizationCycle, TreatmentChair
from .serializers import (
    BlockChairSerializer,
    ParseLabelSerializer,
    RoomSerializer,
    SterilizationCycleSerializer,
    TreatmentChairSerializer,
)
from . import services


class RoomViewSet(ClinicScopedMixin, EnvelopeResponseMixin, viewsets.ModelViewSet):
    queryset = Room.objects.all()
    serializer_class = RoomSerializer
    permission_classes = [CanOperateFront]
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']

    def perform_destroy(self, instance):
        instance.soft_delete()


class TreatmentChairViewSet(ClinicScopedMixin, EnvelopeResponseMixin, viewsets.ModelViewSet):
    """
    Endpoints:
    - GET /api/resources/chairs/?is_active=&room=
    - POST /api/resources/chairs/
    - PATCH /api/resources/chairs/{id}/
    - DELETE /api/resources/chairs/{id}/ (soft delete)
    - POST /api/resources/chairs/{id}/block/
    - POST /api/resources/chairs/{id}/release/
    """
    queryset = TreatmentChair.objects.select_related('room')
    serializer_class = TreatmentChairSerializer
    permission_classes = [CanOperateFront]
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']
    pagination_class = None

    def get_queryset(self):
        queryset = super().get_queryset()

        is_active = self.request.query_params.get('is_active')
        if is_active is not None:
            queryset = queryset.filter(is_active=is_active.lower() == 'true')

        room_id = self.request.query_params.get('room')
        if room_id:
            queryset = queryset.filter(room_id=room_id)

        return queryset

    def perform_destroy(self, instance):
        instance.soft_delete()
        log_audit(
            self.clinic,
            self.request.user,
            AuditActionChoices.DELETE,
            'TreatmentChair',
            instance.id,
            request=self.request,
        )

    @action(detail=True, methods=['post'], url_path='block')
    def block(self, request, pk=None):
        """
        POST /api/resources/chairs/{id}/block/

        Request body:
        {
            "reason": "Compressor repair",
            "blockType": "MAINTENANCE",
            "durationMinutes": 120
        }
        """
        chair = self.get_object()
        serializer = BlockChairSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        services.block_chair(
            chair,
            data['reason'],
            block_type=data['blockType'],
            blocked_until=data.get('blockedUntil'),
            duration_minutes=data.get('durationMinutes'),
            user=request.user,
            request=request,
        )
        return success_response(TreatmentChairSerializer(chair, context={'request': request}).data)

    @action(detail=True, methods=['post'], url_path='release')
    def release(self, request, pk=None):
        chair = self.get_object()
        services.release_chair(chair, user=request.user, request=request)
        return success_response(TreatmentChairSerializer(chair, context={'request': request}).data)


class OccupancySummaryView(APIView):
    """GET /api/resources/occupancy/"""
    permission_classes = [CanOperateFront]

    def get(self, request):
        clinic = get_request_clinic(request)
        return success_response(services.occupancy_summary(clinic))


class SterilizationCycleViewSet(
    ClinicScopedMixin,
    EnvelopeResponseMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    """
    Endpoints:
    - GET /api/resources/sterilization/cycles/
    - POST /api/resources/sterilization/cycles/
    - GET /api/resources/sterilization/cycles/{id}/
    - GET /api/resources/sterilization/cycles/{id}/qr/
    """
    queryset = SterilizationCycle.objects.select_related('operator')
    serializer_class = SterilizationCycleSerializer
    permission_classes = [CanOperateFront]
    soft_delete = False

    def perform_create(self, serializer):
        serializer.instance = services.create_cycle(
            self.clinic,
            serializer.validated_data,
            user=self.request.user,
            request=self.request,
        )

    @action(detail=True, methods=['get'], url_path='qr')
    def qr(self, request, pk=None):
        cycle = self.get_object()
        return success_response(services.build_cycle_label(cycle))


class ParseLabelView(APIView):
    """
    POST /api/resources/sterilization/parse/

    Request body: {"content": "<scanned label text>"}
    """
    permission_classes = [CanOperateFront]

    def post(self, request):
        get_request_clinic(request)
        serializer = ParseLabelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        label = services.describe_label(serializer.validated_data['content'])
        if label is None:
            raise DomainValidationError('Unrecognized sterilization label format')
        return success_response(label)
