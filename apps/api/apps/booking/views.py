"""
Booking views.
"""
from datetime import datetime, time

from django.db.models import Q
from django.utils import timezone
from django.utils.dateparse import parse_date
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action

from apps.authz.permissions import CanOperateFront
from apps.core.exceptions import DomainValidationError
from apps.core.models import AuditActionChoices, log_audit
from apps.core.responses import EnvelopeResponseMixin, success_response
from apps.core.tenancy import ClinicScopedMixin

from .models import Appointment, AppointmentCancellation, AppointmentStatusChoices, AppointmentType
from .serializers import (
    AppointmentCancellationSerializer,
    AppointmentCreateSerializer,
    AppointmentNotesSerializer,
    AppointmentSerializer,
    AppointmentTypeSerializer,
    AppointmentUpdateSerializer,
    CancelAppointmentSerializer,
    NoShowSerializer,
    RecoveryAttemptSerializer,
)
from . import services

SORT_FIELDS = {
    'startTime': 'start_time',
    'createdAt': 'created_at',
    'status': 'status',
    'patientName': 'patient__last_name',
}


def _day_bound(value, end=False):
    """Query-string date -> aware datetime at the start (or end) of that day."""
    parsed = parse_date(value) if value else None
    if parsed is None:
        raise DomainValidationError(f'Invalid date: {value}')
    bound = datetime.combine(parsed, time.max if end else time.min)
    return timezone.make_aware(bound)


class AppointmentTypeViewSet(ClinicScopedMixin, EnvelopeResponseMixin, viewsets.ModelViewSet):
    queryset = AppointmentType.objects.all()
    serializer_class = AppointmentTypeSerializer
    permission_classes = [CanOperateFront]
    http_method_names = ['get', 'post', 'patch', 'head', 'options']
    soft_delete = False
    pagination_class = None

    def get_queryset(self):
        queryset = super().get_queryset()
        is_active = self.request.query_params.get('is_active')
        if is_active is not None:
            queryset = queryset.filter(is_active=is_active.lower() == 'true')
        return queryset


class AppointmentViewSet(ClinicScopedMixin, EnvelopeResponseMixin, viewsets.ModelViewSet):
    """
    ViewSet for appointment endpoints.

    Endpoints:
    - GET /api/booking/appointments/?startDate=&endDate=&providerId=&patientId=&status=&chairId=
      &search=&sortBy=&sortOrder=&page=&pageSize=
    - POST /api/booking/appointments/
    - GET /api/booking/appointments/{id}/
    - PATCH /api/booking/appointments/{id}/ (reschedule)
    - DELETE /api/booking/appointments/{id}/ (soft delete)
    - POST /api/booking/appointments/{id}/confirm/
    - POST /api/booking/appointments/{id}/check-in/
    - POST /api/booking/appointments/{id}/start/
    - POST /api/booking/appointments/{id}/complete/
    - POST /api/booking/appointments/{id}/cancel/
    - POST /api/booking/appointments/{id}/no-show/
    """
    queryset = Appointment.objects.select_related(
        'patient', 'provider', 'appointment_type', 'chair', 'room'
    )
    serializer_class = AppointmentSerializer
    permission_classes = [CanOperateFront]
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']
    filter_backends = []

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params

        if params.get('startDate'):
            queryset = queryset.filter(start_time__gte=_day_bound(params['startDate']))
        if params.get('endDate'):
            queryset = queryset.filter(start_time__lte=_day_bound(params['endDate'], end=True))

        for param, field in (
            ('providerId', 'provider_id'),
            ('patientId', 'patient_id'),
            ('chairId', 'chair_id'),
            ('roomId', 'room_id'),
            ('appointmentTypeId', 'appointment_type_id'),
        ):
            if params.get(param):
                queryset = queryset.filter(**{field: params[param]})

        for param, field in (
            ('status', 'status'),
            ('confirmationStatus', 'confirmation_status'),
            ('source', 'source'),
        ):
            value = params.get(param)
            if value and value != 'all':
                queryset = queryset.filter(**{field: value})

        search = params.get('search')
        if search:
            queryset = queryset.filter(
                Q(patient__first_name__icontains=search) | Q(patient__last_name__icontains=search)
            )

        sort_field = SORT_FIELDS.get(params.get('sortBy', 'startTime'), 'start_time')
        if params.get('sortOrder') == 'desc':
            return queryset.order_by(f'-{sort_field}', '-start_time')
        return queryset.order_by(sort_field, 'start_time')

    def create(self, request, *args, **kwargs):
        serializer = AppointmentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        appointment = services.create_appointment(
            self.clinic,
            serializer.validated_data,
            user=request.user,
            request=request,
        )
        return success_response(
            AppointmentSerializer(appointment).data,
            status=status.HTTP_201_CREATED,
        )

    def partial_update(self, request, *args, **kwargs):
        appointment = self.get_object()
        serializer = AppointmentUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        appointment = services.reschedule_appointment(
            appointment,
            serializer.validated_data,
            user=request.user,
            request=request,
        )
        return success_response(AppointmentSerializer(appointment).data)

    def perform_destroy(self, instance):
        instance.soft_delete()
        log_audit(
            self.clinic,
            self.request.user,
            AuditActionChoices.DELETE,
            'Appointment',
            instance.id,
            request=self.request,
        )

    def _transition(self, request, to_status):
        appointment = self.get_object()
        serializer = AppointmentNotesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        fields = {}
        notes = serializer.validated_data.get('notes')
        if notes:
            fields['notes'] = f'{appointment.notes}\n{notes}'.strip()
        appointment = services.transition_appointment(
            appointment,
            to_status,
            user=request.user,
            request=request,
            **fields
        )
        return success_response(AppointmentSerializer(appointment).data)

    @action(detail=True, methods=['post'], url_path='confirm')
    def confirm(self, request, pk=None):
        appointment = self.get_object()
        appointment = services.transition_appointment(
            appointment,
            AppointmentStatusChoices.CONFIRMED,
            user=request.user,
            request=request,
            confirmation_status='CONFIRMED',
        )
        return success_response(AppointmentSerializer(appointment).data)

    @action(detail=True, methods=['post'], url_path='check-in')
    def check_in(self, request, pk=None):
        return self._transition(request, AppointmentStatusChoices.ARRIVED)

    @action(detail=True, methods=['post'], url_path='start')
    def start(self, request, pk=None):
        return self._transition(request, AppointmentStatusChoices.IN_PROGRESS)

    @action(detail=True, methods=['post'], url_path='complete')
    def complete(self, request, pk=None):
        return self._transition(request, AppointmentStatusChoices.COMPLETED)

    @action(detail=True, methods=['post'], url_path='cancel')
    def cancel(self, request, pk=None):
        """
        POST /api/booking/appointments/{id}/cancel/

        Request body:
        {
            "cancellationReason": "Family emergency",
            "cancellationType": "CANCELLED",
            "noticeHours": 6
        }
        """
        appointment = self.get_object()
        serializer = CancelAppointmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        appointment, cancellation = services.cancel_appointment(
            appointment,
            data['cancellationReason'],
            cancellation_type=data.get('cancellationType'),
            notice_hours=data.get('noticeHours'),
            user=request.user,
            request=request,
        )
        return success_response({
            'appointment': AppointmentSerializer(appointment).data,
            'cancellation': AppointmentCancellationSerializer(cancellation).data,
        })

    @action(detail=True, methods=['post'], url_path='no-show')
    def no_show(self, request, pk=None):
        appointment = self.get_object()
        serializer = NoShowSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        appointment, cancellation = services.mark_no_show(
            appointment,
            serializer.validated_data.get('noShowReason') or '',
            user=request.user,
            request=request,
        )
        return success_response({
            'appointment': AppointmentSerializer(appointment).data,
            'cancellation': AppointmentCancellationSerializer(cancellation).data,
        })


class AppointmentCancellationViewSet(
    ClinicScopedMixin,
    EnvelopeResponseMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    Endpoints:
    - GET /api/booking/cancellations/?cancellationType=&recoveryStatus=&startDate=&endDate=
    - GET /api/booking/cancellations/{id}/
    - POST /api/booking/cancellations/{id}/recovery/
    """
    queryset = AppointmentCancellation.objects.select_related('patient', 'appointment')
    serializer_class = AppointmentCancellationSerializer
    permission_classes = [CanOperateFront]
    soft_delete = False
    filter_backends = []

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params

        cancellation_type = params.get('cancellationType')
        if cancellation_type and cancellation_type != 'all':
            queryset = queryset.filter(cancellation_type=cancellation_type)

        recovery_status = params.get('recoveryStatus')
        if recovery_status and recovery_status != 'all':
            queryset = queryset.filter(recovery_status=recovery_status)

        if params.get('startDate'):
            queryset = queryset.filter(cancelled_at__gte=_day_bound(params['startDate']))
        if params.get('endDate'):
            queryset = queryset.filter(cancelled_at__lte=_day_bound(params['endDate'], end=True))

        return queryset.order_by('-cancelled_at')

    def list(self, request, *args, **kwargs):
        response = super().list(request, *args, **kwargs)
        response.data['data']['summary'] = services.cancellation_summary(self.get_queryset())
        return response

    @action(detail=True, methods=['post'], url_path='recovery')
    def recovery(self, request, pk=None):
        """
        POST /api/booking/cancellations/{id}/recovery/

        Request body:
        {
            "result": "RESCHEDULED",
            "notes": "Booked for next Tuesday"
        }
        """
        cancellation = self.get_object()
        serializer = RecoveryAttemptSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        cancellation = services.record_recovery_attempt(
            cancellation,
            data['result'],
            notes=data.get('notes') or '',
            rescheduled_appointment_id=data.get('rescheduledAppointmentId'),
            user=request.user,
            request=request,
        )
        return success_response(AppointmentCancellationSerializer(cancellation).data)
