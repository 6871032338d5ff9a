"""
Booking serializers.

Write payloads use the camelCase keys of the booking API; read payloads are
plain model serializers.
"""
from datetime import timedelta

from django.utils import timezone
from rest_framework import serializers

from .models import (
    Appointment,
    AppointmentCancellation,
    AppointmentSourceChoices,
    AppointmentStatusChoices,
    AppointmentType,
    CancellationTypeChoices,
    ConfirmationStatusChoices,
)

PAST_BOOKING_GRACE = timedelta(minutes=5)


class AppointmentTypeSerializer(serializers.ModelSerializer):
    class Meta:
        model = AppointmentType
        fields = [
            'id',
            'code',
            'name',
            'default_duration',
            'color',
            'is_active',
            'sort_order',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_code(self, value):
        if not value.replace('_', '').isalnum() or value.upper() != value:
            raise serializers.ValidationError(
                'Code must be uppercase letters, numbers, and underscores only'
            )
        return value

    def validate_color(self, value):
        if len(value) != 7 or not value.startswith('#'):
            raise serializers.ValidationError('Must be a valid hex color (e.g., #3B82F6)')
        try:
            int(value[1:], 16)
        except ValueError:
            raise serializers.ValidationError('Must be a valid hex color (e.g., #3B82F6)')
        return value


class AppointmentSerializer(serializers.ModelSerializer):
    patient_name = serializers.CharField(source='patient.full_name', read_only=True)
    provider_name = serializers.CharField(source='provider.display_name', read_only=True)
    appointment_type_name = serializers.CharField(source='appointment_type.name', read_only=True)
    chair_name = serializers.CharField(source='chair.name', read_only=True, default=None)
    room_name = serializers.CharField(source='room.name', read_only=True, default=None)

    class Meta:
        model = Appointment
        fields = [
            'id',
            'patient',
            'patient_name',
            'provider',
            'provider_name',
            'appointment_type',
            'appointment_type_name',
            'chair',
            'chair_name',
            'room',
            'room_name',
            'start_time',
            'end_time',
            'duration',
            'status',
            'confirmation_status',
            'source',
            'notes',
            'patient_notes',
            'confirmed_at',
            'arrived_at',
            'started_at',
            'completed_at',
            'cancelled_at',
            'cancellation_reason',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class AppointmentCreateSerializer(serializers.Serializer):
    patientId = serializers.UUIDField()
    appointmentTypeId = serializers.UUIDField()
    providerId = serializers.UUIDField()
    startTime = serializers.DateTimeField()
    endTime = serializers.DateTimeField(required=False)
    duration = serializers.IntegerField(required=False, min_value=1, max_value=480)
    chairId = serializers.UUIDField(required=False, allow_null=True)
    roomId = serializers.UUIDField(required=False, allow_null=True)
    status = serializers.ChoiceField(
        choices=[AppointmentStatusChoices.SCHEDULED, AppointmentStatusChoices.CONFIRMED],
        required=False,
    )
    confirmationStatus = serializers.ChoiceField(choices=ConfirmationStatusChoices.choices, required=False)
    source = serializers.ChoiceField(choices=AppointmentSourceChoices.choices, required=False)
    notes = serializers.CharField(max_length=2000, required=False, allow_blank=True, allow_null=True)
    patientNotes = serializers.CharField(max_length=1000, required=False, allow_blank=True, allow_null=True)

    def validate(self, attrs):
        if attrs.get('endTime') and attrs['endTime'] <= attrs['startTime']:
            raise serializers.ValidationError({'endTime': 'End time must be after start time'})
        if attrs['startTime'] < timezone.now() - PAST_BOOKING_GRACE:
            raise serializers.ValidationError({'startTime': 'Appointment cannot be scheduled in the past'})
        return attrs


class AppointmentUpdateSerializer(serializers.Serializer):
    appointmentTypeId = serializers.UUIDField(required=False)
    providerId = serializers.UUIDField(required=False)
    chairId = serializers.UUIDField(required=False, allow_null=True)
    roomId = serializers.UUIDField(required=False, allow_null=True)
    startTime = serializers.DateTimeField(required=False)
    endTime = serializers.DateTimeField(required=False)
    duration = serializers.IntegerField(required=False, min_value=1, max_value=480)
    notes = serializers.CharField(max_length=2000, required=False, allow_blank=True, allow_null=True)
    patientNotes = serializers.CharField(max_length=1000, required=False, allow_blank=True, allow_null=True)

    def validate(self, attrs):
        if attrs.get('startTime') and attrs.get('endTime') and attrs['endTime'] <= attrs['startTime']:
            raise serializers.ValidationError({'endTime': 'End time must be after start time'})
        return attrs


class AppointmentNotesSerializer(serializers.Serializer):
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True, allow_null=True)


class CancelAppointmentSerializer(serializers.Serializer):
    cancellationReason = serializers.CharField(max_length=500)
    cancellationType = serializers.ChoiceField(
        choices=[
            CancellationTypeChoices.CANCELLED,
            CancellationTypeChoices.LATE_CANCEL,
            CancellationTypeChoices.PRACTICE_CANCEL,
        ],
        required=False,
    )
    noticeHours = serializers.DecimalField(max_digits=8, decimal_places=2, required=False, min_value=0)


class NoShowSerializer(serializers.Serializer):
    noShowReason = serializers.CharField(max_length=500, required=False, allow_blank=True, allow_null=True)


class AppointmentCancellationSerializer(serializers.ModelSerializer):
    patient_name = serializers.CharField(source='patient.full_name', read_only=True)
    appointment_start = serializers.DateTimeField(source='appointment.start_time', read_only=True)

    class Meta:
        model = AppointmentCancellation
        fields = [
            'id',
            'appointment',
            'appointment_start',
            'patient',
            'patient_name',
            'cancellation_type',
            'reason',
            'notice_hours',
            'is_late_cancel',
            'late_cancel_fee',
            'fee_waived',
            'recovery_status',
            'recovery_attempts',
            'last_recovery_attempt_at',
            'recovery_notes',
            'rescheduled_appointment',
            'cancelled_at',
            'created_at',
        ]
        read_only_fields = fields


class RecoveryAttemptSerializer(serializers.Serializer):
    RESULTS = ['PENDING', 'NO_RESPONSE', 'RESCHEDULED', 'DECLINED']

    result = serializers.ChoiceField(choices=RESULTS)
    notes = serializers.CharField(max_length=2000, required=False, allow_blank=True, default='')
    rescheduledAppointmentId = serializers.UUIDField(required=False, allow_null=True)
