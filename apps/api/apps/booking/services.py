"""
Booking service layer: create/reschedule with overlap checks, status
transitions and the cancellation/recovery workflow.
"""
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from apps.core.exceptions import ConflictError, DomainValidationError
from apps.core.models import AuditActionChoices, log_audit
from apps.core.observability import metrics
from apps.core.observability.events import log_appointment_transition
from apps.core.tenancy import get_scoped_object
from apps.patients.models import Patient
from apps.resources.models import Room, TreatmentChair
from apps.staff.models import StaffProfile, StaffStatusChoices

from .models import (
    Appointment,
    AppointmentCancellation,
    AppointmentStatusChoices,
    AppointmentType,
    CancellationTypeChoices,
    RecoveryStatusChoices,
    can_transition,
)

# Status -> timestamp field stamped on entry
STATUS_TIMESTAMPS = {
    AppointmentStatusChoices.CONFIRMED: 'confirmed_at',
    AppointmentStatusChoices.ARRIVED: 'arrived_at',
    AppointmentStatusChoices.IN_PROGRESS: 'started_at',
    AppointmentStatusChoices.COMPLETED: 'completed_at',
    AppointmentStatusChoices.CANCELLED: 'cancelled_at',
}

RECOVERY_RESULTS = {
    'RESCHEDULED': RecoveryStatusChoices.RECOVERED,
    'DECLINED': RecoveryStatusChoices.LOST,
}


def resolve_references(clinic, patient_id=None, appointment_type_id=None, provider_id=None,
                       chair_id=None, room_id=None):
    """
    Load the rows an appointment points at, all inside `clinic`.

    Raises NotFoundError with PATIENT_NOT_FOUND, APPOINTMENT_TYPE_NOT_FOUND,
    PROVIDER_NOT_FOUND or NOT_FOUND (chair/room).
    """
    refs = {}
    if patient_id is not None:
        refs['patient'] = get_scoped_object(
            Patient.objects.all(), clinic, 'PATIENT_NOT_FOUND', 'Patient not found', pk=patient_id
        )
    if appointment_type_id is not None:
        refs['appointment_type'] = get_scoped_object(
            AppointmentType.objects.filter(is_active=True),
            clinic,
            'APPOINTMENT_TYPE_NOT_FOUND',
            'Appointment type not found',
            pk=appointment_type_id,
        )
    if provider_id is not None:
        refs['provider'] = get_scoped_object(
            StaffProfile.objects.filter(is_provider=True, status=StaffStatusChoices.ACTIVE),
            clinic,
            'PROVIDER_NOT_FOUND',
            'Provider not found',
            pk=provider_id,
        )
    if chair_id:
        refs['chair'] = get_scoped_object(
            TreatmentChair.objects.filter(is_active=True), clinic, message='Chair not found', pk=chair_id
        )
    if room_id:
        refs['room'] = get_scoped_object(
            Room.objects.filter(is_active=True), clinic, message='Room not found', pk=room_id
        )
    return refs


def overlapping(clinic, start_time, end_time, exclude_id=None):
    """
    Live appointments in `clinic` whose interval overlaps [start, end).

    CANCELLED and NO_SHOW appointments never block.
    """
    qs = Appointment.objects.alive().filter(
        clinic=clinic,
        start_time__lt=end_time,
        end_time__gt=start_time,
    ).exclude(status__in=AppointmentStatusChoices.non_blocking())
    if exclude_id is not None:
        qs = qs.exclude(pk=exclude_id)
    return qs


def check_conflicts(clinic, start_time, end_time, provider, chair=None, room=None, exclude_id=None):
    """
    Raise ConflictError when the provider, chair or room is already booked.

    Checked in that order; the first hit wins.
    """
    qs = overlapping(clinic, start_time, end_time, exclude_id)
    checks = [
        ('provider', 'PROVIDER_CONFLICT', 'Provider', Q(provider=provider)),
        ('chair', 'CHAIR_CONFLICT', 'Chair', Q(chair=chair) if chair else None),
        ('room', 'ROOM_CONFLICT', 'Room', Q(room=room) if room else None),
    ]
    for resource, code, label, condition in checks:
        if condition is None:
            continue
        conflict = qs.filter(condition).order_by('start_time').first()
        if conflict is not None:
            metrics.appointment_conflicts_total.labels(resource=resource).inc()
            raise ConflictError(
                f'{label} already has an appointment during this time',
                code=code,
                details={
                    'conflictingAppointmentId': str(conflict.id),
                    'startTime': conflict.start_time.isoformat(),
                    'endTime': conflict.end_time.isoformat(),
                },
            )


def compute_end_time(start_time, duration=None, end_time=None, appointment_type=None):
    """Return (end_time, duration_minutes)."""
    if end_time is not None:
        return end_time, int((end_time - start_time).total_seconds() // 60)
    minutes = duration or appointment_type.default_duration
    return start_time + timedelta(minutes=minutes), minutes


def create_appointment(clinic, data, user=None, request=None):
    """
    Book an appointment and open its patient flow in SCHEDULED.

    `data` uses the request keys (patientId, appointmentTypeId, providerId,
    startTime, endTime?, duration?, chairId?, roomId?, ...).
    """
    from apps.ops.models import PatientFlowState

    refs = resolve_references(
        clinic,
        patient_id=data['patientId'],
        appointment_type_id=data['appointmentTypeId'],
        provider_id=data['providerId'],
        chair_id=data.get('chairId'),
        room_id=data.get('roomId'),
    )
    start_time = data['startTime']
    end_time, duration = compute_end_time(
        start_time,
        duration=data.get('duration'),
        end_time=data.get('endTime'),
        appointment_type=refs['appointment_type'],
    )

    initial_status = data.get('status') or AppointmentStatusChoices.SCHEDULED
    timestamps = {}
    if STATUS_TIMESTAMPS.get(initial_status):
        timestamps[STATUS_TIMESTAMPS[initial_status]] = timezone.now()

    with transaction.atomic():
        check_conflicts(
            clinic,
            start_time,
            end_time,
            refs['provider'],
            chair=refs.get('chair'),
            room=refs.get('room'),
        )
        appointment = Appointment.objects.create(
            clinic=clinic,
            start_time=start_time,
            end_time=end_time,
            duration=duration,
            status=initial_status,
            confirmation_status=data.get('confirmationStatus') or 'UNCONFIRMED',
            source=data.get('source') or 'STAFF',
            notes=data.get('notes') or '',
            patient_notes=data.get('patientNotes') or '',
            created_by=user if getattr(user, 'is_authenticated', False) else None,
            **refs,
            **timestamps,
        )
        PatientFlowState.objects.create(
            clinic=clinic,
            appointment=appointment,
            patient=appointment.patient,
            provider=appointment.provider,
            chair=appointment.chair,
            scheduled_at=start_time,
        )
        log_audit(
            clinic,
            user,
            AuditActionChoices.CREATE,
            'Appointment',
            appointment.id,
            after={
                'patient_id': str(appointment.patient_id),
                'provider_id': str(appointment.provider_id),
                'start_time': start_time.isoformat(),
                'end_time': end_time.isoformat(),
            },
            request=request,
        )
    return appointment


def reschedule_appointment(appointment, data, user=None, request=None):
    """
    Apply a PATCH. Time or resource changes re-run the overlap checks,
    excluding the appointment itself.
    """
    if appointment.is_terminal:
        raise DomainValidationError(
            f'Cannot modify an appointment with status {appointment.status}'
        )

    clinic = appointment.clinic
    refs = resolve_references(
        clinic,
        appointment_type_id=data.get('appointmentTypeId'),
        provider_id=data.get('providerId'),
        chair_id=data.get('chairId'),
        room_id=data.get('roomId'),
    )

    before = {
        'start_time': appointment.start_time.isoformat(),
        'end_time': appointment.end_time.isoformat(),
        'provider_id': str(appointment.provider_id),
        'chair_id': str(appointment.chair_id) if appointment.chair_id else None,
    }

    for field, value in refs.items():
        setattr(appointment, field, value)
    if 'chairId' in data and not data['chairId']:
        appointment.chair = None
    if 'roomId' in data and not data['roomId']:
        appointment.room = None

    timing_changed = any(key in data for key in ('startTime', 'endTime', 'duration'))
    if timing_changed:
        start_time = data.get('startTime') or appointment.start_time
        end_time = data.get('endTime')
        duration = data.get('duration')
        if end_time is None and duration is None:
            duration = appointment.duration
        appointment.start_time = start_time
        appointment.end_time, appointment.duration = compute_end_time(
            start_time, duration=duration, end_time=end_time
        )
        if appointment.end_time <= appointment.start_time:
            raise DomainValidationError('End time must be after start time')

    for key, field in (('notes', 'notes'), ('patientNotes', 'patient_notes')):
        if key in data:
            setattr(appointment, field, data[key] or '')

    with transaction.atomic():
        if timing_changed or refs or 'chairId' in data or 'roomId' in data:
            check_conflicts(
                clinic,
                appointment.start_time,
                appointment.end_time,
                appointment.provider,
                chair=appointment.chair,
                room=appointment.room,
                exclude_id=appointment.id,
            )
        appointment.save()
        if timing_changed and hasattr(appointment, 'flow_state'):
            appointment.flow_state.scheduled_at = appointment.start_time
            appointment.flow_state.save(update_fields=['scheduled_at', 'updated_at'])
        log_audit(
            clinic,
            user,
            AuditActionChoices.UPDATE,
            'Appointment',
            appointment.id,
            before=before,
            after={
                'start_time': appointment.start_time.isoformat(),
                'end_time': appointment.end_time.isoformat(),
                'provider_id': str(appointment.provider_id),
                'chair_id': str(appointment.chair_id) if appointment.chair_id else None,
            },
            request=request,
        )
    return appointment


def apply_status(appointment, to_status, user=None, request=None, now=None, **fields):
    """
    Move the appointment to `to_status` and stamp its timestamp.

    Caller is responsible for validating the move. Extra `fields` are
    set on the appointment before saving.
    """
    now = now or timezone.now()
    from_status = appointment.status
    appointment.status = to_status
    timestamp_field = STATUS_TIMESTAMPS.get(to_status)
    if timestamp_field and getattr(appointment, timestamp_field) is None:
        setattr(appointment, timestamp_field, now)
    for field, value in fields.items():
        setattr(appointment, field, value)
    appointment.save()

    metrics.appointment_transitions_total.labels(
        from_status=from_status,
        to_status=to_status,
        result='success',
    ).inc()
    log_appointment_transition(appointment, from_status, to_status)
    log_audit(
        appointment.clinic,
        user,
        AuditActionChoices.TRANSITION,
        'Appointment',
        appointment.id,
        before={'status': from_status},
        after={'status': to_status},
        request=request,
    )
    return appointment


def follow_flow_stage(appointment, to_status, user=None, now=None):
    """
    Move the appointment along with its patient flow.

    A status the appointment cannot legally reach is not forced.
    """
    if appointment.status == to_status or not can_transition(appointment.status, to_status):
        return False
    apply_status(appointment, to_status, user=user, now=now)
    return True


def transition_appointment(appointment, to_status, user=None, request=None, now=None, **fields):
    """
    Validated status change that keeps the patient flow in step.

    Raises:
        DomainValidationError: move not in ALLOWED_TRANSITIONS
    """
    from apps.ops.flow import sync_flow_with_appointment

    with transaction.atomic():
        appointment = Appointment.objects.select_for_update().get(pk=appointment.pk)
        if not can_transition(appointment.status, to_status):
            metrics.appointment_transitions_total.labels(
                from_status=appointment.status,
                to_status=to_status,
                result='rejected',
            ).inc()
            log_appointment_transition(appointment, appointment.status, to_status, result='rejected')
            raise DomainValidationError(
                f'Cannot transition appointment from {appointment.status} to {to_status}',
                details={'currentStatus': appointment.status, 'requestedStatus': to_status},
            )
        apply_status(appointment, to_status, user=user, request=request, now=now, **fields)
        sync_flow_with_appointment(appointment, user=user, now=now)
    return appointment


def _notice_hours(appointment, now):
    return Decimal(str(round((appointment.start_time - now).total_seconds() / 3600, 2)))


def _record_cancellation(appointment, cancellation_type, reason, notice_hours, user, now):
    is_late = cancellation_type in (CancellationTypeChoices.LATE_CANCEL, CancellationTypeChoices.NO_SHOW)
    fee = None
    if cancellation_type == CancellationTypeChoices.LATE_CANCEL:
        fee = Decimal(str(settings.BOOKING_LATE_CANCEL_FEE))
    elif cancellation_type == CancellationTypeChoices.NO_SHOW:
        fee = Decimal(str(settings.BOOKING_NO_SHOW_FEE))

    return AppointmentCancellation.objects.create(
        clinic=appointment.clinic,
        appointment=appointment,
        patient=appointment.patient,
        cancellation_type=cancellation_type,
        reason=reason or '',
        notice_hours=notice_hours,
        is_late_cancel=is_late,
        late_cancel_fee=fee,
        recovery_status=(
            RecoveryStatusChoices.NOT_NEEDED
            if cancellation_type == CancellationTypeChoices.PRACTICE_CANCEL
            else RecoveryStatusChoices.PENDING
        ),
        cancelled_by=user if getattr(user, 'is_authenticated', False) else None,
        cancelled_at=now,
    )


def cancel_appointment(appointment, reason, cancellation_type=None, notice_hours=None,
                       user=None, request=None, now=None):
    """
    Cancel and open a cancellation record.

    Notice under BOOKING_LATE_CANCEL_HOURS turns a patient cancellation into
    LATE_CANCEL. Practice cancellations never need recovery.
    """
    now = now or timezone.now()
    with transaction.atomic():
        appointment = transition_appointment(
            appointment,
            AppointmentStatusChoices.CANCELLED,
            user=user,
            request=request,
            now=now,
            cancellation_reason=reason,
        )
        if notice_hours is None:
            notice_hours = _notice_hours(appointment, now)
        else:
            notice_hours = Decimal(str(notice_hours))

        if cancellation_type in (None, CancellationTypeChoices.CANCELLED, CancellationTypeChoices.LATE_CANCEL):
            cancellation_type = (
                CancellationTypeChoices.LATE_CANCEL
                if notice_hours < settings.BOOKING_LATE_CANCEL_HOURS
                else CancellationTypeChoices.CANCELLED
            )
        cancellation = _record_cancellation(appointment, cancellation_type, reason, notice_hours, user, now)
    return appointment, cancellation


def mark_no_show(appointment, reason='', user=None, request=None, now=None):
    now = now or timezone.now()
    with transaction.atomic():
        appointment = transition_appointment(
            appointment,
            AppointmentStatusChoices.NO_SHOW,
            user=user,
            request=request,
            now=now,
        )
        cancellation = _record_cancellation(
            appointment,
            CancellationTypeChoices.NO_SHOW,
            reason,
            _notice_hours(appointment, now),
            user,
            now,
        )
    return appointment, cancellation


def record_recovery_attempt(cancellation, result, notes='', rescheduled_appointment_id=None,
                            user=None, request=None, now=None):
    """
    Log one outreach attempt on a cancellation.

    result RESCHEDULED -> RECOVERED, DECLINED -> LOST, otherwise IN_PROGRESS.
    """
    now = now or timezone.now()
    with transaction.atomic():
        cancellation = AppointmentCancellation.objects.select_for_update().get(pk=cancellation.pk)
        previous = cancellation.recovery_status

        cancellation.recovery_attempts += 1
        cancellation.last_recovery_attempt_at = now
        cancellation.recovery_status = RECOVERY_RESULTS.get(result, RecoveryStatusChoices.IN_PROGRESS)
        if notes:
            cancellation.recovery_notes = notes
        if rescheduled_appointment_id:
            cancellation.rescheduled_appointment = get_scoped_object(
                Appointment.objects.all(),
                cancellation.clinic,
                message='Rescheduled appointment not found',
                pk=rescheduled_appointment_id,
            )
        cancellation.save()

        log_audit(
            cancellation.clinic,
            user,
            AuditActionChoices.UPDATE,
            'AppointmentCancellation',
            cancellation.id,
            before={'recovery_status': previous},
            after={
                'recovery_status': cancellation.recovery_status,
                'recovery_attempts': cancellation.recovery_attempts,
            },
            request=request,
            result=result,
        )
    return cancellation


def cancellation_summary(queryset):
    """Headline counts for the cancellations list."""
    totals = queryset.aggregate(
        totalCancellations=Count('id'),
        noShows=Count('id', filter=Q(cancellation_type=CancellationTypeChoices.NO_SHOW)),
        lateCancels=Count('id', filter=Q(is_late_cancel=True)),
        pendingRecovery=Count('id', filter=Q(recovery_status__in=[
            RecoveryStatusChoices.PENDING,
            RecoveryStatusChoices.IN_PROGRESS,
        ])),
        recovered=Count('id', filter=Q(recovery_status=RecoveryStatusChoices.RECOVERED)),
        lost=Count('id', filter=Q(recovery_status=RecoveryStatusChoices.LOST)),
    )
    return totals
