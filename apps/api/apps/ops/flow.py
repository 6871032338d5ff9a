"""
Patient flow: the stage transition table and its side effects.

Appointment status follows the flow (and the flow follows appointment
transitions made from booking) but a status that cannot be legally
reached is never forced.
"""
from datetime import datetime, time

from django.db import transaction
from django.utils import timezone

from apps.core.exceptions import ConflictError, DomainValidationError, NotFoundError
from apps.core.observability import metrics
from apps.core.observability.events import log_flow_transition
from apps.core.tenancy import get_scoped_object

from .metrics import WAITING_STAGES, wait_minutes
from .models import FlowStageChoices, FlowStageHistory, PatientFlowState

S = FlowStageChoices

ALLOWED_STAGE_TRANSITIONS = {
    S.SCHEDULED: {S.CHECKED_IN, S.NO_SHOW, S.CANCELLED},
    S.CHECKED_IN: {S.WAITING, S.CALLED, S.IN_CHAIR, S.NO_SHOW, S.CANCELLED},
    S.WAITING: {S.CALLED, S.IN_CHAIR, S.NO_SHOW, S.CANCELLED},
    S.CALLED: {S.IN_CHAIR, S.NO_SHOW, S.CANCELLED},
    S.IN_CHAIR: {S.COMPLETED},
    S.COMPLETED: {S.CHECKED_OUT, S.DEPARTED},
    S.CHECKED_OUT: {S.DEPARTED},
    S.DEPARTED: set(),
    S.NO_SHOW: set(),
    S.CANCELLED: set(),
}

# Stage -> timestamp stamped on entry
STAGE_TIMESTAMPS = {
    S.CHECKED_IN: 'checked_in_at',
    S.CALLED: 'called_at',
    S.IN_CHAIR: 'seated_at',
    S.COMPLETED: 'completed_at',
    S.CHECKED_OUT: 'checked_out_at',
    S.DEPARTED: 'departed_at',
}

# Flow stage -> appointment status it implies
STAGE_APPOINTMENT_STATUS = {
    S.CHECKED_IN: 'ARRIVED',
    S.IN_CHAIR: 'IN_PROGRESS',
    S.COMPLETED: 'COMPLETED',
    S.NO_SHOW: 'NO_SHOW',
    S.CANCELLED: 'CANCELLED',
}
APPOINTMENT_STATUS_STAGE = {status: stage for stage, status in STAGE_APPOINTMENT_STATUS.items()}


def can_transition(from_stage, to_stage):
    """True when `to_stage` is adjacent to `from_stage`."""
    return to_stage in ALLOWED_STAGE_TRANSITIONS.get(from_stage, set())


def get_flow(clinic, appointment_id, create=False, user=None):
    """
    Flow state for an appointment in `clinic`.

    With `create`, a missing flow is opened in SCHEDULED (check-in of an
    appointment booked before flows existed).
    """
    from apps.booking.models import Appointment

    appointment = get_scoped_object(
        Appointment.objects.select_related('patient', 'provider', 'chair'),
        clinic,
        message='Appointment not found',
        pk=appointment_id,
    )
    flow = PatientFlowState.objects.filter(appointment=appointment).select_related('chair').first()
    if flow is None:
        if not create:
            raise NotFoundError('Patient flow not found')
        flow = PatientFlowState.objects.create(
            clinic=clinic,
            appointment=appointment,
            patient=appointment.patient,
            provider=appointment.provider,
            chair=appointment.chair,
            scheduled_at=appointment.start_time,
            updated_by=user if getattr(user, 'is_authenticated', False) else None,
        )
    return flow


def _ensure_chair_free(chair, flow):
    from apps.resources.models import OccupancyStatusChoices
    from apps.resources.services import get_current_occupancy

    occupancy = get_current_occupancy(chair)
    if occupancy is None or occupancy.status == OccupancyStatusChoices.AVAILABLE:
        return
    if occupancy.status == OccupancyStatusChoices.OCCUPIED and occupancy.appointment_id == flow.appointment_id:
        return
    raise ConflictError(
        f'Chair {chair.name} is {occupancy.status.lower()}',
        code='CHAIR_OCCUPIED',
        details={'chairId': str(chair.id), 'status': occupancy.status},
    )


def _apply_stage(flow, to_stage, chair=None, notes=None, user=None, now=None):
    """Set the stage and run its side effects. No validation."""
    from apps.resources import services as resource_services
    from apps.resources.models import OccupancyStatusChoices

    from_stage = flow.stage
    flow.stage = to_stage

    timestamp_field = STAGE_TIMESTAMPS.get(to_stage)
    if timestamp_field and getattr(flow, timestamp_field) is None:
        setattr(flow, timestamp_field, now)

    if to_stage in (S.WAITING, S.CALLED):
        flow.current_wait_started_at = now

    if chair is not None:
        flow.chair = chair

    if to_stage == S.IN_CHAIR:
        flow.current_wait_started_at = None
        resource_services.occupy_chair(flow.chair, appointment=flow.appointment, user=user, now=now)
    elif to_stage == S.COMPLETED and flow.chair_id:
        resource_services.set_chair_status(
            flow.chair, OccupancyStatusChoices.AVAILABLE, user=user
        )

    if notes:
        flow.notes = f'{flow.notes}\n{notes}'.strip() if flow.notes else notes
    if getattr(user, 'is_authenticated', False):
        flow.updated_by = user
    flow.save()

    FlowStageHistory.objects.create(
        flow=flow,
        from_stage=from_stage,
        to_stage=to_stage,
        notes=notes or '',
        changed_by=user if getattr(user, 'is_authenticated', False) else None,
    )
    metrics.flow_transitions_total.labels(
        from_stage=from_stage,
        to_stage=to_stage,
        result='success',
    ).inc()
    log_flow_transition(flow, from_stage, to_stage)
    return flow


def transition_flow(flow, to_stage, chair=None, notes=None, user=None, now=None):
    """
    Move a flow to `to_stage`.

    Raises:
        DomainValidationError: stage not adjacent, or seating without a chair
        ConflictError(CHAIR_OCCUPIED): chair in use by another visit or blocked
    """
    from apps.booking.services import follow_flow_stage

    now = now or timezone.now()
    with transaction.atomic():
        flow = PatientFlowState.objects.select_for_update().select_related(
            'appointment__chair', 'chair'
        ).get(pk=flow.pk)

        if not can_transition(flow.stage, to_stage):
            metrics.flow_transitions_total.labels(
                from_stage=flow.stage,
                to_stage=to_stage,
                result='rejected',
            ).inc()
            log_flow_transition(flow, flow.stage, to_stage, result='rejected')
            raise DomainValidationError(
                f'Cannot transition from {flow.stage} to {to_stage}',
                details={'currentStage': flow.stage, 'requestedStage': to_stage},
            )

        if to_stage == S.IN_CHAIR:
            target_chair = chair or flow.chair or flow.appointment.chair
            if target_chair is None:
                raise DomainValidationError('A chair is required to seat the patient')
            _ensure_chair_free(target_chair, flow)
            chair = target_chair

        _apply_stage(flow, to_stage, chair=chair, notes=notes, user=user, now=now)

        status = STAGE_APPOINTMENT_STATUS.get(to_stage)
        if status is not None:
            follow_flow_stage(flow.appointment, status, user=user, now=now)
    return flow


def sync_flow_with_appointment(appointment, user=None, now=None):
    """
    Bring the flow in step after a booking-side status change.

    Skips silently when the flow cannot legally reach the matching stage.
    """
    target = APPOINTMENT_STATUS_STAGE.get(appointment.status)
    if target is None:
        return None

    now = now or timezone.now()
    flow = PatientFlowState.objects.filter(appointment=appointment).select_related('chair').first()
    if flow is None:
        if target != S.CHECKED_IN:
            return None
        flow = PatientFlowState.objects.create(
            clinic_id=appointment.clinic_id,
            appointment=appointment,
            patient_id=appointment.patient_id,
            provider_id=appointment.provider_id,
            chair_id=appointment.chair_id,
            scheduled_at=appointment.start_time,
        )

    if flow.stage == target or not can_transition(flow.stage, target):
        return flow

    chair = None
    if target == S.IN_CHAIR:
        chair = flow.chair or appointment.chair
        if chair is None:
            return flow
    return _apply_stage(flow, target, chair=chair, user=user, now=now)


def set_priority(flow, priority, notes=None, user=None):
    flow.priority = priority
    if notes:
        flow.notes = f'{flow.notes}\n{notes}'.strip() if flow.notes else notes
    if getattr(user, 'is_authenticated', False):
        flow.updated_by = user
    flow.save()
    return flow


def day_bounds(day):
    start = timezone.make_aware(datetime.combine(day, time.min))
    end = timezone.make_aware(datetime.combine(day, time.max))
    return start, end


def serialize_flow(flow, now=None):
    """Board card for one flow; `now` given means live wait minutes are included."""
    patient = flow.patient
    card = {
        'id': str(flow.id),
        'appointmentId': str(flow.appointment_id),
        'patient': {
            'id': str(patient.id),
            'firstName': patient.first_name,
            'lastName': patient.last_name,
        },
        'provider': flow.provider.display_name if flow.provider_id else None,
        'chair': {'id': str(flow.chair.id), 'name': flow.chair.name} if flow.chair_id else None,
        'stage': flow.stage,
        'priority': flow.priority,
        'scheduledAt': flow.scheduled_at.isoformat(),
        'checkedInAt': flow.checked_in_at.isoformat() if flow.checked_in_at else None,
        'calledAt': flow.called_at.isoformat() if flow.called_at else None,
        'seatedAt': flow.seated_at.isoformat() if flow.seated_at else None,
        'completedAt': flow.completed_at.isoformat() if flow.completed_at else None,
        'notes': flow.notes,
    }
    if now is not None and flow.stage in WAITING_STAGES:
        card['waitMinutes'] = wait_minutes(flow, now)
    return card


def build_flow_board(clinic, day=None, now=None):
    """
    Flows scheduled on `day`, grouped by stage.

    Live wait minutes are only reported when `day` is today.
    """
    now = now or timezone.now()
    today = timezone.localdate(now)
    day = day or today
    start, end = day_bounds(day)

    flows = PatientFlowState.objects.filter(
        clinic=clinic,
        scheduled_at__gte=start,
        scheduled_at__lte=end,
        appointment__deleted_at__isnull=True,
    ).select_related('patient', 'provider', 'chair').order_by('scheduled_at')

    live_now = now if day == today else None
    stages = {stage: [] for stage in FlowStageChoices.values}
    for flow in flows:
        stages[flow.stage].append(serialize_flow(flow, live_now))

    return {
        'date': day.isoformat(),
        'stages': stages,
        'counts': {stage: len(cards) for stage, cards in stages.items()},
        'total': sum(len(cards) for cards in stages.values()),
    }
