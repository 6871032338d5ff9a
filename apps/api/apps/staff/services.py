"""
Staff service layer - termination workflow.
"""
from django.db import transaction
from django.utils import timezone

from apps.core.exceptions import ConflictError, DomainValidationError
from apps.core.models import AuditActionChoices, log_audit
from apps.core.observability import metrics
from apps.core.observability.events import log_staff_termination

from .models import StaffProfile, StaffStatusChoices


def count_upcoming_appointments(staff, now=None):
    """Future, non-terminal, live appointments where `staff` is the provider."""
    from apps.booking.models import Appointment, AppointmentStatusChoices

    now = now or timezone.now()
    return Appointment.objects.alive().filter(
        clinic_id=staff.clinic_id,
        provider=staff,
        start_time__gte=now,
    ).exclude(
        status__in=AppointmentStatusChoices.terminal()
    ).count()


def terminate_staff(staff, termination_date, reason, actor=None, request=None):
    """
    Terminate a staff member.

    All writes (profile, linked user, audit row) happen in one transaction.

    Raises:
        DomainValidationError: already terminated
        ConflictError(HAS_UPCOMING_APPOINTMENTS): provider still has future bookings
    """
    with transaction.atomic():
        staff = StaffProfile.objects.select_for_update().get(pk=staff.pk)

        if staff.status == StaffStatusChoices.TERMINATED:
            raise DomainValidationError('Staff member is already terminated')

        upcoming = count_upcoming_appointments(staff)
        if upcoming:
            metrics.staff_terminations_total.labels(result='blocked').inc()
            log_staff_termination(staff, result='blocked', upcoming_appointments=upcoming)
            raise ConflictError(
                f'Staff member has {upcoming} upcoming appointment(s); reassign or cancel them first',
                code='HAS_UPCOMING_APPOINTMENTS',
                details={'upcomingAppointments': upcoming},
            )

        previous_status = staff.status
        staff.status = StaffStatusChoices.TERMINATED
        staff.termination_date = termination_date
        staff.termination_reason = reason or ''
        staff.save(update_fields=['status', 'termination_date', 'termination_reason', 'updated_at'])

        if staff.user_id:
            staff.user.is_active = False
            staff.user.save(update_fields=['is_active', 'updated_at'])

        log_audit(
            staff.clinic,
            actor,
            AuditActionChoices.TERMINATE,
            'StaffProfile',
            staff.id,
            before={'status': previous_status},
            after={
                'status': staff.status,
                'termination_date': termination_date.isoformat(),
            },
            request=request,
        )

    metrics.staff_terminations_total.labels(result='success').inc()
    log_staff_termination(staff, result='success')
    return staff
