"""
Booking models: appointment_type, appointment, appointment_cancellation.
"""
import uuid
from django.db import models

from apps.core.models import SoftDeleteModel


class AppointmentStatusChoices(models.TextChoices):
    """
    Appointment status with allowed transitions (see ALLOWED_TRANSITIONS):
    - SCHEDULED -> CONFIRMED | ARRIVED | CANCELLED | NO_SHOW
    - CONFIRMED -> ARRIVED | CANCELLED | NO_SHOW
    - ARRIVED -> IN_PROGRESS | CANCELLED | NO_SHOW
    - IN_PROGRESS -> COMPLETED
    - COMPLETED, CANCELLED, NO_SHOW are terminal states
    """
    SCHEDULED = 'SCHEDULED', 'Scheduled'
    CONFIRMED = 'CONFIRMED', 'Confirmed'
    ARRIVED = 'ARRIVED', 'Arrived'
    IN_PROGRESS = 'IN_PROGRESS', 'In Progress'
    COMPLETED = 'COMPLETED', 'Completed'
    CANCELLED = 'CANCELLED', 'Cancelled'
    NO_SHOW = 'NO_SHOW', 'No Show'

    @classmethod
    def terminal(cls):
        return [cls.COMPLETED, cls.CANCELLED, cls.NO_SHOW]

    @classmethod
    def non_blocking(cls):
        """Statuses that never hold a provider, chair or room."""
        return [cls.CANCELLED, cls.NO_SHOW]


ALLOWED_TRANSITIONS = {
    AppointmentStatusChoices.SCHEDULED: {
        AppointmentStatusChoices.CONFIRMED,
        AppointmentStatusChoices.ARRIVED,
        AppointmentStatusChoices.CANCELLED,
        AppointmentStatusChoices.NO_SHOW,
    },
    AppointmentStatusChoices.CONFIRMED: {
        AppointmentStatusChoices.ARRIVED,
        AppointmentStatusChoices.CANCELLED,
        AppointmentStatusChoices.NO_SHOW,
    },
    AppointmentStatusChoices.ARRIVED: {
        AppointmentStatusChoices.IN_PROGRESS,
        AppointmentStatusChoices.CANCELLED,
        AppointmentStatusChoices.NO_SHOW,
    },
    AppointmentStatusChoices.IN_PROGRESS: {AppointmentStatusChoices.COMPLETED},
    AppointmentStatusChoices.COMPLETED: set(),
    AppointmentStatusChoices.CANCELLED: set(),
    AppointmentStatusChoices.NO_SHOW: set(),
}


def can_transition(from_status, to_status):
    """True when an appointment may move from `from_status` to `to_status`."""
    return to_status in ALLOWED_TRANSITIONS.get(from_status, set())


class ConfirmationStatusChoices(models.TextChoices):
    UNCONFIRMED = 'UNCONFIRMED', 'Unconfirmed'
    PENDING = 'PENDING', 'Pending'
    CONFIRMED = 'CONFIRMED', 'Confirmed'
    DECLINED = 'DECLINED', 'Declined'


class AppointmentSourceChoices(models.TextChoices):
    STAFF = 'STAFF', 'Staff'
    PHONE = 'PHONE', 'Phone'
    ONLINE = 'ONLINE', 'Online'
    WAITLIST = 'WAITLIST', 'Waitlist'
    TREATMENT_PLAN = 'TREATMENT_PLAN', 'Treatment Plan'
    RECALL = 'RECALL', 'Recall'


class AppointmentType(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey('core.Clinic', on_delete=models.CASCADE, related_name='appointment_types')
    code = models.CharField(max_length=50)
    name = models.CharField(max_length=200)
    default_duration = models.PositiveIntegerField(default=30, help_text='Minutes')
    color = models.CharField(max_length=7, default='#3B82F6')
    is_active = models.BooleanField(default=True)
    sort_order = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'appointment_type'
        ordering = ['sort_order', 'name']
        constraints = [
            models.UniqueConstraint(fields=['clinic', 'code'], name='uq_appointment_type_clinic_code'),
        ]

    def __str__(self):
        return f"{self.name} ({self.code})"


class Appointment(SoftDeleteModel):
    """
    Scheduled visit.

    - provider: StaffProfile flagged is_provider
    - chair / room: optional resources, checked for overlaps like the provider
    - status moves only along ALLOWED_TRANSITIONS; each move stamps the
      matching *_at field
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey('core.Clinic', on_delete=models.CASCADE, related_name='appointments')
    patient = models.ForeignKey(
        'patients.Patient',
        on_delete=models.PROTECT,
        related_name='appointments'
    )
    provider = models.ForeignKey(
        'staff.StaffProfile',
        on_delete=models.PROTECT,
        related_name='appointments'
    )
    appointment_type = models.ForeignKey(
        AppointmentType,
        on_delete=models.PROTECT,
        related_name='appointments'
    )
    chair = models.ForeignKey(
        'resources.TreatmentChair',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='appointments'
    )
    room = models.ForeignKey(
        'resources.Room',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='appointments'
    )

    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    duration = models.PositiveIntegerField(help_text='Minutes')

    status = models.CharField(
        max_length=20,
        choices=AppointmentStatusChoices.choices,
        default=AppointmentStatusChoices.SCHEDULED
    )
    confirmation_status = models.CharField(
        max_length=20,
        choices=ConfirmationStatusChoices.choices,
        default=ConfirmationStatusChoices.UNCONFIRMED
    )
    source = models.CharField(
        max_length=20,
        choices=AppointmentSourceChoices.choices,
        default=AppointmentSourceChoices.STAFF
    )
    notes = models.TextField(blank=True)
    patient_notes = models.TextField(blank=True)

    confirmed_at = models.DateTimeField(null=True, blank=True)
    arrived_at = models.DateTimeField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True)

    created_by = models.ForeignKey(
        'authz.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'appointment'
        ordering = ['start_time']
        indexes = [
            models.Index(fields=['clinic', 'start_time'], name='idx_appt_clinic_start'),
            models.Index(fields=['provider', 'start_time'], name='idx_appt_provider_start'),
            models.Index(fields=['chair', 'start_time'], name='idx_appt_chair_start'),
            models.Index(fields=['status'], name='idx_appt_status'),
        ]

    def __str__(self):
        return f"Appointment {self.start_time:%Y-%m-%d %H:%M} - {self.patient}"

    @property
    def is_terminal(self):
        return self.status in AppointmentStatusChoices.terminal()

    def can_transition_to(self, new_status):
        return can_transition(self.status, new_status)


class CancellationTypeChoices(models.TextChoices):
    CANCELLED = 'CANCELLED', 'Cancelled'
    LATE_CANCEL = 'LATE_CANCEL', 'Late Cancel'
    NO_SHOW = 'NO_SHOW', 'No Show'
    PRACTICE_CANCEL = 'PRACTICE_CANCEL', 'Practice Cancel'


class RecoveryStatusChoices(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    IN_PROGRESS = 'IN_PROGRESS', 'In Progress'
    RECOVERED = 'RECOVERED', 'Recovered'
    LOST = 'LOST', 'Lost'
    NOT_NEEDED = 'NOT_NEEDED', 'Not Needed'


class AppointmentCancellation(models.Model):
    """
    Cancellation / no-show record with the recovery workflow used to
    win the visit back.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey('core.Clinic', on_delete=models.CASCADE, related_name='cancellations')
    appointment = models.ForeignKey(Appointment, on_delete=models.CASCADE, related_name='cancellations')
    patient = models.ForeignKey('patients.Patient', on_delete=models.CASCADE, related_name='cancellations')

    cancellation_type = models.CharField(max_length=20, choices=CancellationTypeChoices.choices)
    reason = models.TextField(blank=True)
    notice_hours = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    is_late_cancel = models.BooleanField(default=False)
    late_cancel_fee = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    fee_waived = models.BooleanField(default=False)

    recovery_status = models.CharField(
        max_length=20,
        choices=RecoveryStatusChoices.choices,
        default=RecoveryStatusChoices.PENDING
    )
    recovery_attempts = models.PositiveIntegerField(default=0)
    last_recovery_attempt_at = models.DateTimeField(null=True, blank=True)
    recovery_notes = models.TextField(blank=True)
    rescheduled_appointment = models.ForeignKey(
        Appointment,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='recovered_cancellations'
    )

    cancelled_by = models.ForeignKey(
        'authz.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    cancelled_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'appointment_cancellation'
        ordering = ['-cancelled_at']
        indexes = [
            models.Index(fields=['clinic', 'cancelled_at'], name='idx_cancel_clinic_date'),
            models.Index(fields=['clinic', 'recovery_status'], name='idx_cancel_clinic_recovery'),
        ]

    def __str__(self):
        return f"{self.cancellation_type} {self.appointment_id}"
