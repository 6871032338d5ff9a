"""
Ops models: patient_flow_state, flow_stage_history.
"""
import uuid
from django.db import models


class FlowStageChoices(models.TextChoices):
    SCHEDULED = 'SCHEDULED', 'Scheduled'
    CHECKED_IN = 'CHECKED_IN', 'Checked In'
    WAITING = 'WAITING', 'Waiting'
    CALLED = 'CALLED', 'Called'
    IN_CHAIR = 'IN_CHAIR', 'In Chair'
    COMPLETED = 'COMPLETED', 'Completed'
    CHECKED_OUT = 'CHECKED_OUT', 'Checked Out'
    DEPARTED = 'DEPARTED', 'Departed'
    NO_SHOW = 'NO_SHOW', 'No Show'
    CANCELLED = 'CANCELLED', 'Cancelled'


class FlowPriorityChoices(models.TextChoices):
    LOW = 'LOW', 'Low'
    NORMAL = 'NORMAL', 'Normal'
    HIGH = 'HIGH', 'High'
    URGENT = 'URGENT', 'Urgent'


class PatientFlowState(models.Model):
    """
    Where a patient is in today's visit. One row per appointment.

    Stage timestamps are stamped once, on entry (see apps.ops.flow).
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey('core.Clinic', on_delete=models.CASCADE, related_name='flow_states')
    appointment = models.OneToOneField(
        'booking.Appointment',
        on_delete=models.CASCADE,
        related_name='flow_state'
    )
    patient = models.ForeignKey('patients.Patient', on_delete=models.CASCADE, related_name='flow_states')
    provider = models.ForeignKey(
        'staff.StaffProfile',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='flow_states'
    )
    chair = models.ForeignKey(
        'resources.TreatmentChair',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='flow_states'
    )

    stage = models.CharField(
        max_length=20,
        choices=FlowStageChoices.choices,
        default=FlowStageChoices.SCHEDULED
    )
    priority = models.CharField(
        max_length=10,
        choices=FlowPriorityChoices.choices,
        default=FlowPriorityChoices.NORMAL
    )

    scheduled_at = models.DateTimeField()
    checked_in_at = models.DateTimeField(null=True, blank=True)
    called_at = models.DateTimeField(null=True, blank=True)
    seated_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    checked_out_at = models.DateTimeField(null=True, blank=True)
    departed_at = models.DateTimeField(null=True, blank=True)
    current_wait_started_at = models.DateTimeField(null=True, blank=True)

    notes = models.TextField(blank=True)
    updated_by = models.ForeignKey(
        'authz.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'patient_flow_state'
        ordering = ['scheduled_at']
        indexes = [
            models.Index(fields=['clinic', 'scheduled_at'], name='idx_flow_clinic_scheduled'),
            models.Index(fields=['clinic', 'stage'], name='idx_flow_clinic_stage'),
        ]

    def __str__(self):
        return f"{self.patient} {self.stage}"


class FlowStageHistory(models.Model):
    """Append-only record of stage changes for one flow."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    flow = models.ForeignKey(PatientFlowState, on_delete=models.CASCADE, related_name='history')
    from_stage = models.CharField(max_length=20, choices=FlowStageChoices.choices, blank=True)
    to_stage = models.CharField(max_length=20, choices=FlowStageChoices.choices)
    notes = models.TextField(blank=True)
    changed_by = models.ForeignKey(
        'authz.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'flow_stage_history'
        ordering = ['created_at']

    def __str__(self):
        return f"{self.from_stage or '-'} -> {self.to_stage}"
