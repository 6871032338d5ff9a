"""
Staff models: staff_profile.
"""
import uuid
from django.db import models

from apps.core.models import SoftDeleteModel


class StaffStatusChoices(models.TextChoices):
    ACTIVE = 'ACTIVE', 'Active'
    ON_LEAVE = 'ON_LEAVE', 'On Leave'
    TERMINATED = 'TERMINATED', 'Terminated'


class StaffProfile(SoftDeleteModel):
    """
    Clinic employee. Providers (`is_provider=True`) can own appointments.

    BUSINESS RULES:
    - Termination is blocked while the member still has upcoming
      appointments as provider (see services.terminate_staff)
    - A terminated member's linked user is deactivated
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey(
        'core.Clinic',
        on_delete=models.CASCADE,
        related_name='staff'
    )
    user = models.OneToOneField(
        'authz.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='staff_profile'
    )
    employee_number = models.CharField(max_length=32, blank=True, default='')
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    title = models.CharField(max_length=100, blank=True, help_text='e.g. Orthodontist, Assistant, Treatment Coordinator')
    is_provider = models.BooleanField(default=False)
    status = models.CharField(
        max_length=20,
        choices=StaffStatusChoices.choices,
        default=StaffStatusChoices.ACTIVE
    )
    hire_date = models.DateField(null=True, blank=True)
    termination_date = models.DateField(null=True, blank=True)
    termination_reason = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'staff_profile'
        verbose_name = 'Staff Profile'
        verbose_name_plural = 'Staff Profiles'
        ordering = ['last_name', 'first_name']
        indexes = [
            models.Index(fields=['clinic', 'status'], name='idx_staff_clinic_status'),
            models.Index(fields=['clinic', 'is_provider'], name='idx_staff_clinic_provider'),
        ]

    def __str__(self):
        return self.display_name

    @property
    def display_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_active(self):
        return self.status != StaffStatusChoices.TERMINATED and self.deleted_at is None
