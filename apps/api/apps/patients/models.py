"""
Patient models - demographic and contact data, scoped by clinic.
"""
import uuid
from datetime import date

from django.db import models
from django.utils.translation import gettext_lazy as _

from apps.core.models import SoftDeleteModel


class Patient(SoftDeleteModel):
    """
    Patient model - stores demographic and contact information.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey(
        'core.Clinic',
        on_delete=models.CASCADE,
        related_name='patients'
    )
    patient_number = models.CharField(_('Patient Number'), max_length=32, blank=True, default='')

    # Demographics
    first_name = models.CharField(_('First Name'), max_length=100)
    last_name = models.CharField(_('Last Name'), max_length=100)
    date_of_birth = models.DateField(_('Date of Birth'), null=True, blank=True)

    # Contact
    phone = models.CharField(_('Phone'), max_length=20, blank=True)
    email = models.EmailField(_('Email'), blank=True)

    notes = models.TextField(_('Notes'), blank=True)

    # Metadata
    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)
    updated_at = models.DateTimeField(_('Updated At'), auto_now=True)
    is_active = models.BooleanField(_('Active'), default=True)

    class Meta:
        db_table = 'patients'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['clinic', 'last_name', 'first_name'], name='idx_patient_clinic_name'),
            models.Index(fields=['clinic', 'is_active'], name='idx_patient_clinic_active'),
        ]
        verbose_name = _('Patient')
        verbose_name_plural = _('Patients')

    def __str__(self):
        return f"{self.last_name}, {self.first_name}"

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def age(self):
        """Calculate age from date of birth."""
        if not self.date_of_birth:
            return None
        today = date.today()
        return today.year - self.date_of_birth.year - (
            (today.month, today.day) < (self.date_of_birth.month, self.date_of_birth.day)
        )
