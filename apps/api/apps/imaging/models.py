"""
Imaging models - clinical photographs and radiographs per patient.
"""
import uuid
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from apps.core.models import SoftDeleteModel


def image_upload_path(instance, filename):
    """imaging/<clinic>/<patient>/<uuid>.<ext>"""
    ext = filename.rsplit('.', 1)[-1].lower() if '.' in filename else 'jpg'
    return f"imaging/{instance.clinic_id}/{instance.patient_id}/{uuid.uuid4()}.{ext}"


class ImageCategoryChoices(models.TextChoices):
    INTRAORAL = 'INTRAORAL', _('Intraoral')
    EXTRAORAL = 'EXTRAORAL', _('Extraoral')
    XRAY = 'XRAY', _('X-Ray')
    CBCT = 'CBCT', _('CBCT')
    OTHER = 'OTHER', _('Other')


class PatientImage(SoftDeleteModel):
    """
    Patient image. The thumbnail is filled in by a Celery task after upload.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey('core.Clinic', on_delete=models.CASCADE, related_name='patient_images')
    patient = models.ForeignKey(
        'patients.Patient',
        on_delete=models.CASCADE,
        related_name='images',
        verbose_name=_('Patient')
    )
    appointment = models.ForeignKey(
        'booking.Appointment',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='images',
        verbose_name=_('Appointment')
    )
    category = models.CharField(_('Category'), max_length=10, choices=ImageCategoryChoices.choices)
    image = models.ImageField(_('Image'), upload_to=image_upload_path)
    thumbnail = models.ImageField(_('Thumbnail'), upload_to='imaging/thumbnails/', blank=True, null=True)
    thumbnail_generated = models.BooleanField(_('Thumbnail Generated'), default=False)
    captured_at = models.DateTimeField(_('Captured At'), default=timezone.now)
    notes = models.TextField(_('Notes'), blank=True)
    uploaded_by = models.ForeignKey(
        'authz.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)
    updated_at = models.DateTimeField(_('Updated At'), auto_now=True)

    class Meta:
        db_table = 'patient_image'
        ordering = ['-captured_at']
        indexes = [
            models.Index(fields=['clinic', 'patient', '-captured_at'], name='idx_image_patient_captured'),
            models.Index(fields=['clinic', 'category'], name='idx_image_clinic_category'),
        ]
        verbose_name = _('Patient Image')
        verbose_name_plural = _('Patient Images')

    def __str__(self):
        return f"{self.get_category_display()} of {self.patient} ({self.captured_at:%Y-%m-%d})"
