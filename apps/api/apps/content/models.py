"""
Content models: content_article, content_delivery.
"""
import uuid
from django.db import models

from apps.core.models import SoftDeleteModel


class ArticleStatusChoices(models.TextChoices):
    DRAFT = 'DRAFT', 'Draft'
    PUBLISHED = 'PUBLISHED', 'Published'
    ARCHIVED = 'ARCHIVED', 'Archived'


class ContentArticle(SoftDeleteModel):
    """
    Patient education article.

    `clinic` is null for global articles shared by every clinic.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey(
        'core.Clinic',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='content_articles'
    )
    title = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255)
    category = models.CharField(max_length=64, db_index=True)
    summary = models.TextField(blank=True)
    body = models.TextField(blank=True)
    status = models.CharField(
        max_length=10,
        choices=ArticleStatusChoices.choices,
        default=ArticleStatusChoices.DRAFT
    )
    share_count = models.PositiveIntegerField(default=0)
    view_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'content_article'
        ordering = ['title']
        indexes = [
            models.Index(fields=['clinic', 'status'], name='idx_article_clinic_status'),
            models.Index(fields=['category', 'status'], name='idx_article_category_status'),
        ]

    def __str__(self):
        return self.title

    @property
    def is_global(self):
        return self.clinic_id is None


class DeliveryMethodChoices(models.TextChoices):
    EMAIL = 'EMAIL', 'Email'
    SMS_LINK = 'SMS_LINK', 'SMS Link'
    IN_APP = 'IN_APP', 'In App'
    PORTAL = 'PORTAL', 'Portal'


class DeliveryTriggerChoices(models.TextChoices):
    TREATMENT_START = 'treatment_start', 'Treatment Start'
    PHASE_CHANGE = 'phase_change', 'Phase Change'
    APPOINTMENT_SCHEDULED = 'appointment_scheduled', 'Appointment Scheduled'
    APPOINTMENT_REMINDER = 'appointment_reminder', 'Appointment Reminder'
    POST_APPOINTMENT = 'post_appointment', 'Post Appointment'
    MILESTONE_REACHED = 'milestone_reached', 'Milestone Reached'
    COMPLIANCE_ALERT = 'compliance_alert', 'Compliance Alert'
    MANUAL = 'manual', 'Manual'
    SCHEDULED = 'scheduled', 'Scheduled'
    CAMPAIGN = 'campaign', 'Campaign'


class DeliveryStatusChoices(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    SENT = 'SENT', 'Sent'
    DELIVERED = 'DELIVERED', 'Delivered'
    VIEWED = 'VIEWED', 'Viewed'
    FAILED = 'FAILED', 'Failed'


class ContentDelivery(models.Model):
    """One article shared with one patient."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey('core.Clinic', on_delete=models.CASCADE, related_name='content_deliveries')
    article = models.ForeignKey(ContentArticle, on_delete=models.CASCADE, related_name='deliveries')
    patient = models.ForeignKey('patients.Patient', on_delete=models.CASCADE, related_name='content_deliveries')
    method = models.CharField(max_length=10, choices=DeliveryMethodChoices.choices)
    trigger = models.CharField(
        max_length=32,
        choices=DeliveryTriggerChoices.choices,
        default=DeliveryTriggerChoices.MANUAL
    )
    status = models.CharField(
        max_length=10,
        choices=DeliveryStatusChoices.choices,
        default=DeliveryStatusChoices.PENDING
    )
    delivered_by = models.ForeignKey(
        'authz.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    delivered_at = models.DateTimeField()
    viewed_at = models.DateTimeField(null=True, blank=True)
    error_message = models.TextField(blank=True)

    class Meta:
        db_table = 'content_delivery'
        ordering = ['-delivered_at']
        indexes = [
            models.Index(fields=['clinic', 'patient', 'article'], name='idx_delivery_patient_article'),
            models.Index(fields=['clinic', 'delivered_at'], name='idx_delivery_clinic_date'),
        ]

    def __str__(self):
        return f"{self.article_id} -> {self.patient_id} ({self.method})"
