"""
Core models: clinic (tenant), audit_log, soft-delete base.
"""
import uuid
from django.db import models
from django.utils import timezone

from .soft_delete import SOFT_DELETE_FILTER


class Clinic(models.Model):
    """
    Tenant boundary. Every clinic-owned record carries a FK to this table
    and every query is filtered on it.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=32, unique=True)
    timezone = models.CharField(max_length=64, default='UTC')
    phone = models.CharField(max_length=32, blank=True, default='')
    email = models.EmailField(blank=True, default='')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'clinic'
        verbose_name = 'Clinic'
        verbose_name_plural = 'Clinics'
        indexes = [
            models.Index(fields=['is_active'], name='idx_clinic_active'),
        ]

    def __str__(self):
        return f"{self.name} ({self.code})"


class SoftDeleteQuerySet(models.QuerySet):
    """QuerySet with soft-delete helpers."""

    def alive(self):
        return self.filter(SOFT_DELETE_FILTER)

    def dead(self):
        return self.exclude(SOFT_DELETE_FILTER)

    def soft_delete(self):
        return self.update(deleted_at=timezone.now())


class SoftDeleteModel(models.Model):
    """
    Abstract base for records that are marked deleted instead of removed.

    `delete()` is not overridden: callers choose `soft_delete()` explicitly,
    and admin hard deletes still work.
    """
    deleted_at = models.DateTimeField(null=True, blank=True, editable=False)

    objects = SoftDeleteQuerySet.as_manager()

    class Meta:
        abstract = True

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    def soft_delete(self, save=True):
        self.deleted_at = timezone.now()
        if save:
            self.save(update_fields=['deleted_at'])


class AuditActionChoices(models.TextChoices):
    CREATE = 'CREATE', 'Create'
    UPDATE = 'UPDATE', 'Update'
    DELETE = 'DELETE', 'Delete'
    TRANSITION = 'TRANSITION', 'Status Transition'
    BATCH = 'BATCH', 'Batch Operation'
    APPROVE = 'APPROVE', 'Approve'
    DENY = 'DENY', 'Deny'
    TERMINATE = 'TERMINATE', 'Terminate'


class AuditLog(models.Model):
    """
    Audit trail for administrative writes.

    Fields:
    - clinic: tenant of the affected record
    - actor_user: user who made the change (null for system jobs)
    - action: AuditActionChoices
    - entity_type / entity_id: affected record
    - metadata: JSON with before/after values, batch results, IP, user agent
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    clinic = models.ForeignKey(
        Clinic,
        on_delete=models.CASCADE,
        related_name='audit_logs'
    )
    actor_user = models.ForeignKey(
        'authz.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_actions'
    )
    action = models.CharField(max_length=20, choices=AuditActionChoices.choices)
    entity_type = models.CharField(max_length=64)
    entity_id = models.CharField(max_length=64, blank=True, default='')
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = 'audit_log'
        verbose_name = 'Audit Log'
        verbose_name_plural = 'Audit Logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['clinic', 'created_at'], name='idx_audit_clinic_created'),
            models.Index(fields=['entity_type', 'entity_id'], name='idx_audit_entity'),
        ]

    def __str__(self):
        actor = self.actor_user.email if self.actor_user else 'system'
        return f"{self.action} {self.entity_type}:{self.entity_id} by {actor}"


def log_audit(
    clinic,
    actor,
    action,
    entity_type,
    entity_id='',
    before=None,
    after=None,
    request=None,
    **extra
):
    """
    Create an AuditLog row.

    Args:
        clinic: Clinic the record belongs to
        actor: User instance or None for system actions
        action: AuditActionChoices value
        entity_type: Model name of the affected record (e.g. 'LabOrder')
        entity_id: Primary key of the affected record ('' for batches)
        before: Dict of field values before the change
        after: Dict of field values after the change
        request: Django request, used to capture IP and user agent
        **extra: Additional metadata (stored as-is)

    Returns:
        AuditLog instance
    """
    from .observability import metrics

    metadata = {}
    if before:
        metadata['before'] = before
    if after:
        metadata['after'] = after
    if extra:
        metadata.update(extra)

    if request is not None:
        metadata['request'] = {
            'ip': request.META.get('REMOTE_ADDR'),
            'user_agent': request.META.get('HTTP_USER_AGENT', '')[:200],
        }

    if actor is not None and not getattr(actor, 'is_authenticated', False):
        actor = None

    audit_log = AuditLog.objects.create(
        clinic=clinic,
        actor_user=actor,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id else '',
        metadata=metadata,
    )
    metrics.audit_log_created_total.labels(
        entity_type=entity_type,
        action=action,
    ).inc()
    return audit_log
