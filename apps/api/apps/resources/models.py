"""
Resources models: room, treatment_chair, resource_occupancy,
sterilization_cycle.
"""
import uuid
from django.db import models

from apps.core.models import SoftDeleteModel


class Room(SoftDeleteModel):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey('core.Clinic', on_delete=models.CASCADE, related_name='rooms')
    name = models.CharField(max_length=100)
    code = models.CharField(max_length=32)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'room'
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(fields=['clinic', 'code'], name='uq_room_clinic_code'),
        ]

    def __str__(self):
        return self.name


class TreatmentChair(SoftDeleteModel):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey('core.Clinic', on_delete=models.CASCADE, related_name='chairs')
    room = models.ForeignKey(
        Room,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='chairs'
    )
    name = models.CharField(max_length=100)
    code = models.CharField(max_length=32)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'treatment_chair'
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(fields=['clinic', 'code'], name='uq_chair_clinic_code'),
        ]

    def __str__(self):
        return self.name


class OccupancyStatusChoices(models.TextChoices):
    AVAILABLE = 'AVAILABLE', 'Available'
    OCCUPIED = 'OCCUPIED', 'Occupied'
    BLOCKED = 'BLOCKED', 'Blocked'
    MAINTENANCE = 'MAINTENANCE', 'Maintenance'
    CLEANING = 'CLEANING', 'Cleaning'


class ResourceOccupancy(models.Model):
    """
    Chair-level occupancy. The most recently updated row for a chair is
    its current state (services.get_current_occupancy).
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey('core.Clinic', on_delete=models.CASCADE, related_name='occupancies')
    chair = models.ForeignKey(TreatmentChair, on_delete=models.CASCADE, related_name='occupancies')
    status = models.CharField(
        max_length=20,
        choices=OccupancyStatusChoices.choices,
        default=OccupancyStatusChoices.AVAILABLE
    )
    appointment = models.ForeignKey(
        'booking.Appointment',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='occupancies'
    )
    occupied_at = models.DateTimeField(null=True, blank=True)
    expected_free_at = models.DateTimeField(null=True, blank=True)
    blocked_until = models.DateTimeField(null=True, blank=True)
    block_reason = models.CharField(max_length=255, blank=True)
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
        db_table = 'resource_occupancy'
        verbose_name_plural = 'Resource Occupancies'
        indexes = [
            models.Index(fields=['clinic', 'status'], name='idx_occupancy_clinic_status'),
            models.Index(fields=['chair', '-updated_at'], name='idx_occupancy_chair_updated'),
        ]

    def __str__(self):
        return f"{self.chair} {self.status}"


class SterilizationStatusChoices(models.TextChoices):
    IN_PROGRESS = 'IN_PROGRESS', 'In Progress'
    COMPLETED = 'COMPLETED', 'Completed'
    FAILED = 'FAILED', 'Failed'


class CycleTypeChoices(models.TextChoices):
    STEAM_GRAVITY = 'STEAM_GRAVITY', 'Steam (Gravity)'
    STEAM_PREVACUUM = 'STEAM_PREVACUUM', 'Steam (Pre-vacuum)'
    CHEMICAL = 'CHEMICAL', 'Chemical Vapor'
    DRY_HEAT = 'DRY_HEAT', 'Dry Heat'


class SterilizationCycle(models.Model):
    """
    One autoclave run. Labels printed for its packages carry the QR
    payload built from this row (see qr_code.generate_qr_content).
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey('core.Clinic', on_delete=models.CASCADE, related_name='sterilization_cycles')
    cycle_number = models.CharField(max_length=50)
    cycle_type = models.CharField(
        max_length=20,
        choices=CycleTypeChoices.choices,
        default=CycleTypeChoices.STEAM_GRAVITY
    )
    equipment_name = models.CharField(max_length=100, blank=True)
    package_type = models.CharField(max_length=50, default='Cassette')
    start_time = models.DateTimeField()
    end_time = models.DateTimeField(null=True, blank=True)
    temperature = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)
    pressure = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)
    exposure_time = models.PositiveIntegerField(null=True, blank=True, help_text='Minutes')
    status = models.CharField(
        max_length=20,
        choices=SterilizationStatusChoices.choices,
        default=SterilizationStatusChoices.COMPLETED
    )
    expiration_date = models.DateField()
    operator = models.ForeignKey(
        'authz.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'sterilization_cycle'
        ordering = ['-start_time']
        constraints = [
            models.UniqueConstraint(fields=['clinic', 'cycle_number'], name='uq_cycle_clinic_number'),
        ]

    def __str__(self):
        return self.cycle_number

    def qr_data(self):
        """Input dict for the qr_code generators."""
        return {
            'cycle_id': str(self.id),
            'cycle_number': self.cycle_number,
            'cycle_date': self.start_time,
            'expiration_date': self.expiration_date,
            'cycle_type': self.cycle_type,
            'temperature': self.temperature,
            'pressure': self.pressure,
            'exposure_time': self.exposure_time,
            'status': self.status,
            'equipment_name': self.equipment_name,
            'package_type': self.package_type,
        }
