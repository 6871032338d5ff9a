"""
Lab models: lab_vendor, lab_order, lab_order_item, lab_order_status_log,
remake_request, lab_inspection.
"""
import uuid
from django.db import models

from apps.core.models import SoftDeleteModel


class LabVendor(SoftDeleteModel):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey('core.Clinic', on_delete=models.CASCADE, related_name='lab_vendors')
    name = models.CharField(max_length=200)
    code = models.CharField(max_length=32)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=32, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'lab_vendor'
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(fields=['clinic', 'code'], name='uq_lab_vendor_clinic_code'),
        ]

    def __str__(self):
        return self.name


class LabOrderStatusChoices(models.TextChoices):
    DRAFT = 'DRAFT', 'Draft'
    SUBMITTED = 'SUBMITTED', 'Submitted'
    ACKNOWLEDGED = 'ACKNOWLEDGED', 'Acknowledged'
    IN_PROGRESS = 'IN_PROGRESS', 'In Progress'
    COMPLETED = 'COMPLETED', 'Completed'
    SHIPPED = 'SHIPPED', 'Shipped'
    DELIVERED = 'DELIVERED', 'Delivered'
    RECEIVED = 'RECEIVED', 'Received'
    PATIENT_PICKUP = 'PATIENT_PICKUP', 'Ready for Patient Pickup'
    PICKED_UP = 'PICKED_UP', 'Picked Up'
    CANCELLED = 'CANCELLED', 'Cancelled'
    REMAKE_REQUESTED = 'REMAKE_REQUESTED', 'Remake Requested'
    ON_HOLD = 'ON_HOLD', 'On Hold'


_O = LabOrderStatusChoices

ORDER_TRANSITIONS = {
    _O.DRAFT: {_O.SUBMITTED, _O.CANCELLED},
    _O.SUBMITTED: {_O.ACKNOWLEDGED, _O.ON_HOLD, _O.CANCELLED},
    _O.ACKNOWLEDGED: {_O.IN_PROGRESS, _O.ON_HOLD, _O.CANCELLED},
    _O.IN_PROGRESS: {_O.COMPLETED, _O.ON_HOLD, _O.CANCELLED},
    _O.ON_HOLD: {_O.SUBMITTED, _O.ACKNOWLEDGED, _O.IN_PROGRESS, _O.CANCELLED},
    _O.COMPLETED: {_O.SHIPPED},
    _O.SHIPPED: {_O.DELIVERED, _O.RECEIVED},
    _O.DELIVERED: {_O.RECEIVED, _O.PATIENT_PICKUP},
    _O.RECEIVED: {_O.PATIENT_PICKUP, _O.PICKED_UP, _O.REMAKE_REQUESTED},
    _O.PATIENT_PICKUP: {_O.PICKED_UP},
    _O.PICKED_UP: {_O.REMAKE_REQUESTED},
    _O.CANCELLED: set(),
    _O.REMAKE_REQUESTED: set(),
}

CANCELLABLE_ORDER_STATUSES = [
    _O.DRAFT,
    _O.SUBMITTED,
    _O.ACKNOWLEDGED,
    _O.IN_PROGRESS,
    _O.ON_HOLD,
]


def can_transition_order(from_status, to_status):
    return to_status in ORDER_TRANSITIONS.get(from_status, set())


class OrderPriorityChoices(models.TextChoices):
    LOW = 'LOW', 'Low'
    STANDARD = 'STANDARD', 'Standard'
    HIGH = 'HIGH', 'High'
    URGENT = 'URGENT', 'Urgent'


class RushLevelChoices(models.TextChoices):
    EMERGENCY = 'EMERGENCY', 'Emergency'
    RUSH = 'RUSH', 'Rush'
    PRIORITY = 'PRIORITY', 'Priority'


class LabOrder(SoftDeleteModel):
    """
    Order sent to an outside lab (retainers, appliances, aligners).

    Status moves along ORDER_TRANSITIONS; every move appends a
    LabOrderStatusLog row.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey('core.Clinic', on_delete=models.CASCADE, related_name='lab_orders')
    order_number = models.CharField(max_length=32)
    patient = models.ForeignKey('patients.Patient', on_delete=models.PROTECT, related_name='lab_orders')
    vendor = models.ForeignKey(
        LabVendor,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='orders'
    )
    status = models.CharField(
        max_length=20,
        choices=LabOrderStatusChoices.choices,
        default=LabOrderStatusChoices.DRAFT
    )
    priority = models.CharField(
        max_length=10,
        choices=OrderPriorityChoices.choices,
        default=OrderPriorityChoices.STANDARD
    )
    is_rush = models.BooleanField(default=False)
    rush_level = models.CharField(max_length=10, choices=RushLevelChoices.choices, blank=True)

    order_date = models.DateTimeField()
    needed_by_date = models.DateField(null=True, blank=True)
    submitted_at = models.DateTimeField(null=True, blank=True)
    total_cost = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    clinic_notes = models.TextField(blank=True)

    created_by = models.ForeignKey(
        'authz.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
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
        db_table = 'lab_order'
        ordering = ['-order_date']
        constraints = [
            models.UniqueConstraint(fields=['clinic', 'order_number'], name='uq_lab_order_clinic_number'),
        ]
        indexes = [
            models.Index(fields=['clinic', 'status'], name='idx_lab_order_clinic_status'),
            models.Index(fields=['clinic', 'order_date'], name='idx_lab_order_clinic_date'),
        ]

    def __str__(self):
        return self.order_number


class ArchChoices(models.TextChoices):
    UPPER = 'UPPER', 'Upper'
    LOWER = 'LOWER', 'Lower'
    BOTH = 'BOTH', 'Both'


class LabOrderItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(LabOrder, on_delete=models.CASCADE, related_name='items')
    product_name = models.CharField(max_length=200)
    quantity = models.PositiveIntegerField(default=1)
    arch = models.CharField(max_length=10, choices=ArchChoices.choices, blank=True)
    unit_price = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    prescription = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'lab_order_item'
        ordering = ['created_at']

    def __str__(self):
        return f"{self.product_name} x{self.quantity}"

    @property
    def line_total(self):
        return self.unit_price * self.quantity


class StatusChangeSourceChoices(models.TextChoices):
    USER = 'USER', 'User'
    LAB = 'LAB', 'Lab'
    SYSTEM = 'SYSTEM', 'System'
    SHIPPING = 'SHIPPING', 'Shipping'


class ImmutableRecordError(Exception):
    pass


class ImmutableQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise ImmutableRecordError('Status log rows cannot be modified')

    def delete(self):
        raise ImmutableRecordError('Status log rows cannot be deleted')


class LabOrderStatusLog(models.Model):
    """
    Append-only status history. Rows are written once and never edited
    or deleted.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(LabOrder, on_delete=models.CASCADE, related_name='status_logs')
    from_status = models.CharField(max_length=20, choices=LabOrderStatusChoices.choices, blank=True)
    to_status = models.CharField(max_length=20, choices=LabOrderStatusChoices.choices)
    notes = models.TextField(blank=True)
    source = models.CharField(
        max_length=10,
        choices=StatusChangeSourceChoices.choices,
        default=StatusChangeSourceChoices.USER
    )
    changed_by = models.ForeignKey(
        'authz.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = ImmutableQuerySet.as_manager()

    class Meta:
        db_table = 'lab_order_status_log'
        ordering = ['created_at']

    def __str__(self):
        return f"{self.order_id}: {self.from_status or '-'} -> {self.to_status}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableRecordError('Status log rows cannot be modified')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError('Status log rows cannot be deleted')


class RemakeStatusChoices(models.TextChoices):
    REQUESTED = 'REQUESTED', 'Requested'
    ACKNOWLEDGED = 'ACKNOWLEDGED', 'Acknowledged'
    IN_PROGRESS = 'IN_PROGRESS', 'In Progress'
    SHIPPED = 'SHIPPED', 'Shipped'
    RECEIVED = 'RECEIVED', 'Received'
    INSPECTED = 'INSPECTED', 'Inspected'
    COMPLETED = 'COMPLETED', 'Completed'
    CANCELLED = 'CANCELLED', 'Cancelled'


_R = RemakeStatusChoices

REMAKE_TRANSITIONS = {
    _R.REQUESTED: {_R.ACKNOWLEDGED, _R.CANCELLED},
    _R.ACKNOWLEDGED: {_R.IN_PROGRESS, _R.CANCELLED},
    _R.IN_PROGRESS: {_R.SHIPPED, _R.CANCELLED},
    _R.SHIPPED: {_R.RECEIVED},
    _R.RECEIVED: {_R.INSPECTED},
    _R.INSPECTED: {_R.COMPLETED, _R.IN_PROGRESS},
    _R.COMPLETED: set(),
    _R.CANCELLED: set(),
}


def can_transition_remake(from_status, to_status):
    return to_status in REMAKE_TRANSITIONS.get(from_status, set())


class RemakeReasonChoices(models.TextChoices):
    FIT_ISSUE = 'FIT_ISSUE', 'Fit Issue'
    DESIGN_ISSUE = 'DESIGN_ISSUE', 'Design Issue'
    MATERIAL_DEFECT = 'MATERIAL_DEFECT', 'Material Defect'
    SHIPPING_DAMAGE = 'SHIPPING_DAMAGE', 'Shipping Damage'
    WRONG_PATIENT = 'WRONG_PATIENT', 'Wrong Patient'
    SPECIFICATION_ERROR = 'SPECIFICATION_ERROR', 'Specification Error'
    OTHER = 'OTHER', 'Other'


class CostResponsibilityChoices(models.TextChoices):
    LAB = 'LAB', 'Lab'
    CLINIC = 'CLINIC', 'Clinic'
    PATIENT = 'PATIENT', 'Patient'
    WARRANTY = 'WARRANTY', 'Warranty'


class RemakeRequest(models.Model):
    """
    Request to redo a lab item. Requests with `requires_approval` cannot
    leave REQUESTED until approved.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey('core.Clinic', on_delete=models.CASCADE, related_name='remake_requests')
    remake_number = models.CharField(max_length=32)
    original_order = models.ForeignKey(LabOrder, on_delete=models.PROTECT, related_name='remakes')
    original_item = models.ForeignKey(
        LabOrderItem,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='remakes'
    )
    new_order = models.ForeignKey(
        LabOrder,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='remake_sources'
    )

    reason = models.CharField(max_length=30, choices=RemakeReasonChoices.choices)
    reason_details = models.TextField(blank=True)
    status = models.CharField(
        max_length=20,
        choices=RemakeStatusChoices.choices,
        default=RemakeStatusChoices.REQUESTED
    )
    is_warranty_claim = models.BooleanField(default=False)
    cost_responsibility = models.CharField(
        max_length=10,
        choices=CostResponsibilityChoices.choices,
        default=CostResponsibilityChoices.LAB
    )
    estimated_cost = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    actual_cost = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)

    requires_approval = models.BooleanField(default=False)
    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(
        'authz.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    approval_notes = models.TextField(blank=True)

    requested_by = models.ForeignKey(
        'authz.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'remake_request'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['clinic', 'remake_number'], name='uq_remake_clinic_number'),
        ]

    def __str__(self):
        return self.remake_number

    @property
    def is_pending_approval(self):
        return (
            self.requires_approval
            and self.approved_at is None
            and self.status == RemakeStatusChoices.REQUESTED
        )


class InspectionResultChoices(models.TextChoices):
    PASS = 'PASS', 'Pass'
    PASS_WITH_NOTES = 'PASS_WITH_NOTES', 'Pass with Notes'
    FAIL_REMAKE = 'FAIL_REMAKE', 'Fail - Remake'
    FAIL_ADJUSTMENT = 'FAIL_ADJUSTMENT', 'Fail - Adjustment'
    PENDING = 'PENDING', 'Pending'


class LabInspection(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey('core.Clinic', on_delete=models.CASCADE, related_name='lab_inspections')
    order = models.ForeignKey(LabOrder, on_delete=models.CASCADE, related_name='inspections')
    remake = models.ForeignKey(
        RemakeRequest,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='inspections'
    )
    result = models.CharField(
        max_length=20,
        choices=InspectionResultChoices.choices,
        default=InspectionResultChoices.PENDING
    )
    notes = models.TextField(blank=True)
    inspected_by = models.ForeignKey(
        'authz.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    inspected_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'lab_inspection'
        ordering = ['-inspected_at']

    def __str__(self):
        return f"{self.order_id} {self.result}"
