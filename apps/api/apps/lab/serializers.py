"""
Lab serializers.
"""
from django.conf import settings
from rest_framework import serializers

from .models import (
    ArchChoices,
    CostResponsibilityChoices,
    InspectionResultChoices,
    LabInspection,
    LabOrder,
    LabOrderItem,
    LabOrderStatusChoices,
    LabOrderStatusLog,
    LabVendor,
    OrderPriorityChoices,
    RemakeReasonChoices,
    RemakeRequest,
    RemakeStatusChoices,
    RushLevelChoices,
    StatusChangeSourceChoices,
)


class LabVendorSerializer(serializers.ModelSerializer):
    class Meta:
        model = LabVendor
        fields = ['id', 'name', 'code', 'email', 'phone', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_code(self, value):
        return value.strip().upper()


class LabOrderItemSerializer(serializers.ModelSerializer):
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = LabOrderItem
        fields = ['id', 'product_name', 'quantity', 'arch', 'unit_price', 'prescription', 'line_total']
        read_only_fields = ['id', 'line_total']


class LabOrderSerializer(serializers.ModelSerializer):
    patient_name = serializers.CharField(source='patient.full_name', read_only=True)
    vendor_name = serializers.CharField(source='vendor.name', read_only=True, default=None)
    items = LabOrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = LabOrder
        fields = [
            'id',
            'order_number',
            'patient',
            'patient_name',
            'vendor',
            'vendor_name',
            'status',
            'priority',
            'is_rush',
            'rush_level',
            'order_date',
            'needed_by_date',
            'submitted_at',
            'total_cost',
            'clinic_notes',
            'items',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class LabOrderItemInputSerializer(serializers.Serializer):
    productName = serializers.CharField(max_length=200)
    quantity = serializers.IntegerField(min_value=1, default=1)
    arch = serializers.ChoiceField(choices=ArchChoices.choices, required=False, allow_blank=True)
    unitPrice = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, default=0)
    prescription = serializers.JSONField(required=False)

    def to_internal_value(self, data):
        attrs = super().to_internal_value(data)
        return {
            'product_name': attrs['productName'],
            'quantity': attrs['quantity'],
            'arch': attrs.get('arch') or '',
            'unit_price': attrs['unitPrice'],
            'prescription': attrs.get('prescription') or {},
        }


class LabOrderCreateSerializer(serializers.Serializer):
    patientId = serializers.UUIDField()
    vendorId = serializers.UUIDField(required=False, allow_null=True)
    priority = serializers.ChoiceField(choices=OrderPriorityChoices.choices, default=OrderPriorityChoices.STANDARD)
    isRush = serializers.BooleanField(default=False)
    rushLevel = serializers.ChoiceField(choices=RushLevelChoices.choices, required=False, allow_blank=True)
    orderDate = serializers.DateTimeField(required=False)
    neededByDate = serializers.DateField(required=False, allow_null=True)
    clinicNotes = serializers.CharField(max_length=5000, required=False, allow_blank=True)
    items = LabOrderItemInputSerializer(many=True)

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError('At least one item is required')
        return value

    def validate(self, attrs):
        if attrs.get('rushLevel') and not attrs.get('isRush'):
            raise serializers.ValidationError({'rushLevel': 'Rush level requires isRush'})
        return attrs


class LabOrderUpdateSerializer(serializers.ModelSerializer):
    """Editable header fields; status moves through the status action."""

    class Meta:
        model = LabOrder
        fields = ['vendor', 'priority', 'is_rush', 'rush_level', 'needed_by_date', 'clinic_notes']

    def validate_vendor(self, value):
        clinic = self.context.get('clinic')
        if value is not None and (value.clinic_id != getattr(clinic, 'id', None) or value.deleted_at):
            raise serializers.ValidationError('Vendor not found')
        return value


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=LabOrderStatusChoices.choices)
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')
    source = serializers.ChoiceField(
        choices=StatusChangeSourceChoices.choices,
        default=StatusChangeSourceChoices.USER,
    )


class LabOrderStatusLogSerializer(serializers.ModelSerializer):
    changed_by_email = serializers.EmailField(source='changed_by.email', read_only=True, default=None)

    class Meta:
        model = LabOrderStatusLog
        fields = ['id', 'from_status', 'to_status', 'notes', 'source', 'changed_by', 'changed_by_email', 'created_at']
        read_only_fields = fields


BATCH_OPERATIONS = [
    'UPDATE_STATUS',
    'UPDATE_PRIORITY',
    'ASSIGN_VENDOR',
    'SUBMIT',
    'CANCEL',
    'PRINT',
    'EXPORT',
]


class ExportFiltersSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=LabOrderStatusChoices.choices, required=False)
    vendorId = serializers.UUIDField(required=False)
    dateFrom = serializers.DateTimeField(required=False)
    dateTo = serializers.DateTimeField(required=False)


class BatchOperationSerializer(serializers.Serializer):
    """
    Request body for POST /api/lab/batch/.

    Required fields depend on `operation`:
    - UPDATE_STATUS: orderIds, status, notes?
    - UPDATE_PRIORITY: orderIds, priority
    - ASSIGN_VENDOR: orderIds, vendorId
    - SUBMIT: orderIds
    - CANCEL: orderIds, reason
    - PRINT: orderIds, format?
    - EXPORT: orderIds (up to LAB_EXPORT_MAX_ORDERS) or filters, format?
    """
    PRINT_FORMATS = ['PRESCRIPTION', 'LABEL', 'PACKING_SLIP']
    EXPORT_FORMATS = ['CSV', 'XLSX', 'PDF']

    operation = serializers.ChoiceField(choices=BATCH_OPERATIONS)
    orderIds = serializers.ListField(child=serializers.UUIDField(), required=False)
    status = serializers.ChoiceField(choices=LabOrderStatusChoices.choices, required=False)
    priority = serializers.ChoiceField(choices=OrderPriorityChoices.choices, required=False)
    vendorId = serializers.UUIDField(required=False)
    reason = serializers.CharField(max_length=500, required=False)
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True)
    format = serializers.CharField(required=False)
    filters = ExportFiltersSerializer(required=False)

    REQUIRED = {
        'UPDATE_STATUS': ['status'],
        'UPDATE_PRIORITY': ['priority'],
        'ASSIGN_VENDOR': ['vendorId'],
        'CANCEL': ['reason'],
    }

    def validate(self, attrs):
        operation = attrs['operation']
        order_ids = attrs.get('orderIds') or []

        if operation == 'EXPORT':
            if len(order_ids) > settings.LAB_EXPORT_MAX_ORDERS:
                raise serializers.ValidationError(
                    {'orderIds': f'At most {settings.LAB_EXPORT_MAX_ORDERS} orders can be exported'}
                )
            export_format = attrs.get('format') or 'CSV'
            if export_format not in self.EXPORT_FORMATS:
                raise serializers.ValidationError({'format': f'Unsupported export format: {export_format}'})
        else:
            if not order_ids:
                raise serializers.ValidationError({'orderIds': 'At least one order is required'})
            if len(order_ids) > settings.LAB_BATCH_MAX_ORDERS:
                raise serializers.ValidationError(
                    {'orderIds': f'At most {settings.LAB_BATCH_MAX_ORDERS} orders per batch'}
                )

        if operation == 'PRINT':
            print_format = attrs.get('format') or 'PRESCRIPTION'
            if print_format not in self.PRINT_FORMATS:
                raise serializers.ValidationError({'format': f'Unsupported print format: {print_format}'})

        missing = [field for field in self.REQUIRED.get(operation, []) if not attrs.get(field)]
        if missing:
            raise serializers.ValidationError({field: 'This field is required.' for field in missing})
        return attrs


class RemakeRequestSerializer(serializers.ModelSerializer):
    original_order_number = serializers.CharField(source='original_order.order_number', read_only=True)
    is_pending_approval = serializers.BooleanField(read_only=True)

    class Meta:
        model = RemakeRequest
        fields = [
            'id',
            'remake_number',
            'original_order',
            'original_order_number',
            'original_item',
            'new_order',
            'reason',
            'reason_details',
            'status',
            'is_warranty_claim',
            'cost_responsibility',
            'estimated_cost',
            'actual_cost',
            'requires_approval',
            'is_pending_approval',
            'approved_at',
            'approved_by',
            'approval_notes',
            'requested_by',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class RemakeCreateSerializer(serializers.Serializer):
    originalOrderId = serializers.UUIDField()
    originalItemId = serializers.UUIDField(required=False, allow_null=True)
    reason = serializers.ChoiceField(choices=RemakeReasonChoices.choices)
    reasonDetails = serializers.CharField(max_length=2000, required=False, allow_blank=True, default='')
    isWarrantyClaim = serializers.BooleanField(default=False)
    costResponsibility = serializers.ChoiceField(
        choices=CostResponsibilityChoices.choices,
        default=CostResponsibilityChoices.LAB,
    )
    estimatedCost = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    requiresApproval = serializers.BooleanField(default=False)

    def to_service_data(self):
        data = self.validated_data
        return {
            'originalOrderId': data['originalOrderId'],
            'originalItemId': data.get('originalItemId'),
            'reason': data['reason'],
            'reason_details': data['reasonDetails'],
            'is_warranty_claim': data['isWarrantyClaim'],
            'cost_responsibility': data['costResponsibility'],
            'estimated_cost': data.get('estimatedCost'),
            'requires_approval': data['requiresApproval'],
        }


class RemakeApprovalSerializer(serializers.Serializer):
    approved = serializers.BooleanField()
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')


class RemakeStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=RemakeStatusChoices.choices)
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')


class LabInspectionSerializer(serializers.ModelSerializer):
    class Meta:
        model = LabInspection
        fields = ['id', 'order', 'remake', 'result', 'notes', 'inspected_by', 'inspected_at']
        read_only_fields = fields


class InspectionCreateSerializer(serializers.Serializer):
    result = serializers.ChoiceField(choices=InspectionResultChoices.choices)
    notes = serializers.CharField(max_length=2000, required=False, allow_blank=True, default='')
    remakeId = serializers.UUIDField(required=False, allow_null=True)
