"""
Lab views: vendors, orders, batch operations, remakes and inspections.
"""
from django.db.models import Q
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.views import APIView

from apps.authz.permissions import CanApproveRemakes, CanManageLab
from apps.core.models import AuditActionChoices, log_audit
from apps.core.responses import EnvelopeResponseMixin, success_response
from apps.core.tenancy import ClinicScopedMixin, get_request_clinic, get_scoped_object
from apps.patients.models import Patient

from .models import LabOrder, LabVendor, RemakeRequest
from .serializers import (
    BatchOperationSerializer,
    InspectionCreateSerializer,
    LabInspectionSerializer,
    LabOrderCreateSerializer,
    LabOrderSerializer,
    LabOrderStatusLogSerializer,
    LabOrderUpdateSerializer,
    LabVendorSerializer,
    OrderStatusSerializer,
    RemakeApprovalSerializer,
    RemakeCreateSerializer,
    RemakeRequestSerializer,
    RemakeStatusSerializer,
)
from . import services


class LabVendorViewSet(ClinicScopedMixin, EnvelopeResponseMixin, viewsets.ModelViewSet):
    queryset = LabVendor.objects.all()
    serializer_class = LabVendorSerializer
    permission_classes = [CanManageLab]
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']
    pagination_class = None

    def get_queryset(self):
        queryset = super().get_queryset()
        is_active = self.request.query_params.get('is_active')
        if is_active is not None:
            queryset = queryset.filter(is_active=is_active.lower() == 'true')
        return queryset

    def perform_destroy(self, instance):
        instance.soft_delete()


class LabOrderViewSet(ClinicScopedMixin, EnvelopeResponseMixin, viewsets.ModelViewSet):
    """
    Endpoints:
    - GET /api/lab/orders/?status=&vendorId=&patientId=&priority=&isRush=&search=
    - POST /api/lab/orders/ (items nested)
    - GET /api/lab/orders/{id}/
    - PATCH /api/lab/orders/{id}/
    - DELETE /api/lab/orders/{id}/ (soft delete)
    - POST /api/lab/orders/{id}/status/
    - GET /api/lab/orders/{id}/history/
    - GET|POST /api/lab/orders/{id}/inspections/
    """
    queryset = LabOrder.objects.select_related('patient', 'vendor').prefetch_related('items')
    serializer_class = LabOrderSerializer
    permission_classes = [CanManageLab]
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']
    filter_backends = []

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params

        for param, field in (
            ('status', 'status'),
            ('priority', 'priority'),
        ):
            value = params.get(param)
            if value and value != 'all':
                queryset = queryset.filter(**{field: value})

        if params.get('vendorId'):
            queryset = queryset.filter(vendor_id=params['vendorId'])
        if params.get('patientId'):
            queryset = queryset.filter(patient_id=params['patientId'])
        if params.get('isRush') is not None:
            queryset = queryset.filter(is_rush=params['isRush'].lower() == 'true')

        search = params.get('search')
        if search:
            queryset = queryset.filter(
                Q(order_number__icontains=search)
                | Q(patient__first_name__icontains=search)
                | Q(patient__last_name__icontains=search)
            )
        return queryset.order_by('-order_date')

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context['clinic'] = self.clinic
        return context

    def create(self, request, *args, **kwargs):
        serializer = LabOrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        patient = get_scoped_object(
            Patient.objects.filter(is_active=True),
            self.clinic,
            'PATIENT_NOT_FOUND',
            'Patient not found',
            pk=data['patientId'],
        )
        vendor = None
        if data.get('vendorId'):
            vendor = get_scoped_object(
                LabVendor.objects.filter(is_active=True),
                self.clinic,
                'VENDOR_NOT_FOUND',
                'Vendor not found',
                pk=data['vendorId'],
            )

        order = services.create_order(
            self.clinic,
            {
                'patient': patient,
                'vendor': vendor,
                'priority': data['priority'],
                'is_rush': data['isRush'],
                'rush_level': data.get('rushLevel') or '',
                'order_date': data.get('orderDate'),
                'needed_by_date': data.get('neededByDate'),
                'clinic_notes': data.get('clinicNotes') or '',
            },
            data['items'],
            user=request.user,
            request=request,
        )
        return success_response(LabOrderSerializer(order).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        order = self.get_object()
        before = {'vendor_id': str(order.vendor_id) if order.vendor_id else None, 'priority': order.priority}
        serializer = LabOrderUpdateSerializer(
            order,
            data=request.data,
            partial=True,
            context=self.get_serializer_context(),
        )
        serializer.is_valid(raise_exception=True)
        order = serializer.save(updated_by=request.user)
        log_audit(
            self.clinic,
            request.user,
            AuditActionChoices.UPDATE,
            'LabOrder',
            order.id,
            before=before,
            after={'vendor_id': str(order.vendor_id) if order.vendor_id else None, 'priority': order.priority},
            request=request,
        )
        return success_response(LabOrderSerializer(order).data)

    def perform_destroy(self, instance):
        instance.soft_delete()
        log_audit(
            self.clinic,
            self.request.user,
            AuditActionChoices.DELETE,
            'LabOrder',
            instance.id,
            request=self.request,
        )

    @action(detail=True, methods=['post'], url_path='status')
    def change_status(self, request, pk=None):
        """
        POST /api/lab/orders/{id}/status/

        Request body:
        {
            "status": "ACKNOWLEDGED",
            "notes": "Lab confirmed receipt",
            "source": "LAB"
        }
        """
        order = self.get_object()
        serializer = OrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = services.change_order_status(
            order,
            data['status'],
            notes=data['notes'],
            source=data['source'],
            user=request.user,
            request=request,
        )
        order = self.get_queryset().get(pk=order.pk)
        return success_response(LabOrderSerializer(order).data)

    @action(detail=True, methods=['get'], url_path='history')
    def history(self, request, pk=None):
        order = self.get_object()
        logs = order.status_logs.select_related('changed_by')
        return success_response(LabOrderStatusLogSerializer(logs, many=True).data)

    @action(detail=True, methods=['get', 'post'], url_path='inspections')
    def inspections(self, request, pk=None):
        order = self.get_object()
        if request.method == 'GET':
            return success_response(LabInspectionSerializer(order.inspections.all(), many=True).data)

        serializer = InspectionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        inspection = services.record_inspection(
            order,
            dict(serializer.validated_data),
            user=request.user,
            request=request,
        )
        return success_response(LabInspectionSerializer(inspection).data, status=status.HTTP_201_CREATED)


class LabBatchView(APIView):
    """
    POST /api/lab/batch/

    Request body:
    {
        "operation": "UPDATE_STATUS",
        "orderIds": ["...", "..."],
        "status": "ACKNOWLEDGED",
        "notes": "Confirmed by phone"
    }

    UPDATE_STATUS, UPDATE_PRIORITY and ASSIGN_VENDOR reject the whole request
    when any order id is unknown. SUBMIT and CANCEL skip and report.
    """
    permission_classes = [CanManageLab]

    def post(self, request):
        clinic = get_request_clinic(request)
        serializer = BatchOperationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = services.run_batch(clinic, serializer.validated_data, user=request.user, request=request)
        return success_response(result)


class RemakeRequestViewSet(
    ClinicScopedMixin,
    EnvelopeResponseMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    """
    Endpoints:
    - GET /api/lab/remakes/?status=&orderId=&pendingApproval=
    - POST /api/lab/remakes/
    - GET /api/lab/remakes/{id}/
    - POST /api/lab/remakes/{id}/approve/
    - POST /api/lab/remakes/{id}/status/
    """
    queryset = RemakeRequest.objects.select_related('original_order')
    serializer_class = RemakeRequestSerializer
    permission_classes = [CanManageLab]
    soft_delete = False
    filter_backends = []

    def get_permissions(self):
        if self.action == 'approve':
            return [CanApproveRemakes()]
        return super().get_permissions()

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params

        value = params.get('status')
        if value and value != 'all':
            queryset = queryset.filter(status=value)
        if params.get('orderId'):
            queryset = queryset.filter(original_order_id=params['orderId'])
        if params.get('pendingApproval', '').lower() == 'true':
            queryset = queryset.filter(
                requires_approval=True,
                approved_at__isnull=True,
                status='REQUESTED',
            )
        return queryset.order_by('-created_at')

    def create(self, request, *args, **kwargs):
        serializer = RemakeCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        remake = services.create_remake(
            self.clinic,
            serializer.to_service_data(),
            user=request.user,
            request=request,
        )
        return success_response(RemakeRequestSerializer(remake).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='approve')
    def approve(self, request, pk=None):
        """
        POST /api/lab/remakes/{id}/approve/

        Request body:
        {
            "approved": true,
            "notes": "Lab covers the cost"
        }
        """
        remake = self.get_object()
        serializer = RemakeApprovalSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        remake = services.decide_remake(
            remake,
            serializer.validated_data['approved'],
            notes=serializer.validated_data['notes'],
            user=request.user,
            request=request,
        )
        return success_response(RemakeRequestSerializer(remake).data)

    @action(detail=True, methods=['post'], url_path='status')
    def change_status(self, request, pk=None):
        remake = self.get_object()
        serializer = RemakeStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        remake = services.change_remake_status(
            remake,
            serializer.validated_data['status'],
            notes=serializer.validated_data['notes'],
            user=request.user,
            request=request,
        )
        return success_response(RemakeRequestSerializer(remake).data)
