"""
Patient views.
"""
from rest_framework import filters, viewsets

from apps.authz.permissions import CanOperateFront
from apps.core.models import AuditActionChoices, log_audit
from apps.core.responses import EnvelopeResponseMixin
from apps.core.tenancy import ClinicScopedMixin

from .models import Patient
from .serializers import PatientListSerializer, PatientSerializer


class PatientViewSet(ClinicScopedMixin, EnvelopeResponseMixin, viewsets.ModelViewSet):
    """
    ViewSet for Patient CRUD operations.

    Endpoints:
    - GET /api/patients/?search=&is_active=
    - POST /api/patients/
    - GET /api/patients/{id}/
    - PATCH /api/patients/{id}/
    - DELETE /api/patients/{id}/ (soft delete)
    """
    queryset = Patient.objects.all()
    permission_classes = [CanOperateFront]
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']
    filter_backends = [filters.SearchFilter, filters.OrderingFilter]
    search_fields = ['first_name', 'last_name', 'phone', 'email', 'patient_number']
    ordering_fields = ['created_at', 'last_name', 'first_name']
    ordering = ['last_name', 'first_name']

    def get_queryset(self):
        queryset = super().get_queryset()
        is_active = self.request.query_params.get('is_active')
        if is_active is not None:
            queryset = queryset.filter(is_active=is_active.lower() == 'true')
        return queryset

    def get_serializer_class(self):
        """Use lightweight serializer for list view."""
        if self.action == 'list':
            return PatientListSerializer
        return PatientSerializer

    def perform_destroy(self, instance):
        """Soft delete - stamp deleted_at instead of deleting."""
        instance.soft_delete()
        log_audit(
            self.clinic,
            self.request.user,
            AuditActionChoices.DELETE,
            'Patient',
            instance.id,
            request=self.request,
        )
