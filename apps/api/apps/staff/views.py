"""
Staff views.
"""
from rest_framework import filters, viewsets
from rest_framework.decorators import action

from apps.authz.permissions import CanManageStaff
from apps.core.models import AuditActionChoices, log_audit
from apps.core.responses import EnvelopeResponseMixin, success_response
from apps.core.tenancy import ClinicScopedMixin

from .models import StaffProfile
from .serializers import StaffProfileSerializer, TerminateStaffSerializer
from .services import terminate_staff


class StaffProfileViewSet(ClinicScopedMixin, EnvelopeResponseMixin, viewsets.ModelViewSet):
    """
    ViewSet for staff endpoints.

    Endpoints:
    - GET /api/staff/?status=&is_provider=&search=
    - POST /api/staff/
    - GET /api/staff/{id}/
    - PATCH /api/staff/{id}/
    - DELETE /api/staff/{id}/ (soft delete)
    - POST /api/staff/{id}/terminate/
    """
    queryset = StaffProfile.objects.select_related('user')
    serializer_class = StaffProfileSerializer
    permission_classes = [CanManageStaff]
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']
    filter_backends = [filters.SearchFilter, filters.OrderingFilter]
    search_fields = ['first_name', 'last_name', 'email', 'title']
    ordering_fields = ['last_name', 'hire_date', 'created_at']
    ordering = ['last_name', 'first_name']

    def get_queryset(self):
        queryset = super().get_queryset()

        status_filter = self.request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)

        is_provider = self.request.query_params.get('is_provider')
        if is_provider is not None:
            queryset = queryset.filter(is_provider=is_provider.lower() == 'true')

        return queryset

    def perform_destroy(self, instance):
        instance.soft_delete()
        log_audit(
            self.clinic,
            self.request.user,
            AuditActionChoices.DELETE,
            'StaffProfile',
            instance.id,
            request=self.request,
        )

    @action(detail=True, methods=['post'], url_path='terminate')
    def terminate(self, request, pk=None):
        """
        POST /api/staff/{id}/terminate/

        Request body:
        {
            "terminationDate": "2026-03-31",
            "reason": "Relocation"
        }

        Returns:
            200: terminated profile
            400: VALIDATION_ERROR (already terminated / bad payload)
            409: HAS_UPCOMING_APPOINTMENTS
        """
        staff = self.get_object()
        serializer = TerminateStaffSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        staff = terminate_staff(
            staff,
            serializer.validated_data['terminationDate'],
            serializer.validated_data['reason'],
            actor=request.user,
            request=request,
        )
        return success_response(StaffProfileSerializer(staff).data)
