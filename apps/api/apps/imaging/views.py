"""
Imaging views.
"""
from rest_framework import mixins, parsers, viewsets

from apps.authz.permissions import CanOperateFront
from apps.core.models import AuditActionChoices, log_audit
from apps.core.responses import EnvelopeResponseMixin
from apps.core.tenancy import ClinicScopedMixin

from .models import PatientImage
from .serializers import PatientImageSerializer


class PatientImageViewSet(
    ClinicScopedMixin,
    EnvelopeResponseMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    """
    Endpoints:
    - GET /api/imaging/images/?patientId=&category=
    - POST /api/imaging/images/ (multipart; thumbnail generated in background)
    - GET /api/imaging/images/{id}/
    - DELETE /api/imaging/images/{id}/ (soft delete)
    """
    queryset = PatientImage.objects.select_related('patient')
    serializer_class = PatientImageSerializer
    permission_classes = [CanOperateFront]
    parser_classes = [parsers.MultiPartParser, parsers.FormParser]
    filter_backends = []

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params
        if params.get('patientId'):
            queryset = queryset.filter(patient_id=params['patientId'])
        category = params.get('category')
        if category and category != 'all':
            queryset = queryset.filter(category=category)
        return queryset.order_by('-captured_at')

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context['clinic'] = self.clinic
        return context

    def perform_create(self, serializer):
        image = serializer.save(clinic=self.clinic, uploaded_by=self.request.user)
        log_audit(
            self.clinic,
            self.request.user,
            AuditActionChoices.CREATE,
            'PatientImage',
            image.id,
            after={'patient_id': str(image.patient_id), 'category': image.category},
            request=self.request,
        )

    def perform_destroy(self, instance):
        instance.soft_delete()
        log_audit(
            self.clinic,
            self.request.user,
            AuditActionChoices.DELETE,
            'PatientImage',
            instance.id,
            request=self.request,
        )
