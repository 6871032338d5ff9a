"""
Content views: articles, deliveries and delivery stats.
"""
from django.db.models import Q
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action

from apps.authz.permissions import CanManageContent
from apps.core.exceptions import PermissionDeniedError
from apps.core.models import AuditActionChoices, log_audit
from apps.core.responses import EnvelopeResponseMixin, success_response
from apps.core.soft_delete import with_soft_delete
from apps.core.tenancy import ClinicScopedMixin

from .models import ContentArticle, ContentDelivery
from .serializers import (
    ContentArticleSerializer,
    ContentDeliverySerializer,
    DeliverArticleSerializer,
    StatsQuerySerializer,
)
from .services import ContentDeliveryService


class ContentArticleViewSet(ClinicScopedMixin, EnvelopeResponseMixin, viewsets.ModelViewSet):
    """
    Clinic articles plus the global library. Global articles are read-only.

    Endpoints:
    - GET /api/content/articles/?status=&category=&search=
    - POST /api/content/articles/
    - PATCH /api/content/articles/{id}/
    - DELETE /api/content/articles/{id}/ (soft delete)
    - POST /api/content/articles/{id}/deliver/
    """
    queryset = ContentArticle.objects.all()
    serializer_class = ContentArticleSerializer
    permission_classes = [CanManageContent]
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']
    filter_backends = []

    def get_queryset(self):
        queryset = ContentArticle.objects.filter(
            with_soft_delete(Q(clinic=self.clinic) | Q(clinic__isnull=True))
        )
        params = self.request.query_params

        value = params.get('status')
        if value and value != 'all':
            queryset = queryset.filter(status=value)
        if params.get('category'):
            queryset = queryset.filter(category=params['category'])
        if params.get('search'):
            queryset = queryset.filter(
                Q(title__icontains=params['search']) | Q(summary__icontains=params['search'])
            )
        return queryset.order_by('title')

    def get_object(self):
        article = super().get_object()
        if (
            self.request.method not in permissions.SAFE_METHODS
            and self.action != 'deliver'
            and article.is_global
        ):
            raise PermissionDeniedError('Global articles are read-only')
        return article

    def perform_create(self, serializer):
        article = serializer.save(clinic=self.clinic)
        log_audit(
            self.clinic,
            self.request.user,
            AuditActionChoices.CREATE,
            'ContentArticle',
            article.id,
            after={'title': article.title, 'status': article.status},
            request=self.request,
        )

    def perform_update(self, serializer):
        before = {'status': serializer.instance.status}
        article = serializer.save()
        log_audit(
            self.clinic,
            self.request.user,
            AuditActionChoices.UPDATE,
            'ContentArticle',
            article.id,
            before=before,
            after={'status': article.status},
            request=self.request,
        )

    def perform_destroy(self, instance):
        instance.soft_delete()
        log_audit(
            self.clinic,
            self.request.user,
            AuditActionChoices.DELETE,
            'ContentArticle',
            instance.id,
            request=self.request,
        )

    @action(detail=True, methods=['post'], url_path='deliver')
    def deliver(self, request, pk=None):
        """
        POST /api/content/articles/{id}/deliver/

        Request body:
        {
            "patientIds": ["...", "..."],
            "method": "EMAIL"
        }

        A single `patientId` returns the delivery; `patientIds` returns
        per-patient results.
        """
        article = self.get_object()
        serializer = DeliverArticleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        service = ContentDeliveryService(self.clinic)

        if data.get('patientId'):
            delivery = service.deliver_to_patient(
                article.id,
                data['patientId'],
                data['method'],
                user=request.user,
            )
            return success_response(ContentDeliverySerializer(delivery).data, status=status.HTTP_201_CREATED)

        return success_response(
            service.deliver_batch(article.id, data['patientIds'], data['method'], user=request.user)
        )


class ContentDeliveryViewSet(
    ClinicScopedMixin,
    EnvelopeResponseMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    Endpoints:
    - GET /api/content/deliveries/?patientId=&articleId=&method=&status=
    - GET /api/content/deliveries/{id}/
    - POST /api/content/deliveries/{id}/viewed/
    - GET /api/content/deliveries/stats/?startDate=&endDate=
    - GET /api/content/deliveries/patient/{patientId}/
    """
    queryset = ContentDelivery.objects.select_related('article', 'patient')
    serializer_class = ContentDeliverySerializer
    permission_classes = [CanManageContent]
    soft_delete = False
    filter_backends = []

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params

        if params.get('patientId'):
            queryset = queryset.filter(patient_id=params['patientId'])
        if params.get('articleId'):
            queryset = queryset.filter(article_id=params['articleId'])
        for param in ('method', 'status'):
            value = params.get(param)
            if value and value != 'all':
                queryset = queryset.filter(**{param: value})
        return queryset.order_by('-delivered_at')

    @action(detail=True, methods=['post'], url_path='viewed')
    def viewed(self, request, pk=None):
        delivery = self.get_object()
        delivery = ContentDeliveryService(self.clinic).mark_as_viewed(delivery.id)
        return success_response(ContentDeliverySerializer(delivery).data)

    @action(detail=False, methods=['get'], url_path='stats')
    def stats(self, request):
        serializer = StatsQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        return success_response(
            ContentDeliveryService(self.clinic).get_stats(
                serializer.validated_data.get('startDate'),
                serializer.validated_data.get('endDate'),
            )
        )

    @action(detail=False, methods=['get'], url_path=r'patient/(?P<patient_id>[0-9a-fA-F-]{36})')
    def patient(self, request, patient_id=None):
        return success_response(ContentDeliveryService(self.clinic).get_patient_deliveries(patient_id))
