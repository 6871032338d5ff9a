"""
Patient content delivery.

`ContentDeliveryService` is built per clinic and handed to its callers:

    service = ContentDeliveryService(clinic)
    service.deliver_to_patient(article_id, patient_id, 'EMAIL', user=request.user)

The sender is any object with `send(method, patient, article, clinic, link)`
returning the resulting DeliveryStatusChoices value. Tests pass a fake.
"""
import logging
from datetime import timedelta

from django.conf import settings
from django.core.mail import send_mail
from django.db import DatabaseError, transaction
from django.db.models import F, Q
from django.utils import timezone

from apps.core.exceptions import ApiError, ConflictError, DomainValidationError, NotFoundError
from apps.core.models import Clinic
from apps.core.observability import metrics
from apps.core.observability.events import log_content_delivery, log_domain_event
from apps.core.observability.tracing import trace_span
from apps.core.soft_delete import with_soft_delete
from apps.patients.models import Patient

from .models import (
    ArticleStatusChoices,
    ContentArticle,
    ContentDelivery,
    DeliveryMethodChoices,
    DeliveryStatusChoices,
    DeliveryTriggerChoices,
)

logger = logging.getLogger(__name__)

_T = DeliveryTriggerChoices
_M = DeliveryMethodChoices

TRIGGER_CATEGORIES = {
    _T.TREATMENT_START: 'getting-started',
    _T.APPOINTMENT_SCHEDULED: 'appointments',
    _T.APPOINTMENT_REMINDER: 'appointments',
    _T.COMPLIANCE_ALERT: 'compliance',
}

TRIGGER_METHODS = {
    _T.TREATMENT_START: _M.EMAIL,
    _T.PHASE_CHANGE: _M.EMAIL,
    _T.APPOINTMENT_SCHEDULED: _M.PORTAL,
    _T.APPOINTMENT_REMINDER: _M.SMS_LINK,
    _T.POST_APPOINTMENT: _M.IN_APP,
    _T.MILESTONE_REACHED: _M.IN_APP,
    _T.COMPLIANCE_ALERT: _M.IN_APP,
    _T.MANUAL: _M.PORTAL,
    _T.SCHEDULED: _M.EMAIL,
    _T.CAMPAIGN: _M.EMAIL,
}


def article_link(article):
    return f"{settings.PATIENT_PORTAL_URL.rstrip('/')}/content/{article.slug}"


class DefaultSender:
    """
    EMAIL goes out through Django's mail backend. IN_APP and PORTAL
    deliveries are visible as soon as the row exists. SMS_LINK rows stay
    PENDING for the SMS gateway to pick up.
    """

    def send(self, method, patient, article, clinic, link):
        if method == DeliveryMethodChoices.EMAIL:
            body = article.summary or article.title
            send_mail(
                subject=f'{article.title} - {clinic.name}',
                message=f'{body}\n\nView the full article: {link}',
                from_email=settings.DEFAULT_FROM_EMAIL,
                recipient_list=[patient.email],
            )
            return DeliveryStatusChoices.SENT
        if method == DeliveryMethodChoices.SMS_LINK:
            logger.info('SMS content link queued for patient %s', patient.id)
            return DeliveryStatusChoices.PENDING
        return DeliveryStatusChoices.DELIVERED


def _result(article_id, patient_id, method, delivery=None, error=None):
    result = {
        'success': error is None,
        'articleId': str(article_id),
        'patientId': str(patient_id),
        'method': method,
    }
    if delivery is not None:
        result['deliveryId'] = str(delivery.id)
        result['status'] = delivery.status
    if error is not None:
        result['error'] = error.message
        result['code'] = error.code
    return result


class ContentDeliveryService:
    """Deliver articles to the patients of one clinic."""

    def __init__(self, clinic, sender=None):
        self.clinic = clinic
        self.sender = sender or DefaultSender()

    def available_articles(self):
        """Published articles owned by the clinic or global."""
        return ContentArticle.objects.filter(
            with_soft_delete(Q(clinic=self.clinic) | Q(clinic__isnull=True)),
            status=ArticleStatusChoices.PUBLISHED,
        )

    def _get_article(self, article_id):
        article = self.available_articles().filter(pk=article_id).first()
        if article is None:
            raise NotFoundError('Article not found or not published', code='ARTICLE_NOT_AVAILABLE')
        return article

    def _get_patient(self, patient_id):
        patient = Patient.objects.filter(
            with_soft_delete(clinic=self.clinic, pk=patient_id),
            is_active=True,
        ).first()
        if patient is None:
            raise NotFoundError('Patient not found or inactive', code='PATIENT_NOT_FOUND')
        return patient

    def deliver_to_patient(self, article_id, patient_id, method, trigger=DeliveryTriggerChoices.MANUAL,
                           user=None, now=None):
        """
        Create a delivery and dispatch it.

        Raises:
            NotFoundError(ARTICLE_NOT_AVAILABLE | PATIENT_NOT_FOUND)
            ConflictError(DUPLICATE_DELIVERY): same article sent within the window
            DomainValidationError(MISSING_CONTACT): no email/phone for the method

        A failing sender does not raise: the delivery is stored as FAILED
        with the error message.
        """
        now = now or timezone.now()
        article = self._get_article(article_id)
        patient = self._get_patient(patient_id)

        window = timedelta(hours=settings.CONTENT_DUPLICATE_WINDOW_HOURS)
        if ContentDelivery.objects.filter(
            clinic=self.clinic,
            article=article,
            patient=patient,
            delivered_at__gte=now - window,
        ).exists():
            raise ConflictError(
                f'Content already delivered to this patient in the last '
                f'{settings.CONTENT_DUPLICATE_WINDOW_HOURS} hours',
                code='DUPLICATE_DELIVERY',
            )

        if method == DeliveryMethodChoices.EMAIL and not patient.email:
            raise DomainValidationError('Patient has no email address', code='MISSING_CONTACT')
        if method == DeliveryMethodChoices.SMS_LINK and not patient.phone:
            raise DomainValidationError('Patient has no phone number', code='MISSING_CONTACT')

        with transaction.atomic():
            delivery = ContentDelivery.objects.create(
                clinic=self.clinic,
                article=article,
                patient=patient,
                method=method,
                trigger=trigger,
                delivered_by=user if getattr(user, 'is_authenticated', False) else None,
                delivered_at=now,
            )
            ContentArticle.objects.filter(pk=article.pk).update(share_count=F('share_count') + 1)

        try:
            delivery.status = self.sender.send(method, patient, article, self.clinic, article_link(article))
        except Exception as exc:
            logger.exception('Content dispatch failed for delivery %s', delivery.id)
            delivery.status = DeliveryStatusChoices.FAILED
            delivery.error_message = str(exc)
            result = 'failure'
        else:
            result = 'success'
        delivery.save(update_fields=['status', 'error_message'])

        metrics.content_deliveries_total.labels(method=method, result=result).inc()
        log_content_delivery(delivery, result)
        return delivery

    def _try_deliver(self, article_id, patient_id, method, trigger, user=None, now=None):
        try:
            delivery = self.deliver_to_patient(article_id, patient_id, method, trigger, user=user, now=now)
        except ApiError as exc:
            metrics.content_deliveries_total.labels(method=method, result='rejected').inc()
            return _result(article_id, patient_id, method, error=exc)
        return _result(article_id, patient_id, method, delivery=delivery)

    def deliver_batch(self, article_id, patient_ids, method, user=None):
        """Deliver one article to several patients, one at a time."""
        results = [
            self._try_deliver(article_id, patient_id, method, DeliveryTriggerChoices.MANUAL, user=user)
            for patient_id in patient_ids
        ]
        sent = sum(1 for result in results if result['success'])
        return {'sent': sent, 'failed': len(results) - sent, 'results': results}

    def process_trigger(self, trigger, patient_id, context=None, now=None):
        """
        Deliver up to CONTENT_TRIGGER_MAX_ARTICLES articles matching the
        trigger's category with the trigger's method.
        """
        articles = self.available_articles()
        category = TRIGGER_CATEGORIES.get(trigger)
        if category:
            articles = articles.filter(category=category)
        articles = articles.order_by('-view_count', 'title')[:settings.CONTENT_TRIGGER_MAX_ARTICLES]

        method = TRIGGER_METHODS[trigger]
        results = [
            self._try_deliver(article.id, patient_id, method, trigger, now=now)
            for article in articles
        ]
        log_domain_event(
            'content_trigger_processed',
            entity_type='Patient',
            entity_id=str(patient_id),
            entity_ids={'clinic_id': str(self.clinic.id)},
            trigger=trigger,
            article_count=len(results),
            **(context or {})
        )
        return results

    def mark_as_viewed(self, delivery_id, now=None):
        """First view stamps the delivery and bumps the article's view_count."""
        delivery = ContentDelivery.objects.filter(clinic=self.clinic, pk=delivery_id).first()
        if delivery is None:
            raise NotFoundError('Delivery not found')
        if delivery.viewed_at is not None:
            return delivery

        with transaction.atomic():
            delivery.viewed_at = now or timezone.now()
            delivery.status = DeliveryStatusChoices.VIEWED
            delivery.save(update_fields=['viewed_at', 'status'])
            ContentArticle.objects.filter(pk=delivery.article_id).update(view_count=F('view_count') + 1)
        return delivery

    def get_stats(self, start=None, end=None):
        deliveries = ContentDelivery.objects.filter(clinic=self.clinic).select_related('article')
        if start:
            deliveries = deliveries.filter(delivered_at__gte=start)
        if end:
            deliveries = deliveries.filter(delivered_at__lte=end)
        deliveries = list(deliveries)

        by_method = {method: 0 for method in DeliveryMethodChoices.values}
        articles = {}
        view_minutes = []
        for delivery in deliveries:
            by_method[delivery.method] = by_method.get(delivery.method, 0) + 1
            row = articles.setdefault(delivery.article_id, {
                'articleId': str(delivery.article_id),
                'title': delivery.article.title,
                'deliveryCount': 0,
                'viewCount': 0,
            })
            row['deliveryCount'] += 1
            if delivery.viewed_at:
                row['viewCount'] += 1
                view_minutes.append((delivery.viewed_at - delivery.delivered_at).total_seconds() / 60)

        total = len(deliveries)
        top = sorted(articles.values(), key=lambda row: row['deliveryCount'], reverse=True)[:10]
        return {
            'totalDelivered': total,
            'deliveredByMethod': by_method,
            'viewRate': round(len(view_minutes) / total * 100, 1) if total else 0,
            'averageTimeToView': round(sum(view_minutes) / len(view_minutes), 1) if view_minutes else None,
            'topArticles': top,
        }

    def get_patient_deliveries(self, patient_id):
        deliveries = ContentDelivery.objects.filter(
            clinic=self.clinic,
            patient_id=patient_id,
        ).select_related('article').order_by('-delivered_at')
        return [
            {
                'id': str(delivery.id),
                'articleId': str(delivery.article_id),
                'title': delivery.article.title,
                'category': delivery.article.category,
                'method': delivery.method,
                'status': delivery.status,
                'deliveredAt': delivery.delivered_at.isoformat(),
                'viewedAt': delivery.viewed_at.isoformat() if delivery.viewed_at else None,
            }
            for delivery in deliveries
        ]


def process_scheduled_deliveries(now=None, sender=None):
    """
    Send appointment reminder content for tomorrow's visits.

    Walks active clinics one after another. A failure for one appointment
    is recorded in `errors` and the run continues; the run itself is not
    resumable.
    """
    from apps.booking.models import Appointment, AppointmentStatusChoices
    from apps.ops.flow import day_bounds

    now = now or timezone.now()
    start, end = day_bounds(timezone.localdate(now) + timedelta(days=1))
    summary = {'processed': 0, 'sent': 0, 'failed': 0, 'errors': []}

    for clinic in Clinic.objects.filter(is_active=True).order_by('name'):
        service = ContentDeliveryService(clinic, sender=sender)
        appointments = Appointment.objects.filter(
            with_soft_delete(clinic=clinic),
            status__in=[AppointmentStatusChoices.SCHEDULED, AppointmentStatusChoices.CONFIRMED],
            start_time__gte=start,
            start_time__lte=end,
        ).select_related('appointment_type')

        for appointment in appointments:
            summary['processed'] += 1
            try:
                with trace_span('content_reminder', attributes={'appointment_id': str(appointment.id)}):
                    results = service.process_trigger(
                        DeliveryTriggerChoices.APPOINTMENT_REMINDER,
                        appointment.patient_id,
                        {'appointment_type': appointment.appointment_type.name},
                        now=now,
                    )
            except DatabaseError as exc:
                logger.exception('Scheduled content failed for appointment %s', appointment.id)
                summary['failed'] += 1
                summary['errors'].append(
                    f'Failed to process appointment_reminder for patient {appointment.patient_id}: {exc}'
                )
                continue
            successful = sum(1 for result in results if result['success'])
            summary['sent'] += successful
            summary['failed'] += len(results) - successful

    result = 'success' if not summary['errors'] else 'partial'
    metrics.content_scheduled_runs_total.labels(result=result).inc()
    logger.info(
        'Scheduled content delivery complete: processed=%s sent=%s failed=%s',
        summary['processed'], summary['sent'], summary['failed'],
    )
    return summary
