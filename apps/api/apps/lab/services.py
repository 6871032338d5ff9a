"""
Lab service layer: order status changes, batch operations, remakes and
inspections.
"""
import logging
from decimal import Decimal

from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone

from apps.core.exceptions import DomainValidationError, NotFoundError
from apps.core.models import AuditActionChoices, log_audit
from apps.core.observability import metrics
from apps.core.observability.events import log_lab_batch, log_lab_status_change, log_remake_decision
from apps.core.observability.tracing import trace_span
from apps.core.soft_delete import with_soft_delete
from apps.core.tenancy import get_scoped_object

from .models import (
    CANCELLABLE_ORDER_STATUSES,
    InspectionResultChoices,
    LabInspection,
    LabOrder,
    LabOrderItem,
    LabOrderStatusChoices,
    LabOrderStatusLog,
    LabVendor,
    RemakeRequest,
    RemakeStatusChoices,
    StatusChangeSourceChoices,
    can_transition_order,
    can_transition_remake,
)

logger = logging.getLogger(__name__)


def _actor(user):
    return user if getattr(user, 'is_authenticated', False) else None


def next_number(model, clinic, prefix, field, now=None):
    """PREFIX-YYYYMMDD-NNNN, sequential per clinic and day."""
    now = now or timezone.now()
    stem = f'{prefix}-{timezone.localdate(now):%Y%m%d}-'
    count = model.objects.filter(clinic=clinic, **{f'{field}__startswith': stem}).count()
    return f'{stem}{count + 1:04d}'


def write_status_log(order, from_status, to_status, notes='', source=StatusChangeSourceChoices.USER, user=None):
    log = LabOrderStatusLog.objects.create(
        order=order,
        from_status=from_status or '',
        to_status=to_status,
        notes=notes or '',
        source=source,
        changed_by=_actor(user),
    )
    metrics.lab_status_changes_total.labels(to_status=to_status, source=source).inc()
    log_lab_status_change(order, from_status, to_status, source)
    return log


def compute_total(items):
    return sum((Decimal(item.unit_price) * item.quantity for item in items), Decimal('0'))


def create_order(clinic, data, items, user=None, request=None):
    """Create an order with its items; total_cost is the sum of item lines."""
    with transaction.atomic():
        order = LabOrder.objects.create(
            clinic=clinic,
            order_number=next_number(LabOrder, clinic, 'LAB', 'order_number'),
            order_date=data.pop('order_date', None) or timezone.now(),
            created_by=_actor(user),
            **data,
        )
        created_items = [LabOrderItem.objects.create(order=order, **item) for item in items]
        order.total_cost = compute_total(created_items)
        order.save(update_fields=['total_cost', 'updated_at'])

        write_status_log(order, '', order.status, 'Order created', StatusChangeSourceChoices.SYSTEM, user)
        log_audit(
            clinic,
            user,
            AuditActionChoices.CREATE,
            'LabOrder',
            order.id,
            after={
                'order_number': order.order_number,
                'item_count': len(created_items),
                'total_cost': str(order.total_cost),
            },
            request=request,
        )
    return order


def change_order_status(order, to_status, notes='', source=StatusChangeSourceChoices.USER,
                        user=None, request=None):
    """
    Validated status change with a status log row.

    Raises:
        DomainValidationError: move not in ORDER_TRANSITIONS
    """
    with transaction.atomic():
        order = LabOrder.objects.select_for_update().get(pk=order.pk)
        from_status = order.status
        if not can_transition_order(from_status, to_status):
            raise DomainValidationError(
                f'Cannot transition order from {from_status} to {to_status}',
                details={'currentStatus': from_status, 'requestedStatus': to_status},
            )

        order.status = to_status
        if to_status == LabOrderStatusChoices.SUBMITTED and order.submitted_at is None:
            order.submitted_at = timezone.now()
        order.updated_by = _actor(user)
        order.save()

        write_status_log(order, from_status, to_status, notes, source, user)
        log_audit(
            order.clinic,
            user,
            AuditActionChoices.TRANSITION,
            'LabOrder',
            order.id,
            before={'status': from_status},
            after={'status': to_status},
            request=request,
            source=source,
        )
    return order


# ---------------------------------------------------------------------------
# Batch operations
# ---------------------------------------------------------------------------

def _live_orders(clinic, **lookups):
    return LabOrder.objects.filter(with_soft_delete(clinic=clinic, **lookups))


def _require_all(clinic, order_ids):
    """Fail-closed lookup: every id must be a live order in `clinic`."""
    orders = list(_live_orders(clinic, id__in=order_ids))
    found = {str(order.id) for order in orders}
    missing = [str(order_id) for order_id in order_ids if str(order_id) not in found]
    if missing:
        raise NotFoundError(f'Orders not found: {", ".join(missing)}', code='ORDERS_NOT_FOUND')
    return orders


def _result(order, success=True, error=None):
    row = {'orderId': str(order.id), 'orderNumber': order.order_number, 'success': success}
    if error:
        row['error'] = error
    return row


def _finish(clinic, operation, payload, user, request, **audit):
    """Metrics, domain event and audit row shared by mutating batch ops."""
    failed = payload['failed']
    result = 'success' if not failed else ('partial' if payload['successful'] else 'failure')
    metrics.lab_batch_operations_total.labels(operation=operation, result=result).inc()
    metrics.lab_batch_items_total.labels(operation=operation, outcome='success').inc(payload['successful'])
    if failed:
        metrics.lab_batch_items_total.labels(operation=operation, outcome='failed').inc(failed)
    log_lab_batch(
        clinic,
        operation,
        result,
        processed=payload['processed'],
        successful=payload['successful'],
        failed=failed,
    )
    log_audit(
        clinic,
        user,
        AuditActionChoices.BATCH,
        'LabOrder',
        '',
        request=request,
        operation=operation,
        **audit
    )
    return payload


def batch_update_status(clinic, order_ids, status, notes=None, user=None, request=None):
    """
    Fails closed on unknown ids, then applies each order independently.

    An order whose current status cannot reach `status` is reported as
    failed; the others still move.
    """
    orders = _require_all(clinic, order_ids)
    results = []
    for order in orders:
        from_status = order.status
        if not can_transition_order(from_status, status):
            results.append(_result(order, False, f'Cannot transition from {from_status} to {status}'))
            continue
        try:
            with transaction.atomic():
                order.status = status
                if status == LabOrderStatusChoices.SUBMITTED and order.submitted_at is None:
                    order.submitted_at = timezone.now()
                order.updated_by = _actor(user)
                order.save()
                write_status_log(order, from_status, status, notes or 'Batch status update', user=user)
        except DatabaseError:
            logger.exception('Batch status update failed for order %s', order.id)
            order.status = from_status
            results.append(_result(order, False, 'Update failed'))
        else:
            results.append(_result(order))

    successful = sum(1 for row in results if row['success'])
    payload = {
        'operation': 'UPDATE_STATUS',
        'processed': len(results),
        'successful': successful,
        'failed': len(results) - successful,
        'results': results,
    }
    return _finish(
        clinic, 'UPDATE_STATUS', payload, user, request,
        new_status=status, order_ids=[str(order_id) for order_id in order_ids],
    )


def batch_update_priority(clinic, order_ids, priority, user=None, request=None):
    orders = _require_all(clinic, order_ids)
    LabOrder.objects.filter(id__in=[order.id for order in orders]).update(
        priority=priority,
        updated_by=_actor(user),
        updated_at=timezone.now(),
    )
    payload = {
        'operation': 'UPDATE_PRIORITY',
        'processed': len(orders),
        'successful': len(orders),
        'failed': 0,
        'results': [_result(order) for order in orders],
    }
    return _finish(
        clinic, 'UPDATE_PRIORITY', payload, user, request,
        new_priority=priority, order_ids=[str(order_id) for order_id in order_ids],
    )


def batch_assign_vendor(clinic, order_ids, vendor_id, user=None, request=None):
    vendor = get_scoped_object(
        LabVendor.objects.filter(is_active=True),
        clinic,
        'VENDOR_NOT_FOUND',
        'Vendor not found',
        pk=vendor_id,
    )
    orders = _require_all(clinic, order_ids)
    LabOrder.objects.filter(id__in=[order.id for order in orders]).update(
        vendor=vendor,
        updated_by=_actor(user),
        updated_at=timezone.now(),
    )
    payload = {
        'operation': 'ASSIGN_VENDOR',
        'processed': len(orders),
        'successful': len(orders),
        'failed': 0,
        'results': [_result(order) for order in orders],
        'vendor': {'id': str(vendor.id), 'name': vendor.name},
    }
    return _finish(
        clinic, 'ASSIGN_VENDOR', payload, user, request,
        vendor_id=str(vendor.id), order_ids=[str(order_id) for order_id in order_ids],
    )


def batch_submit(clinic, order_ids, user=None, request=None):
    """
    Submit DRAFT orders that have a vendor; skip and report the rest.
    """
    orders = {str(order.id): order for order in _live_orders(clinic, id__in=order_ids)}
    results = []
    skipped = []
    now = timezone.now()

    for order_id in order_ids:
        order = orders.get(str(order_id))
        if order is None:
            skipped.append({'orderId': str(order_id), 'success': False, 'error': 'Order not found'})
            continue
        if order.status != LabOrderStatusChoices.DRAFT:
            skipped.append(_result(order, False, f'Cannot submit: status is {order.status}'))
            continue
        if not order.vendor_id:
            skipped.append(_result(order, False, 'Cannot submit: no vendor assigned'))
            continue
        try:
            with transaction.atomic():
                order.status = LabOrderStatusChoices.SUBMITTED
                order.submitted_at = now
                order.updated_by = _actor(user)
                order.save()
                write_status_log(
                    order, LabOrderStatusChoices.DRAFT, LabOrderStatusChoices.SUBMITTED,
                    'Batch submission', user=user,
                )
        except DatabaseError:
            logger.exception('Batch submission failed for order %s', order.id)
            results.append(_result(order, False, 'Submission failed'))
        else:
            results.append(_result(order))

    successful = sum(1 for row in results if row['success'])
    if skipped:
        metrics.lab_batch_items_total.labels(operation='SUBMIT', outcome='skipped').inc(len(skipped))
    payload = {
        'operation': 'SUBMIT',
        'processed': len(order_ids),
        'successful': successful,
        'failed': (len(results) - successful) + len(skipped),
        'results': results + skipped,
        'skipped': skipped,
    }
    return _finish(
        clinic, 'SUBMIT', payload, user, request,
        submitted_count=successful, skipped_count=len(skipped),
    )


def batch_cancel(clinic, order_ids, reason, user=None, request=None):
    """Cancel orders still at the lab; skip and report anything else."""
    orders = list(_live_orders(clinic, id__in=order_ids, status__in=CANCELLABLE_ORDER_STATUSES))
    found = {str(order.id) for order in orders}
    results = []

    for order in orders:
        from_status = order.status
        try:
            with transaction.atomic():
                order.status = LabOrderStatusChoices.CANCELLED
                order.updated_by = _actor(user)
                order.save()
                write_status_log(
                    order, from_status, LabOrderStatusChoices.CANCELLED,
                    f'Cancelled: {reason}', user=user,
                )
        except DatabaseError:
            logger.exception('Batch cancellation failed for order %s', order.id)
            results.append(_result(order, False, 'Cancellation failed'))
        else:
            results.append(_result(order))

    skipped = [
        {'orderId': str(order_id), 'success': False, 'error': 'Order not found or not cancellable'}
        for order_id in order_ids if str(order_id) not in found
    ]
    successful = sum(1 for row in results if row['success'])
    if skipped:
        metrics.lab_batch_items_total.labels(operation='CANCEL', outcome='skipped').inc(len(skipped))
    payload = {
        'operation': 'CANCEL',
        'processed': len(order_ids),
        'successful': successful,
        'failed': (len(results) - successful) + len(skipped),
        'results': results,
        'skipped': skipped,
    }
    return _finish(
        clinic, 'CANCEL', payload, user, request,
        cancelled_count=successful, reason=reason,
    )


def _isoformat(value):
    return value.isoformat() if value else None


def batch_print(clinic, order_ids, document_format='PRESCRIPTION'):
    """Printable document payloads; rendering happens client-side."""
    orders = _live_orders(clinic, id__in=order_ids).select_related(
        'patient', 'vendor'
    ).prefetch_related('items')

    documents = []
    for order in orders:
        patient = order.patient
        documents.append({
            'orderId': str(order.id),
            'orderNumber': order.order_number,
            'format': document_format,
            'data': {
                'orderNumber': order.order_number,
                'orderDate': _isoformat(order.order_date),
                'patient': {
                    'firstName': patient.first_name,
                    'lastName': patient.last_name,
                    'dateOfBirth': _isoformat(patient.date_of_birth),
                },
                'vendor': {'name': order.vendor.name, 'code': order.vendor.code} if order.vendor_id else None,
                'items': [
                    {
                        'product': item.product_name,
                        'quantity': item.quantity,
                        'arch': item.arch or None,
                        'prescription': item.prescription,
                    }
                    for item in order.items.all()
                ],
                'notes': order.clinic_notes or None,
                'neededByDate': _isoformat(order.needed_by_date),
                'priority': order.priority,
            },
        })

    metrics.lab_batch_operations_total.labels(operation='PRINT', result='success').inc()
    return {
        'operation': 'PRINT',
        'format': document_format,
        'documentCount': len(documents),
        'documents': documents,
        'downloadUrl': None,
    }


def batch_export(clinic, order_ids=None, filters=None, export_format='CSV'):
    """
    Export rows for explicit ids, or for filters when no ids are given.
    Newest first, capped at LAB_EXPORT_MAX_ORDERS.
    """
    lookups = {}
    if order_ids:
        lookups['id__in'] = order_ids
    else:
        filters = filters or {}
        if filters.get('status'):
            lookups['status'] = filters['status']
        if filters.get('vendorId'):
            lookups['vendor_id'] = filters['vendorId']
        if filters.get('dateFrom'):
            lookups['order_date__gte'] = filters['dateFrom']
        if filters.get('dateTo'):
            lookups['order_date__lte'] = filters['dateTo']

    orders = _live_orders(clinic, **lookups).select_related(
        'patient', 'vendor'
    ).prefetch_related('items').order_by('-order_date')[:settings.LAB_EXPORT_MAX_ORDERS]

    rows = []
    for order in orders:
        items = list(order.items.all())
        rows.append({
            'orderNumber': order.order_number,
            'orderDate': _isoformat(order.order_date),
            'status': order.status,
            'priority': order.priority,
            'patient': f'{order.patient.last_name}, {order.patient.first_name}',
            'vendor': order.vendor.name if order.vendor_id else None,
            'itemCount': len(items),
            'items': ', '.join(item.product_name for item in items),
            'totalCost': str(order.total_cost),
            'neededByDate': _isoformat(order.needed_by_date),
            'isRush': order.is_rush,
        })

    metrics.lab_batch_operations_total.labels(operation='EXPORT', result='success').inc()
    return {
        'operation': 'EXPORT',
        'format': export_format,
        'recordCount': len(rows),
        'exportData': rows,
        'downloadUrl': None,
    }


def run_batch(clinic, data, user=None, request=None):
    """Dispatch a validated batch payload to its handler."""
    operation = data['operation']
    order_ids = data.get('orderIds') or []

    with trace_span('lab_batch', attributes={'operation': operation, 'order_count': len(order_ids)}):
        if operation == 'UPDATE_STATUS':
            return batch_update_status(clinic, order_ids, data['status'], data.get('notes'), user, request)
        if operation == 'UPDATE_PRIORITY':
            return batch_update_priority(clinic, order_ids, data['priority'], user, request)
        if operation == 'ASSIGN_VENDOR':
            return batch_assign_vendor(clinic, order_ids, data['vendorId'], user, request)
        if operation == 'SUBMIT':
            return batch_submit(clinic, order_ids, user, request)
        if operation == 'CANCEL':
            return batch_cancel(clinic, order_ids, data['reason'], user, request)
        if operation == 'PRINT':
            return batch_print(clinic, order_ids, data.get('format') or 'PRESCRIPTION')
        if operation == 'EXPORT':
            return batch_export(clinic, order_ids or None, data.get('filters'), data.get('format') or 'CSV')
    raise DomainValidationError('Unknown batch operation', code='UNKNOWN_OPERATION')


# ---------------------------------------------------------------------------
# Remakes
# ---------------------------------------------------------------------------

def create_remake(clinic, data, user=None, request=None):
    """
    Open a remake for an order (and optionally one of its items).

    The original order moves to REMAKE_REQUESTED when its status allows.
    """
    original = get_scoped_object(
        LabOrder.objects.all(), clinic, 'ORDER_NOT_FOUND', 'Order not found',
        pk=data.pop('originalOrderId'),
    )
    item_id = data.pop('originalItemId', None)
    item = None
    if item_id:
        item = original.items.filter(pk=item_id).first()
        if item is None:
            raise DomainValidationError('Item does not belong to the original order')

    with transaction.atomic():
        remake = RemakeRequest.objects.create(
            clinic=clinic,
            remake_number=next_number(RemakeRequest, clinic, 'RMK', 'remake_number'),
            original_order=original,
            original_item=item,
            requested_by=_actor(user),
            **data,
        )
        if can_transition_order(original.status, LabOrderStatusChoices.REMAKE_REQUESTED):
            change_order_status(
                original,
                LabOrderStatusChoices.REMAKE_REQUESTED,
                f'Remake requested: {remake.remake_number}',
                user=user,
                request=request,
            )
        log_audit(
            clinic,
            user,
            AuditActionChoices.CREATE,
            'RemakeRequest',
            remake.id,
            after={
                'remake_number': remake.remake_number,
                'original_order_id': str(original.id),
                'reason': remake.reason,
            },
            request=request,
        )
    return remake


def decide_remake(remake, approved, notes='', user=None, request=None):
    """
    Approve or deny a remake waiting for approval. Denial cancels it.

    Raises:
        DomainValidationError(NOT_PENDING_APPROVAL)
    """
    with transaction.atomic():
        remake = RemakeRequest.objects.select_for_update().get(pk=remake.pk)
        if not remake.is_pending_approval:
            raise DomainValidationError(
                'Remake request is not pending approval',
                code='NOT_PENDING_APPROVAL',
            )

        remake.approval_notes = notes or ''
        if approved:
            remake.approved_at = timezone.now()
            remake.approved_by = _actor(user)
        else:
            remake.status = RemakeStatusChoices.CANCELLED
        remake.save()

        log_audit(
            remake.clinic,
            user,
            AuditActionChoices.APPROVE if approved else AuditActionChoices.DENY,
            'RemakeRequest',
            remake.id,
            after={'status': remake.status, 'approved': approved},
            request=request,
        )

    metrics.lab_remake_decisions_total.labels(decision='approved' if approved else 'denied').inc()
    log_remake_decision(remake, approved)
    return remake


def change_remake_status(remake, to_status, notes='', user=None, request=None):
    """
    Raises:
        DomainValidationError(APPROVAL_REQUIRED): leaving REQUESTED unapproved
        DomainValidationError: move not in REMAKE_TRANSITIONS
    """
    with transaction.atomic():
        remake = RemakeRequest.objects.select_for_update().get(pk=remake.pk)
        from_status = remake.status

        if (
            from_status == RemakeStatusChoices.REQUESTED
            and to_status != RemakeStatusChoices.CANCELLED
            and remake.requires_approval
            and remake.approved_at is None
        ):
            raise DomainValidationError(
                'Remake request requires approval before it can proceed',
                code='APPROVAL_REQUIRED',
            )
        if not can_transition_remake(from_status, to_status):
            raise DomainValidationError(
                f'Cannot transition remake from {from_status} to {to_status}',
                details={'currentStatus': from_status, 'requestedStatus': to_status},
            )

        remake.status = to_status
        if notes:
            remake.reason_details = f'{remake.reason_details}\n{notes}'.strip()
        remake.save()

        log_audit(
            remake.clinic,
            user,
            AuditActionChoices.TRANSITION,
            'RemakeRequest',
            remake.id,
            before={'status': from_status},
            after={'status': to_status},
            request=request,
        )
    return remake


def record_inspection(order, data, user=None, request=None):
    """
    Record an inspection. A linked remake sitting in RECEIVED moves to
    INSPECTED.
    """
    remake_id = data.pop('remakeId', None)
    remake = None
    if remake_id:
        remake = order.remakes.filter(pk=remake_id).first()
        if remake is None:
            raise NotFoundError('Remake request not found')

    with transaction.atomic():
        inspection = LabInspection.objects.create(
            clinic=order.clinic,
            order=order,
            remake=remake,
            result=data.get('result', InspectionResultChoices.PENDING),
            notes=data.get('notes') or '',
            inspected_by=_actor(user),
        )
        if remake is not None and remake.status == RemakeStatusChoices.RECEIVED:
            change_remake_status(
                remake,
                RemakeStatusChoices.INSPECTED,
                user=user,
                request=request,
            )
        log_audit(
            order.clinic,
            user,
            AuditActionChoices.CREATE,
            'LabInspection',
            inspection.id,
            after={'order_id': str(order.id), 'result': inspection.result},
            request=request,
        )
    return inspection
