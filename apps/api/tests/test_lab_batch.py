"""
Lab batch operations, remakes and inspections.
"""
import uuid

import pytest
from django.test import override_settings
from django.utils import timezone
from rest_framework import status

from apps.core.exceptions import DomainValidationError
from apps.lab import services
from apps.lab.models import (
    LabOrder,
    LabOrderItem,
    LabOrderStatusChoices,
    LabOrderStatusLog,
    LabVendor,
    RemakeRequest,
    RemakeStatusChoices,
)

BATCH = '/api/lab/batch/'
REMAKES = '/api/lab/remakes/'


@pytest.fixture
def make_order(db, clinic, patient, vendor):
    def _make_order(status=LabOrderStatusChoices.DRAFT, **fields):
        data = {'patient': patient, 'vendor': vendor}
        data.update(fields)
        return LabOrder.objects.create(
            clinic=clinic,
            order_number=services.next_number(LabOrder, clinic, 'LAB', 'order_number'),
            order_date=timezone.now(),
            status=status,
            **data
        )
    return _make_order


def _ids(*orders):
    return [str(order.id) for order in orders]


# ---------------------------------------------------------------------------
# Batch: fail-closed operations
# ---------------------------------------------------------------------------

@pytest.mark.django_db
class TestBatchUpdateStatus:

    def test_unknown_id_rejects_everything(self, lab_coordinator_client, make_order):
        order = make_order(status=LabOrderStatusChoices.SUBMITTED)

        response = lab_coordinator_client.post(
            BATCH,
            {'operation': 'UPDATE_STATUS', 'orderIds': _ids(order) + [str(uuid.uuid4())], 'status': 'ACKNOWLEDGED'},
            format='json',
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()['error']['code'] == 'ORDERS_NOT_FOUND'
        order.refresh_from_db()
        assert order.status == LabOrderStatusChoices.SUBMITTED

    def test_illegal_move_fails_per_order(self, lab_coordinator_client, make_order):
        movable = make_order(status=LabOrderStatusChoices.SUBMITTED)
        stuck = make_order(status=LabOrderStatusChoices.DRAFT)

        response = lab_coordinator_client.post(
            BATCH,
            {'operation': 'UPDATE_STATUS', 'orderIds': _ids(movable, stuck), 'status': 'ACKNOWLEDGED'},
            format='json',
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()['data']
        assert data['processed'] == 2
        assert data['successful'] == 1
        assert data['failed'] == 1
        failure = next(row for row in data['results'] if not row['success'])
        assert failure['orderId'] == str(stuck.id)
        assert failure['error'] == 'Cannot transition from DRAFT to ACKNOWLEDGED'

        movable.refresh_from_db()
        assert movable.status == LabOrderStatusChoices.ACKNOWLEDGED
        assert LabOrderStatusLog.objects.filter(order=movable, to_status='ACKNOWLEDGED').exists()
        assert not LabOrderStatusLog.objects.filter(order=stuck).exists()

    def test_status_is_required(self, lab_coordinator_client, make_order):
        response = lab_coordinator_client.post(
            BATCH, {'operation': 'UPDATE_STATUS', 'orderIds': _ids(make_order())}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'status' in response.json()['error']['details']

    @override_settings(LAB_BATCH_MAX_ORDERS=2)
    def test_batch_size_limit(self, lab_coordinator_client):
        response = lab_coordinator_client.post(
            BATCH,
            {'operation': 'UPDATE_PRIORITY', 'orderIds': [str(uuid.uuid4()) for _ in range(3)], 'priority': 'HIGH'},
            format='json',
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'orderIds' in response.json()['error']['details']


@pytest.mark.django_db
class TestBatchPriorityAndVendor:

    def test_update_priority(self, lab_coordinator_client, make_order):
        first, second = make_order(), make_order()

        response = lab_coordinator_client.post(
            BATCH, {'operation': 'UPDATE_PRIORITY', 'orderIds': _ids(first, second), 'priority': 'URGENT'},
            format='json',
        )

        assert response.json()['data']['successful'] == 2
        assert set(LabOrder.objects.values_list('priority', flat=True)) == {'URGENT'}

    def test_assign_vendor(self, lab_coordinator_client, clinic, make_order):
        order = make_order(vendor=None)
        other_lab = LabVendor.objects.create(clinic=clinic, name='Bright Aligners', code='BA')

        response = lab_coordinator_client.post(
            BATCH, {'operation': 'ASSIGN_VENDOR', 'orderIds': _ids(order), 'vendorId': str(other_lab.id)},
            format='json',
        )

        assert response.json()['data']['vendor'] == {'id': str(other_lab.id), 'name': 'Bright Aligners'}
        order.refresh_from_db()
        assert order.vendor_id == other_lab.id

    def test_unknown_vendor(self, lab_coordinator_client, make_order):
        response = lab_coordinator_client.post(
            BATCH,
            {'operation': 'ASSIGN_VENDOR', 'orderIds': _ids(make_order()), 'vendorId': str(uuid.uuid4())},
            format='json',
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()['error']['code'] == 'VENDOR_NOT_FOUND'


# ---------------------------------------------------------------------------
# Batch: skip-and-report operations
# ---------------------------------------------------------------------------

@pytest.mark.django_db
class TestBatchSubmitAndCancel:

    def test_submit_skips_ineligible_orders(self, clinic, make_order):
        ready = make_order()
        no_vendor = make_order(vendor=None)
        already_sent = make_order(status=LabOrderStatusChoices.SUBMITTED)
        missing = uuid.uuid4()

        result = services.batch_submit(clinic, [ready.id, no_vendor.id, already_sent.id, missing])

        assert result['processed'] == 4
        assert result['successful'] == 1
        assert result['failed'] == 3
        errors = {row['orderId']: row['error'] for row in result['skipped']}
        assert errors == {
            str(no_vendor.id): 'Cannot submit: no vendor assigned',
            str(already_sent.id): 'Cannot submit: status is SUBMITTED',
            str(missing): 'Order not found',
        }
        ready.refresh_from_db()
        assert ready.status == LabOrderStatusChoices.SUBMITTED
        assert ready.submitted_at is not None

    def test_cancel_skips_orders_past_the_lab(self, lab_coordinator_client, make_order):
        in_progress = make_order(status=LabOrderStatusChoices.IN_PROGRESS)
        shipped = make_order(status=LabOrderStatusChoices.SHIPPED)

        response = lab_coordinator_client.post(
            BATCH,
            {'operation': 'CANCEL', 'orderIds': _ids(in_progress, shipped), 'reason': 'Patient moved'},
            format='json',
        )

        data = response.json()['data']
        assert data['successful'] == 1
        assert data['skipped'] == [
            {'orderId': str(shipped.id), 'success': False, 'error': 'Order not found or not cancellable'}
        ]
        log = LabOrderStatusLog.objects.get(order=in_progress)
        assert log.to_status == 'CANCELLED'
        assert log.notes == 'Cancelled: Patient moved'

    def test_cancel_requires_reason(self, lab_coordinator_client, make_order):
        response = lab_coordinator_client.post(
            BATCH, {'operation': 'CANCEL', 'orderIds': _ids(make_order())}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestBatchPrintAndExport:

    def test_print_documents(self, lab_coordinator_client, make_order):
        order = make_order(clinic_notes='Handle with care')
        LabOrderItem.objects.create(order=order, product_name='Hawley retainer', arch='UPPER')

        response = lab_coordinator_client.post(
            BATCH, {'operation': 'PRINT', 'orderIds': _ids(order), 'format': 'PACKING_SLIP'}, format='json'
        )

        data = response.json()['data']
        assert data['documentCount'] == 1
        document = data['documents'][0]['data']
        assert document['vendor'] == {'name': 'Precision Ortho Lab', 'code': 'POL'}
        assert document['items'] == [
            {'product': 'Hawley retainer', 'quantity': 1, 'arch': 'UPPER', 'prescription': {}}
        ]
        assert document['notes'] == 'Handle with care'

    def test_print_rejects_unknown_format(self, lab_coordinator_client, make_order):
        response = lab_coordinator_client.post(
            BATCH, {'operation': 'PRINT', 'orderIds': _ids(make_order()), 'format': 'POSTER'}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_export_by_filters(self, lab_coordinator_client, make_order):
        make_order()
        make_order(status=LabOrderStatusChoices.SUBMITTED)

        response = lab_coordinator_client.post(
            BATCH, {'operation': 'EXPORT', 'filters': {'status': 'SUBMITTED'}}, format='json'
        )

        data = response.json()['data']
        assert data['format'] == 'CSV'
        assert data['recordCount'] == 1
        assert data['exportData'][0]['status'] == 'SUBMITTED'
        assert data['exportData'][0]['vendor'] == 'Precision Ortho Lab'

    def test_front_desk_cannot_run_batches(self, front_desk_client):
        response = front_desk_client.post(
            BATCH, {'operation': 'EXPORT'}, format='json'
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN


# ---------------------------------------------------------------------------
# Remakes
# ---------------------------------------------------------------------------

@pytest.mark.django_db
class TestRemakes:

    def test_create_moves_original_order(self, lab_coordinator_client, make_order):
        original = make_order(status=LabOrderStatusChoices.RECEIVED)
        item = LabOrderItem.objects.create(order=original, product_name='Essix retainer')

        response = lab_coordinator_client.post(
            REMAKES,
            {
                'originalOrderId': str(original.id),
                'originalItemId': str(item.id),
                'reason': 'FIT_ISSUE',
                'reasonDetails': 'Rocks on the lower left',
            },
            format='json',
        )

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()['data']
        assert data['remake_number'].startswith('RMK-')
        assert data['status'] == 'REQUESTED'
        assert data['cost_responsibility'] == 'LAB'
        original.refresh_from_db()
        assert original.status == LabOrderStatusChoices.REMAKE_REQUESTED

    def test_create_leaves_order_when_transition_not_allowed(self, clinic, make_order):
        original = make_order(status=LabOrderStatusChoices.IN_PROGRESS)

        services.create_remake(clinic, {'originalOrderId': original.id, 'reason': 'FIT_ISSUE'})

        original.refresh_from_db()
        assert original.status == LabOrderStatusChoices.IN_PROGRESS

    def test_item_must_belong_to_order(self, lab_coordinator_client, make_order):
        original = make_order(status=LabOrderStatusChoices.RECEIVED)
        stranger = LabOrderItem.objects.create(order=make_order(), product_name='Bracket kit')

        response = lab_coordinator_client.post(
            REMAKES,
            {'originalOrderId': str(original.id), 'originalItemId': str(stranger.id), 'reason': 'FIT_ISSUE'},
            format='json',
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_approval_gate(self, clinic, lab_coordinator_client, manager_client, make_order):
        remake = services.create_remake(
            clinic,
            {'originalOrderId': make_order().id, 'reason': 'FIT_ISSUE', 'requires_approval': True},
        )

        blocked = lab_coordinator_client.post(
            f'{REMAKES}{remake.id}/status/', {'status': 'ACKNOWLEDGED'}, format='json'
        )
        assert blocked.status_code == status.HTTP_400_BAD_REQUEST
        assert blocked.json()['error']['code'] == 'APPROVAL_REQUIRED'

        approved = manager_client.post(
            f'{REMAKES}{remake.id}/approve/', {'approved': True, 'notes': 'Lab covers it'}, format='json'
        )
        assert approved.status_code == status.HTTP_200_OK
        assert approved.json()['data']['is_pending_approval'] is False

        moved = lab_coordinator_client.post(
            f'{REMAKES}{remake.id}/status/', {'status': 'ACKNOWLEDGED'}, format='json'
        )
        assert moved.status_code == status.HTTP_200_OK
        assert moved.json()['data']['status'] == 'ACKNOWLEDGED'

    def test_unapproved_remake_can_be_cancelled(self, clinic, make_order):
        remake = services.create_remake(
            clinic, {'originalOrderId': make_order().id, 'reason': 'FIT_ISSUE', 'requires_approval': True}
        )

        remake = services.change_remake_status(remake, RemakeStatusChoices.CANCELLED)

        assert remake.status == RemakeStatusChoices.CANCELLED

    def test_deny_cancels(self, clinic, provider_client, make_order):
        remake = services.create_remake(
            clinic, {'originalOrderId': make_order().id, 'reason': 'FIT_ISSUE', 'requires_approval': True}
        )

        response = provider_client.post(f'{REMAKES}{remake.id}/approve/', {'approved': False}, format='json')

        assert response.json()['data']['status'] == 'CANCELLED'

    def test_decision_needs_pending_request(self, clinic, manager_client, make_order):
        remake = services.create_remake(clinic, {'originalOrderId': make_order().id, 'reason': 'FIT_ISSUE'})

        response = manager_client.post(f'{REMAKES}{remake.id}/approve/', {'approved': True}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()['error']['code'] == 'NOT_PENDING_APPROVAL'

    def test_lab_coordinator_cannot_approve(self, clinic, lab_coordinator_client, make_order):
        remake = services.create_remake(
            clinic, {'originalOrderId': make_order().id, 'reason': 'FIT_ISSUE', 'requires_approval': True}
        )

        response = lab_coordinator_client.post(
            f'{REMAKES}{remake.id}/approve/', {'approved': True}, format='json'
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_illegal_remake_move(self, clinic, make_order):
        remake = services.create_remake(clinic, {'originalOrderId': make_order().id, 'reason': 'FIT_ISSUE'})

        with pytest.raises(DomainValidationError):
            services.change_remake_status(remake, RemakeStatusChoices.SHIPPED)


@pytest.mark.django_db
class TestInspections:

    def test_inspection_moves_received_remake(self, clinic, lab_coordinator_client, make_order):
        order = make_order(status=LabOrderStatusChoices.RECEIVED)
        remake = services.create_remake(clinic, {'originalOrderId': order.id, 'reason': 'FIT_ISSUE'})
        RemakeRequest.objects.filter(pk=remake.pk).update(status=RemakeStatusChoices.RECEIVED)

        response = lab_coordinator_client.post(
            f'/api/lab/orders/{order.id}/inspections/',
            {'result': 'PASS_WITH_NOTES', 'notes': 'Minor polish', 'remakeId': str(remake.id)},
            format='json',
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()['data']['result'] == 'PASS_WITH_NOTES'
        remake.refresh_from_db()
        assert remake.status == RemakeStatusChoices.INSPECTED

        listing = lab_coordinator_client.get(f'/api/lab/orders/{order.id}/inspections/')
        assert len(listing.json()['data']) == 1

    def test_remake_from_another_order(self, clinic, lab_coordinator_client, make_order):
        remake = services.create_remake(clinic, {'originalOrderId': make_order().id, 'reason': 'FIT_ISSUE'})
        order = make_order()

        response = lab_coordinator_client.post(
            f'/api/lab/orders/{order.id}/inspections/',
            {'result': 'PASS', 'remakeId': str(remake.id)},
            format='json',
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
