"""
Staff termination workflow.
"""
from datetime import date, timedelta

import pytest
from django.utils import timezone
from rest_framework import status

from apps.authz.models import RoleChoices
from apps.core.models import AuditActionChoices, AuditLog
from apps.staff.models import StaffStatusChoices


def _terminate_url(staff):
    return f'/api/staff/{staff.id}/terminate/'


@pytest.mark.django_db
class TestTerminateStaff:

    def test_terminate_deactivates_linked_user(self, manager_client, make_provider, make_user):
        login = make_user(RoleChoices.PROVIDER)
        staff = make_provider(user=login)

        response = manager_client.post(
            _terminate_url(staff),
            {'terminationDate': '2026-03-31', 'reason': 'Relocation'},
            format='json',
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()['data']
        assert data['status'] == StaffStatusChoices.TERMINATED
        assert data['termination_date'] == '2026-03-31'
        assert data['termination_reason'] == 'Relocation'

        login.refresh_from_db()
        assert login.is_active is False
        assert AuditLog.objects.filter(
            action=AuditActionChoices.TERMINATE,
            entity_type='StaffProfile',
            entity_id=str(staff.id),
        ).exists()

    def test_upcoming_appointments_block_termination(self, manager_client, provider, make_appointment):
        make_appointment(start=timezone.now() + timedelta(days=2))
        make_appointment(start=timezone.now() + timedelta(days=3))

        response = manager_client.post(
            _terminate_url(provider), {'terminationDate': date.today().isoformat()}, format='json'
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        error = response.json()['error']
        assert error['code'] == 'HAS_UPCOMING_APPOINTMENTS'
        assert error['details'] == {'upcomingAppointments': 2}
        provider.refresh_from_db()
        assert provider.status == StaffStatusChoices.ACTIVE

    def test_past_and_cancelled_appointments_do_not_block(self, manager_client, provider, make_appointment):
        make_appointment(start=timezone.now() - timedelta(days=1))
        make_appointment(start=timezone.now() + timedelta(days=2), status='CANCELLED')

        response = manager_client.post(
            _terminate_url(provider), {'terminationDate': date.today().isoformat()}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK

    def test_already_terminated(self, manager_client, make_provider):
        staff = make_provider(status=StaffStatusChoices.TERMINATED)

        response = manager_client.post(
            _terminate_url(staff), {'terminationDate': '2026-03-31'}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()['error']['message'] == 'Staff member is already terminated'

    def test_front_desk_cannot_terminate(self, front_desk_client, provider):
        response = front_desk_client.post(
            _terminate_url(provider), {'terminationDate': '2026-03-31'}, format='json'
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_status_patch_cannot_terminate(self, manager_client, provider):
        response = manager_client.patch(
            f'/api/staff/{provider.id}/', {'status': 'TERMINATED'}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'status' in response.json()['error']['details']
