"""
Treatment chairs: block / release and the occupancy summary.
"""
from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework import status

from apps.core.exceptions import ConflictError
from apps.core.models import AuditLog
from apps.resources import services
from apps.resources.models import OccupancyStatusChoices

CHAIRS = '/api/resources/chairs/'


@pytest.mark.django_db
class TestBlockChair:

    def test_new_chair_is_available(self, front_desk_client, chair):
        response = front_desk_client.get(f'{CHAIRS}{chair.id}/')

        assert response.json()['data']['occupancy'] == {'status': 'AVAILABLE'}

    def test_block_for_maintenance(self, front_desk_client, chair):
        before = timezone.now()
        response = front_desk_client.post(
            f'{CHAIRS}{chair.id}/block/',
            {'reason': 'Compressor repair', 'blockType': 'MAINTENANCE', 'durationMinutes': 120},
            format='json',
        )

        assert response.status_code == status.HTTP_200_OK
        occupancy = response.json()['data']['occupancy']
        assert occupancy['status'] == 'MAINTENANCE'
        assert occupancy['blockReason'] == 'Compressor repair'

        current = services.get_current_occupancy(chair)
        assert current.blocked_until >= before + timedelta(minutes=120)
        assert AuditLog.objects.filter(entity_type='TreatmentChair', entity_id=str(chair.id)).exists()

    def test_block_type_must_be_a_block(self, front_desk_client, chair):
        response = front_desk_client.post(
            f'{CHAIRS}{chair.id}/block/', {'reason': 'x', 'blockType': 'OCCUPIED'}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_occupied_chair_cannot_be_blocked(self, chair, appointment):
        services.occupy_chair(chair, appointment=appointment)

        with pytest.raises(ConflictError) as exc_info:
            services.block_chair(chair, 'Cleaning')
        assert exc_info.value.code == 'CHAIR_OCCUPIED'

    def test_release(self, front_desk_client, chair):
        services.block_chair(chair, 'Cleaning', block_type=OccupancyStatusChoices.CLEANING)

        response = front_desk_client.post(f'{CHAIRS}{chair.id}/release/')

        assert response.status_code == status.HTTP_200_OK
        assert response.json()['data']['occupancy']['status'] == 'AVAILABLE'
        assert response.json()['data']['occupancy']['blockReason'] is None

    def test_other_clinic_chair_is_hidden(self, other_clinic_client, chair):
        response = other_clinic_client.post(f'{CHAIRS}{chair.id}/release/')

        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.django_db
class TestOccupancySummary:

    def test_counts_and_utilization(self, front_desk_client, make_chair, appointment):
        occupied, blocked, _, _ = [make_chair() for _ in range(4)]
        services.occupy_chair(occupied, appointment=appointment)
        services.block_chair(blocked, 'Repair')

        response = front_desk_client.get('/api/resources/occupancy/')

        data = response.json()['data']
        assert data['totalChairs'] == 4
        assert data['byStatus']['OCCUPIED'] == 1
        assert data['byStatus']['BLOCKED'] == 1
        assert data['byStatus']['AVAILABLE'] == 2
        assert data['utilization'] == 25

    def test_inactive_chairs_are_ignored(self, front_desk_client, make_chair):
        make_chair()
        make_chair(is_active=False)

        response = front_desk_client.get('/api/resources/occupancy/')

        assert response.json()['data']['totalChairs'] == 1
