"""
Patient flow: stage adjacency, chair seating and the flow board.
"""

from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework import status

from apps.core.exceptions import ConflictError, DomainValidationError
from apps.ops import flow as flow_service
from apps.ops.flow import ALLOWED_STAGE_TRANSITIONS, can_transition
from apps.ops.models import FlowStageChoices, FlowStageHistory
from apps.resources import services as resource_services
from apps.resources.models import OccupancyStatusChoices

FLOW = '/api/ops/flow/'


class TestStageTable:

    @pytest.mark.parametrize('from_stage,to_stage,allowed', [
        ('SCHEDULED', 'CHECKED_IN', True),
        ('CHECKED_IN', 'WAITING', True),
        ('CHECKED_IN', 'IN_CHAIR', True),
        ('WAITING', 'CALLED', True),
        ('CALLED', 'IN_CHAIR', True),
        ('IN_CHAIR', 'COMPLETED', True),
        ('COMPLETED', 'DEPARTED', True),
        ('CHECKED_OUT', 'DEPARTED', True),
        ('SCHEDULED', 'IN_CHAIR', False),
        ('WAITING', 'SCHEDULED', False),
        ('IN_CHAIR', 'CANCELLED', False),
        ('COMPLETED', 'IN_CHAIR', False),
    ])
    def test_can_transition(self, from_stage, to_stage, allowed):
        assert can_transition(from_stage, to_stage) is allowed

    def test_terminal_stages_have_no_exits(self):
        for stage in (FlowStageChoices.DEPARTED, FlowStageChoices.NO_SHOW, FlowStageChoices.CANCELLED):
            assert ALLOWED_STAGE_TRANSITIONS[stage] == set()

    def test_every_stage_is_covered(self):
        assert set(ALLOWED_STAGE_TRANSITIONS) == set(FlowStageChoices.values)


@pytest.mark.django_db
class TestTransitionFlow:

    def test_full_visit(self, appointment, chair):
        flow = appointment.flow_state
        for stage in ('CHECKED_IN', 'WAITING', 'CALLED'):
            flow = flow_service.transition_flow(flow, stage)
        flow = flow_service.transition_flow(flow, FlowStageChoices.IN_CHAIR, chair=chair)

        assert flow.seated_at is not None
        assert flow.current_wait_started_at is None
        assert resource_services.current_status(chair) == OccupancyStatusChoices.OCCUPIED
        appointment.refresh_from_db()
        assert appointment.status == 'IN_PROGRESS'

        flow = flow_service.transition_flow(flow, FlowStageChoices.COMPLETED)
        assert resource_services.current_status(chair) == OccupancyStatusChoices.AVAILABLE
        appointment.refresh_from_db()
        assert appointment.status == 'COMPLETED'

        stages = FlowStageHistory.objects.filter(flow=flow).values_list('to_stage', flat=True)
        assert sorted(stages) == sorted(['CHECKED_IN', 'WAITING', 'CALLED', 'IN_CHAIR', 'COMPLETED'])

    def test_skipping_a_stage_is_rejected(self, appointment):
        with pytest.raises(DomainValidationError) as exc_info:
            flow_service.transition_flow(appointment.flow_state, FlowStageChoices.COMPLETED)

        assert exc_info.value.details == {'currentStage': 'SCHEDULED', 'requestedStage': 'COMPLETED'}

    def test_seating_requires_a_chair(self, appointment):
        flow = flow_service.transition_flow(appointment.flow_state, FlowStageChoices.CHECKED_IN)

        with pytest.raises(DomainValidationError):
            flow_service.transition_flow(flow, FlowStageChoices.IN_CHAIR)

    def test_seating_in_occupied_chair_conflicts(self, make_appointment, make_patient, make_provider, chair):
        first = make_appointment()
        second = make_appointment(patient=make_patient(), provider=make_provider())
        for appt in (first, second):
            flow_service.transition_flow(appt.flow_state, FlowStageChoices.CHECKED_IN)
        flow_service.transition_flow(first.flow_state, FlowStageChoices.IN_CHAIR, chair=chair)

        with pytest.raises(ConflictError) as exc_info:
            flow_service.transition_flow(second.flow_state, FlowStageChoices.IN_CHAIR, chair=chair)
        assert exc_info.value.code == 'CHAIR_OCCUPIED'

    def test_seating_in_blocked_chair_conflicts(self, appointment, chair):
        resource_services.block_chair(chair, 'Compressor repair')
        flow = flow_service.transition_flow(appointment.flow_state, FlowStageChoices.CHECKED_IN)

        with pytest.raises(ConflictError):
            flow_service.transition_flow(flow, FlowStageChoices.IN_CHAIR, chair=chair)


@pytest.mark.django_db
class TestFlowApi:

    def test_check_in_and_seat(self, front_desk_client, appointment, chair):
        url = f'{FLOW}{appointment.id}/'

        checked_in = front_desk_client.post(f'{url}check-in/')
        seated = front_desk_client.post(f'{url}seat/', {'chairId': str(chair.id)}, format='json')

        assert checked_in.status_code == status.HTTP_200_OK
        assert checked_in.json()['data']['stage'] == 'CHECKED_IN'
        assert seated.status_code == status.HTTP_200_OK
        assert seated.json()['data']['stage'] == 'IN_CHAIR'
        assert seated.json()['data']['chair_name'] == chair.name

    def test_transition_action_rejects_illegal_move(self, front_desk_client, appointment):
        response = front_desk_client.post(
            f'{FLOW}{appointment.id}/transition/', {'toStage': 'DEPARTED'}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()['error']['code'] == 'VALIDATION_ERROR'

    @pytest.mark.parametrize('appointment_id', ['00000000-0000-0000-0000-000000000000', 'not-a-uuid'])
    def test_unknown_appointment(self, front_desk_client, appointment_id):
        response = front_desk_client.post(f'{FLOW}{appointment_id}/waiting/')

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()['error']['code'] == 'NOT_FOUND'

    def test_booked_chair_is_used_when_seating(
        self, front_desk_client, patient, provider, appointment_type, chair
    ):
        booked = front_desk_client.post(
            '/api/booking/appointments/',
            {
                'patientId': str(patient.id),
                'providerId': str(provider.id),
                'appointmentTypeId': str(appointment_type.id),
                'startTime': (timezone.now() + timedelta(hours=1)).isoformat(),
                'chairId': str(chair.id),
            },
            format='json',
        )
        url = f"{FLOW}{booked.json()['data']['id']}/"

        front_desk_client.post(f'{url}check-in/')
        seated = front_desk_client.post(f'{url}transition/', {'toStage': 'IN_CHAIR'}, format='json')

        assert seated.status_code == status.HTTP_200_OK
        assert seated.json()['data']['stage'] == 'IN_CHAIR'
        assert seated.json()['data']['chair_name'] == chair.name

    def test_board_groups_by_stage(self, front_desk_client, make_appointment):
        make_appointment(start=timezone.now())

        response = front_desk_client.get(FLOW)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()['data']
        assert len(data['stages']['SCHEDULED']) == 1

    def test_priority(self, front_desk_client, appointment):
        response = front_desk_client.post(
            f'{FLOW}{appointment.id}/priority/', {'priority': 'URGENT'}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        appointment.flow_state.refresh_from_db()
        assert appointment.flow_state.priority == 'URGENT'
