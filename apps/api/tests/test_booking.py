"""
Booking: conflict detection, status transitions, cancellations and recovery.
"""
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework import status

from apps.booking import services
from apps.booking.models import (
    Appointment,
    AppointmentCancellation,
    AppointmentStatusChoices,
    CancellationTypeChoices,
    RecoveryStatusChoices,
    can_transition,
)
from apps.core.exceptions import ConflictError, DomainValidationError
from apps.ops.models import PatientFlowState

APPOINTMENTS = '/api/booking/appointments/'


def _payload(patient, provider, appointment_type, start, **extra):
    data = {
        'patientId': str(patient.id),
        'providerId': str(provider.id),
        'appointmentTypeId': str(appointment_type.id),
        'startTime': start.isoformat(),
    }
    data.update(extra)
    return data


# ============================================================================
# Creation and conflicts
# ============================================================================

@pytest.mark.django_db
class TestCreateAppointment:

    def test_create_uses_type_duration_and_opens_flow(
        self, front_desk_client, patient, provider, appointment_type
    ):
        start = timezone.now() + timedelta(days=1)

        response = front_desk_client.post(
            APPOINTMENTS, _payload(patient, provider, appointment_type, start), format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()['data']
        assert data['duration'] == 30
        assert data['status'] == AppointmentStatusChoices.SCHEDULED
        flow = PatientFlowState.objects.get(appointment_id=data['id'])
        assert flow.stage == 'SCHEDULED'

    def test_created_confirmed_is_stamped(self, front_desk_client, patient, provider, appointment_type):
        start = timezone.now() + timedelta(days=1)

        response = front_desk_client.post(
            APPOINTMENTS,
            _payload(patient, provider, appointment_type, start, status='CONFIRMED'),
            format='json',
        )

        assert response.status_code == status.HTTP_201_CREATED
        appointment = Appointment.objects.get(pk=response.json()['data']['id'])
        assert appointment.status == AppointmentStatusChoices.CONFIRMED
        assert appointment.confirmed_at is not None

    def test_start_in_the_past_is_rejected(self, front_desk_client, patient, provider, appointment_type):
        start = timezone.now() - timedelta(hours=2)

        response = front_desk_client.post(
            APPOINTMENTS, _payload(patient, provider, appointment_type, start), format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'startTime' in response.json()['error']['details']

    def test_patient_from_other_clinic_is_not_found(
        self, front_desk_client, make_patient, other_clinic, provider, appointment_type
    ):
        foreign = make_patient(patient_clinic=other_clinic)
        start = timezone.now() + timedelta(days=1)

        response = front_desk_client.post(
            APPOINTMENTS, _payload(foreign, provider, appointment_type, start), format='json'
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()['error']['code'] == 'PATIENT_NOT_FOUND'


@pytest.mark.django_db
class TestConflicts:

    def test_provider_overlap_is_rejected(self, front_desk_client, appointment, make_patient, provider,
                                          appointment_type):
        other = make_patient()
        start = appointment.start_time + timedelta(minutes=15)

        response = front_desk_client.post(
            APPOINTMENTS, _payload(other, provider, appointment_type, start), format='json'
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        error = response.json()['error']
        assert error['code'] == 'PROVIDER_CONFLICT'
        assert error['details']['conflictingAppointmentId'] == str(appointment.id)

    def test_back_to_back_is_allowed(self, clinic, appointment, make_patient, provider, appointment_type):
        data = {
            'patientId': make_patient().id,
            'providerId': provider.id,
            'appointmentTypeId': appointment_type.id,
            'startTime': appointment.end_time,
        }
        created = services.create_appointment(clinic, data)
        assert created.start_time == appointment.end_time

    def test_chair_overlap_with_other_provider(self, clinic, make_appointment, make_provider, make_patient,
                                               appointment_type, chair):
        make_appointment(chair=chair)
        start = timezone.now() + timedelta(hours=1, minutes=10)

        with pytest.raises(ConflictError) as exc_info:
            services.create_appointment(clinic, {
                'patientId': make_patient().id,
                'providerId': make_provider().id,
                'appointmentTypeId': appointment_type.id,
                'startTime': start,
                'chairId': chair.id,
            })
        assert exc_info.value.code == 'CHAIR_CONFLICT'

    def test_room_overlap_with_other_provider(self, clinic, make_appointment, make_provider, make_patient,
                                              appointment_type, room):
        make_appointment(room=room)
        start = timezone.now() + timedelta(hours=1, minutes=10)

        with pytest.raises(ConflictError) as exc_info:
            services.create_appointment(clinic, {
                'patientId': make_patient().id,
                'providerId': make_provider().id,
                'appointmentTypeId': appointment_type.id,
                'startTime': start,
                'roomId': room.id,
            })
        assert exc_info.value.code == 'ROOM_CONFLICT'

    @pytest.mark.parametrize('blocking_status', [
        AppointmentStatusChoices.CANCELLED,
        AppointmentStatusChoices.NO_SHOW,
    ])
    def test_cancelled_and_no_show_do_not_block(self, clinic, make_appointment, make_patient, provider,
                                                appointment_type, blocking_status):
        existing = make_appointment(status=blocking_status)

        created = services.create_appointment(clinic, {
            'patientId': make_patient().id,
            'providerId': provider.id,
            'appointmentTypeId': appointment_type.id,
            'startTime': existing.start_time,
        })
        assert created.pk != existing.pk

    def test_reschedule_ignores_itself(self, appointment):
        new_start = appointment.start_time + timedelta(minutes=10)

        moved = services.reschedule_appointment(appointment, {'startTime': new_start})

        assert moved.start_time == new_start
        assert moved.end_time == new_start + timedelta(minutes=30)


# ============================================================================
# Status transitions
# ============================================================================

class TestTransitionTable:

    @pytest.mark.parametrize('from_status,to_status,allowed', [
        ('SCHEDULED', 'CONFIRMED', True),
        ('SCHEDULED', 'ARRIVED', True),
        ('CONFIRMED', 'NO_SHOW', True),
        ('ARRIVED', 'IN_PROGRESS', True),
        ('IN_PROGRESS', 'COMPLETED', True),
        ('SCHEDULED', 'COMPLETED', False),
        ('IN_PROGRESS', 'CANCELLED', False),
        ('COMPLETED', 'SCHEDULED', False),
        ('CANCELLED', 'CONFIRMED', False),
    ])
    def test_can_transition(self, from_status, to_status, allowed):
        assert can_transition(from_status, to_status) is allowed


@pytest.mark.django_db
class TestTransitions:

    def test_confirm_then_check_in(self, front_desk_client, appointment):
        url = f'{APPOINTMENTS}{appointment.id}/'

        confirmed = front_desk_client.post(f'{url}confirm/')
        arrived = front_desk_client.post(f'{url}check-in/')

        assert confirmed.json()['data']['status'] == 'CONFIRMED'
        assert confirmed.json()['data']['confirmation_status'] == 'CONFIRMED'
        assert arrived.json()['data']['status'] == 'ARRIVED'
        appointment.refresh_from_db()
        assert appointment.arrived_at is not None
        assert appointment.flow_state.stage == 'CHECKED_IN'

    def test_complete_from_scheduled_is_rejected(self, front_desk_client, appointment):
        response = front_desk_client.post(f'{APPOINTMENTS}{appointment.id}/complete/')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        error = response.json()['error']
        assert error['code'] == 'VALIDATION_ERROR'
        assert error['details'] == {'currentStatus': 'SCHEDULED', 'requestedStatus': 'COMPLETED'}

    def test_terminal_status_is_final(self, appointment):
        services.transition_appointment(appointment, AppointmentStatusChoices.CANCELLED)

        with pytest.raises(DomainValidationError):
            services.transition_appointment(appointment, AppointmentStatusChoices.CONFIRMED)


# ============================================================================
# Cancellations and recovery
# ============================================================================

@pytest.mark.django_db
class TestCancellation:

    def test_short_notice_becomes_late_cancel(self, appointment):
        now = appointment.start_time - timedelta(hours=3)

        appointment, cancellation = services.cancel_appointment(appointment, 'Sick', now=now)

        assert appointment.status == AppointmentStatusChoices.CANCELLED
        assert cancellation.cancellation_type == CancellationTypeChoices.LATE_CANCEL
        assert cancellation.is_late_cancel is True
        assert cancellation.late_cancel_fee == Decimal('25.00')
        assert cancellation.recovery_status == RecoveryStatusChoices.PENDING

    def test_long_notice_is_plain_cancel(self, make_appointment):
        appointment = make_appointment(start=timezone.now() + timedelta(days=3))

        _, cancellation = services.cancel_appointment(appointment, 'Travel')

        assert cancellation.cancellation_type == CancellationTypeChoices.CANCELLED
        assert cancellation.is_late_cancel is False
        assert cancellation.late_cancel_fee is None

    def test_practice_cancel_needs_no_recovery(self, appointment):
        _, cancellation = services.cancel_appointment(
            appointment, 'Provider sick', cancellation_type=CancellationTypeChoices.PRACTICE_CANCEL
        )

        assert cancellation.recovery_status == RecoveryStatusChoices.NOT_NEEDED
        assert cancellation.late_cancel_fee is None

    def test_cancel_endpoint(self, front_desk_client, appointment):
        response = front_desk_client.post(
            f'{APPOINTMENTS}{appointment.id}/cancel/',
            {'cancellationReason': 'Family emergency', 'noticeHours': 6},
            format='json',
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()['data']
        assert data['appointment']['status'] == 'CANCELLED'
        assert data['cancellation']['cancellation_type'] == 'LATE_CANCEL'
        appointment.refresh_from_db()
        assert appointment.flow_state.stage == 'CANCELLED'

    def test_no_show_records_fee(self, front_desk_client, appointment):
        response = front_desk_client.post(f'{APPOINTMENTS}{appointment.id}/no-show/')

        assert response.status_code == status.HTTP_200_OK
        cancellation = AppointmentCancellation.objects.get(appointment=appointment)
        assert cancellation.cancellation_type == CancellationTypeChoices.NO_SHOW
        assert cancellation.late_cancel_fee == Decimal('50.00')
        assert cancellation.is_late_cancel is True


@pytest.mark.django_db
class TestRecovery:

    @pytest.mark.parametrize('result,expected', [
        ('RESCHEDULED', RecoveryStatusChoices.RECOVERED),
        ('DECLINED', RecoveryStatusChoices.LOST),
        ('NO_RESPONSE', RecoveryStatusChoices.IN_PROGRESS),
    ])
    def test_attempt_sets_status(self, appointment, result, expected):
        _, cancellation = services.cancel_appointment(appointment, 'Sick')

        cancellation = services.record_recovery_attempt(cancellation, result, notes='Called')

        assert cancellation.recovery_status == expected
        assert cancellation.recovery_attempts == 1
        assert cancellation.last_recovery_attempt_at is not None
