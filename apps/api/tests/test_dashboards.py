"""
Day / week / month dashboards built from a fixed clinic day.

Monday 2025-03-10 (UTC):
- 09:00 COMPLETED, seated 09:10, done 09:40
- 10:00 ARRIVED, waiting since 10:05
- 11:00 CANCELLED
"""
from datetime import date, datetime, timezone as dt_timezone

import pytest
from rest_framework import status

from apps.ops import dashboards
from apps.ops.models import PatientFlowState


def _at(hour, minute=0, day=10):
    return datetime(2025, 3, day, hour, minute, tzinfo=dt_timezone.utc)


NOW = _at(10, 30)


@pytest.fixture
def clinic_day(make_appointment):
    completed = make_appointment(start=_at(9), status='COMPLETED')
    waiting = make_appointment(start=_at(10), status='ARRIVED')
    cancelled = make_appointment(start=_at(11), status='CANCELLED')

    PatientFlowState.objects.filter(appointment=completed).update(
        stage='COMPLETED',
        checked_in_at=_at(9, 5),
        seated_at=_at(9, 10),
        completed_at=_at(9, 40),
    )
    PatientFlowState.objects.filter(appointment=waiting).update(
        stage='WAITING',
        checked_in_at=_at(10),
        current_wait_started_at=_at(10, 5),
    )
    PatientFlowState.objects.filter(appointment=cancelled).update(stage='CANCELLED')
    return completed, waiting, cancelled


@pytest.mark.django_db
class TestDayDashboard:

    def test_metrics_for_today(self, clinic, clinic_day):
        data = dashboards.build_day_dashboard(clinic, date(2025, 3, 10), now=NOW)

        assert data['date'] == '2025-03-10'
        assert data['isToday'] is True
        assert data['metrics'] == {
            'scheduledCount': 3,
            'checkedInCount': 2,
            'completedCount': 1,
            'noShowCount': 0,
            'cancelledCount': 1,
            'walkInCount': 0,
            'avgWaitMinutes': 25,
            'maxWaitMinutes': 25,
            'extendedWaitCount': 1,
            'avgChairMinutes': 30,
            'onTimePercentage': 100,
            'chairUtilization': 0,
        }
        assert data['statusCounts']['ARRIVED'] == 1
        assert data['flowByStage'] == {'COMPLETED': 1, 'WAITING': 1, 'CANCELLED': 1}

        [waiting_card] = data['waitingPatients']
        assert waiting_card['appointmentId'] == str(clinic_day[1].id)
        assert waiting_card['waitMinutes'] == 25

    def test_past_day_has_no_live_waits(self, clinic, clinic_day):
        data = dashboards.build_day_dashboard(clinic, date(2025, 3, 10), now=_at(8, day=11))

        assert data['isToday'] is False
        assert data['metrics']['avgWaitMinutes'] == 0
        assert data['waitingPatients'] == []

    def test_provider_filter(self, clinic, clinic_day, make_provider):
        data = dashboards.build_day_dashboard(
            clinic, date(2025, 3, 10), provider_id=make_provider().id, now=NOW
        )
        assert data['metrics']['scheduledCount'] == 0


@pytest.mark.django_db
class TestWeekDashboard:

    def test_week_is_normalized_to_monday(self, clinic, clinic_day):
        data = dashboards.build_week_dashboard(clinic, date(2025, 3, 12), now=NOW)

        assert data['weekStart'] == '2025-03-10'
        assert data['weekEnd'] == '2025-03-16'
        assert len(data['days']) == 7
        assert data['days'][0]['isToday'] is True
        assert data['days'][0]['dayOfWeek'] == 1
        assert data['days'][5]['isWeekend'] is True
        assert data['days'][0]['stats'] == {
            'scheduled': 3, 'confirmed': 0, 'completed': 1, 'cancelled': 1, 'noShow': 0,
        }
        assert data['weekSummary']['totalScheduled'] == 3
        assert data['weekSummary']['completionRate'] == 33

        [provider_row] = data['providerStats']
        assert provider_row['scheduled'] == 3
        assert provider_row['completed'] == 1
        assert provider_row['cancelled'] == 1


@pytest.mark.django_db
class TestMonthDashboard:

    def test_month_buckets(self, clinic, clinic_day):
        data = dashboards.build_month_dashboard(clinic, month=3, year=2025, now=NOW)

        assert data['daysInMonth'] == 31
        assert data['monthName'] == 'March'
        assert data['days'][0]['status'] == 'empty'
        assert data['days'][9]['status'] == 'light'
        assert data['days'][9]['isToday'] is True
        assert data['days'][8]['isPast'] is True
        assert data['monthSummary']['avgPerDay'] == 3.0
        assert data['monthSummary']['busiestDay'] == {'date': '2025-03-10', 'count': 3}
        assert data['appointmentTypeStats'][0]['count'] == 3
        assert data['appointmentTypeStats'][0]['percentage'] == 100

    @pytest.mark.parametrize('active,expected', [
        (0, 'empty'),
        (1, 'light'),
        (5, 'light'),
        (6, 'normal'),
        (15, 'normal'),
        (16, 'busy'),
        (25, 'busy'),
        (26, 'full'),
    ])
    def test_day_load_status(self, active, expected):
        assert dashboards.day_load_status(active) == expected


@pytest.mark.django_db
class TestDashboardApi:

    def test_front_desk_can_read(self, front_desk_client, clinic_day):
        response = front_desk_client.get('/api/ops/dashboard/week/', {'weekStart': '2025-03-10'})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()['data']['weekSummary']['totalScheduled'] == 3

    def test_lab_coordinator_is_denied(self, lab_coordinator_client):
        response = lab_coordinator_client.get('/api/ops/dashboard/day/')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_invalid_month(self, manager_client):
        response = manager_client.get('/api/ops/dashboard/month/', {'month': 13})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()['error']['code'] == 'VALIDATION_ERROR'
