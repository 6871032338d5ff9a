"""
Pure metric folds used by the dashboards (no database).
"""
from datetime import datetime, timedelta, timezone as dt_timezone

import pytest

from apps.ops import metrics

T0 = datetime(2025, 3, 10, 9, 0, tzinfo=dt_timezone.utc)


class TestRounding:

    @pytest.mark.parametrize('part,whole,expected', [
        (1, 3, 33),
        (2, 3, 67),
        (1, 8, 13),
        (1, 2, 50),
        (0, 5, 0),
    ])
    def test_percentage(self, part, whole, expected):
        assert metrics.percentage(part, whole) == expected

    def test_percentage_of_nothing_uses_empty_value(self):
        assert metrics.percentage(0, 0) == 0
        assert metrics.percentage(0, 0, empty=100) == 100

    def test_round_half_up(self):
        assert metrics.round_half_up(2.5) == 3
        assert metrics.round_half_up(2.49) == 2


class TestWaits:

    def test_wait_uses_current_wait_start_first(self):
        flow = {
            'checked_in_at': T0,
            'current_wait_started_at': T0 + timedelta(minutes=10),
        }
        assert metrics.wait_minutes(flow, T0 + timedelta(minutes=25)) == 15

    def test_wait_falls_back_to_check_in(self):
        assert metrics.wait_minutes({'checked_in_at': T0}, T0 + timedelta(seconds=150)) == 2

    def test_wait_never_negative(self):
        assert metrics.wait_minutes({'checked_in_at': T0}, T0 - timedelta(minutes=5)) == 0

    def test_wait_without_timestamps(self):
        assert metrics.wait_minutes({}, T0) == 0

    def test_wait_stats_only_count_waiting_stages(self):
        now = T0 + timedelta(minutes=30)
        flows = [
            {'stage': 'WAITING', 'checked_in_at': T0},
            {'stage': 'CHECKED_IN', 'checked_in_at': T0 + timedelta(minutes=20)},
            {'stage': 'IN_CHAIR', 'checked_in_at': T0},
        ]

        stats = metrics.wait_stats(flows, now)

        assert stats == {'avg': 20, 'max': 30, 'count': 2, 'extended': 1}

    def test_wait_stats_empty(self):
        assert metrics.wait_stats([], T0) == {'avg': 0, 'max': 0, 'count': 0, 'extended': 0}


class TestChairAndPunctuality:

    def test_average_chair_minutes_skips_open_visits(self):
        flows = [
            {'seated_at': T0, 'completed_at': T0 + timedelta(minutes=20)},
            {'seated_at': T0, 'completed_at': T0 + timedelta(minutes=41)},
            {'seated_at': T0, 'completed_at': None},
        ]
        assert metrics.average_chair_minutes(flows) == 31

    def test_on_time_with_nobody_seated(self):
        assert metrics.on_time_percentage([{'scheduled_at': T0, 'seated_at': None}]) == 100

    def test_on_time_threshold_is_inclusive(self):
        flows = [
            {'scheduled_at': T0, 'seated_at': T0 + timedelta(minutes=15)},
            {'scheduled_at': T0, 'seated_at': T0 + timedelta(minutes=16)},
            {'scheduled_at': T0, 'seated_at': T0 - timedelta(minutes=5)},
        ]
        assert metrics.on_time_percentage(flows) == 67

    def test_chair_utilization(self):
        occupancies = [{'status': 'OCCUPIED'}, {'status': 'BLOCKED'}, {'status': 'AVAILABLE'}]
        assert metrics.chair_utilization(occupancies, 4) == 25
        assert metrics.chair_utilization([], 0) == 0


class TestCounts:

    def test_status_counts_are_zero_filled(self):
        counts = metrics.status_counts([{'status': 'COMPLETED'}, {'status': 'COMPLETED'}])

        assert counts['COMPLETED'] == 2
        assert counts['NO_SHOW'] == 0
        assert set(counts) == set(metrics.APPOINTMENT_STATUSES)

    def test_stage_counts(self):
        flows = [{'stage': 'WAITING'}, {'stage': 'WAITING'}, {'stage': 'IN_CHAIR'}]
        assert metrics.stage_counts(flows) == {'WAITING': 2, 'IN_CHAIR': 1}
