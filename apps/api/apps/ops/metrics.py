"""
Operational metric folds.

Pure functions over plain records: model instances or dicts with the same
field names both work. Nothing here touches the database or settings.
"""
import math
from collections import Counter

WAITING_STAGES = ('WAITING', 'CHECKED_IN', 'CALLED')
DEFAULT_ON_TIME_THRESHOLD_MINUTES = 15
DEFAULT_EXTENDED_WAIT_MINUTES = 15

APPOINTMENT_STATUSES = (
    'SCHEDULED',
    'CONFIRMED',
    'ARRIVED',
    'IN_PROGRESS',
    'COMPLETED',
    'CANCELLED',
    'NO_SHOW',
)


def _get(record, name):
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def round_half_up(value):
    return int(math.floor(value + 0.5))


def percentage(part, whole, empty=0):
    """round(100 * part / whole), `empty` when whole is 0."""
    if not whole:
        return empty
    return round_half_up(100 * part / whole)


def wait_minutes(flow, now):
    """Whole minutes since the wait started (or check-in); never negative."""
    started = _get(flow, 'current_wait_started_at') or _get(flow, 'checked_in_at')
    if started is None:
        return 0
    return max(0, math.floor((now - started).total_seconds() / 60))


def wait_stats(flows, now, extended_threshold=DEFAULT_EXTENDED_WAIT_MINUTES):
    """Average / max wait over patients still waiting to be seated."""
    waits = [wait_minutes(flow, now) for flow in flows if _get(flow, 'stage') in WAITING_STAGES]
    if not waits:
        return {'avg': 0, 'max': 0, 'count': 0, 'extended': 0}
    return {
        'avg': round_half_up(sum(waits) / len(waits)),
        'max': max(waits),
        'count': len(waits),
        'extended': sum(1 for wait in waits if wait > extended_threshold),
    }


def chair_minutes(flow):
    """Minutes between seating and completion, None when either is missing."""
    seated_at = _get(flow, 'seated_at')
    completed_at = _get(flow, 'completed_at')
    if seated_at is None or completed_at is None:
        return None
    return max(0, math.floor((completed_at - seated_at).total_seconds() / 60))


def average_chair_minutes(flows):
    minutes = [m for m in (chair_minutes(flow) for flow in flows) if m is not None]
    if not minutes:
        return 0
    return round_half_up(sum(minutes) / len(minutes))


def on_time_percentage(flows, threshold_minutes=DEFAULT_ON_TIME_THRESHOLD_MINUTES):
    """
    Share of seated visits seated within `threshold_minutes` of the
    scheduled time. 100 when nobody has been seated.
    """
    seated = [
        flow for flow in flows
        if _get(flow, 'seated_at') is not None and _get(flow, 'scheduled_at') is not None
    ]
    on_time = sum(
        1 for flow in seated
        if (_get(flow, 'seated_at') - _get(flow, 'scheduled_at')).total_seconds() <= threshold_minutes * 60
    )
    return percentage(on_time, len(seated), empty=100)


def chair_utilization(occupancies, active_chairs):
    """round(100 * occupied / active), 0 without active chairs."""
    occupied = sum(1 for occ in occupancies if _get(occ, 'status') == 'OCCUPIED')
    return percentage(occupied, active_chairs, empty=0)


def status_counts(appointments):
    """Appointment count per status, every status present."""
    counts = {status: 0 for status in APPOINTMENT_STATUSES}
    counts.update(Counter(_get(appt, 'status') for appt in appointments))
    return counts


def stage_counts(flows):
    return dict(Counter(_get(flow, 'stage') for flow in flows))
