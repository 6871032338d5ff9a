"""
Scheduling dashboards (day / week / month).

Every call re-reads the bounded set of appointments for its window and
folds it in Python with apps.ops.metrics. Nothing is cached.
"""
import calendar
from collections import Counter, defaultdict
from datetime import date, timedelta

from django.conf import settings
from django.utils import timezone

from apps.core.observability import metrics

from . import metrics as folds
from .flow import day_bounds, serialize_flow
from .models import PatientFlowState

# Month calendar load buckets (active appointments per day, inclusive upper bounds)
DAY_LOAD_BUCKETS = (
    (0, 'empty'),
    (5, 'light'),
    (15, 'normal'),
    (25, 'busy'),
)
DAY_LOAD_FULL = 'full'

INACTIVE_STATUSES = ('CANCELLED', 'NO_SHOW')


def _appointments(clinic, start_day, end_day, provider_id=None):
    from apps.booking.models import Appointment

    start, _ = day_bounds(start_day)
    _, end = day_bounds(end_day)
    qs = Appointment.objects.alive().filter(
        clinic=clinic,
        start_time__gte=start,
        start_time__lte=end,
    ).select_related('patient', 'provider', 'appointment_type')
    if provider_id:
        qs = qs.filter(provider_id=provider_id)
    return list(qs.order_by('start_time'))


def _local_day(value):
    return timezone.localtime(value).date()


def _by_day(appointments):
    grouped = defaultdict(list)
    for appt in appointments:
        grouped[_local_day(appt.start_time)].append(appt)
    return grouped


def _day_of_week(day):
    """0 = Sunday ... 6 = Saturday."""
    return day.isoweekday() % 7


def _day_stats(appointments):
    counts = folds.status_counts(appointments)
    return {
        'scheduled': len(appointments),
        'confirmed': counts['CONFIRMED'],
        'completed': counts['COMPLETED'],
        'cancelled': counts['CANCELLED'],
        'noShow': counts['NO_SHOW'],
    }


def _hourly_density(appointments):
    hours = Counter(timezone.localtime(appt.start_time).hour for appt in appointments)
    return [{'hour': hour, 'count': hours[hour]} for hour in sorted(hours)]


def _appointment_card(appt):
    return {
        'id': str(appt.id),
        'startTime': appt.start_time.isoformat(),
        'endTime': appt.end_time.isoformat(),
        'status': appt.status,
        'patientName': appt.patient.full_name,
        'providerId': str(appt.provider_id),
        'providerName': appt.provider.display_name,
        'appointmentType': appt.appointment_type.name,
        'color': appt.appointment_type.color,
    }


def _provider_stats(appointments, with_avg=False):
    stats = {}
    days_worked = defaultdict(set)
    for appt in appointments:
        entry = stats.setdefault(appt.provider_id, {
            'provider': {'id': str(appt.provider_id), 'name': appt.provider.display_name},
            'scheduled': 0,
            'completed': 0,
            'cancelled': 0,
        })
        entry['scheduled'] += 1
        if appt.status == 'COMPLETED':
            entry['completed'] += 1
        elif appt.status == 'CANCELLED':
            entry['cancelled'] += 1
        days_worked[appt.provider_id].add(_local_day(appt.start_time))

    if with_avg:
        for provider_id, entry in stats.items():
            entry['avgPerDay'] = round(entry['scheduled'] / len(days_worked[provider_id]), 1)

    return sorted(stats.values(), key=lambda entry: (-entry['scheduled'], entry['provider']['name']))


def _summary(appointments):
    counts = folds.status_counts(appointments)
    total = len(appointments)
    return {
        'totalScheduled': total,
        'totalCompleted': counts['COMPLETED'],
        'totalCancelled': counts['CANCELLED'],
        'totalNoShow': counts['NO_SHOW'],
        'completionRate': folds.percentage(counts['COMPLETED'], total),
    }


def day_load_status(active_count):
    for upper, label in DAY_LOAD_BUCKETS:
        if active_count <= upper:
            return label
    return DAY_LOAD_FULL


def week_start_for(day):
    """Monday of the week containing `day`."""
    return day - timedelta(days=day.weekday())


@metrics.track_duration(metrics.dashboard_build_duration_seconds.labels(view='day'))
def build_day_dashboard(clinic, day=None, provider_id=None, now=None):
    """
    One day of operations. Live waits (and the waiting list) are only
    reported when `day` is today.
    """
    from apps.resources.models import TreatmentChair
    from apps.resources.services import get_current_occupancy

    now = now or timezone.now()
    today = timezone.localdate(now)
    day = day or today
    is_today = day == today

    appointments = _appointments(clinic, day, day, provider_id)
    flows = list(
        PatientFlowState.objects.filter(
            appointment__in=[appt.id for appt in appointments]
        ).select_related('patient', 'provider', 'chair')
    )

    counts = folds.status_counts(appointments)
    waits = (
        folds.wait_stats(flows, now, settings.OPS_EXTENDED_WAIT_MINUTES)
        if is_today else {'avg': 0, 'max': 0, 'count': 0, 'extended': 0}
    )

    chairs = list(TreatmentChair.objects.alive().filter(clinic=clinic, is_active=True))
    occupancies = [occ for occ in (get_current_occupancy(chair) for chair in chairs) if occ]

    waiting_patients = []
    if is_today:
        waiting = [flow for flow in flows if flow.stage in folds.WAITING_STAGES]
        waiting.sort(key=lambda flow: folds.wait_minutes(flow, now), reverse=True)
        waiting_patients = [serialize_flow(flow, now) for flow in waiting]

    return {
        'date': day.isoformat(),
        'isToday': is_today,
        'metrics': {
            'scheduledCount': len(appointments),
            'checkedInCount': sum(1 for flow in flows if flow.checked_in_at is not None),
            'completedCount': counts['COMPLETED'],
            'noShowCount': counts['NO_SHOW'],
            'cancelledCount': counts['CANCELLED'],
            'walkInCount': sum(
                1 for appt in appointments if _local_day(appt.created_at) == _local_day(appt.start_time)
            ),
            'avgWaitMinutes': waits['avg'],
            'maxWaitMinutes': waits['max'],
            'extendedWaitCount': waits['extended'],
            'avgChairMinutes': folds.average_chair_minutes(flows),
            'onTimePercentage': folds.on_time_percentage(flows, settings.OPS_ON_TIME_THRESHOLD_MINUTES),
            'chairUtilization': folds.chair_utilization(occupancies, len(chairs)),
        },
        'statusCounts': counts,
        'flowByStage': folds.stage_counts(flows),
        'waitingPatients': waiting_patients,
    }


@metrics.track_duration(metrics.dashboard_build_duration_seconds.labels(view='week'))
def build_week_dashboard(clinic, week_start=None, provider_id=None, now=None):
    """Seven days starting on the Monday of `week_start`."""
    now = now or timezone.now()
    today = timezone.localdate(now)
    week_start = week_start_for(week_start or today)
    week_end = week_start + timedelta(days=6)

    appointments = _appointments(clinic, week_start, week_end, provider_id)
    grouped = _by_day(appointments)

    days = []
    trends = []
    for offset in range(7):
        day = week_start + timedelta(days=offset)
        day_appts = grouped.get(day, [])
        stats = _day_stats(day_appts)
        days.append({
            'date': day.isoformat(),
            'dayOfWeek': _day_of_week(day),
            'isToday': day == today,
            'isWeekend': day.weekday() >= 5,
            'appointments': [_appointment_card(appt) for appt in day_appts],
            'stats': stats,
            'hourlyDensity': _hourly_density(day_appts),
        })
        trends.append({'date': day.isoformat(), **stats})

    return {
        'weekStart': week_start.isoformat(),
        'weekEnd': week_end.isoformat(),
        'days': days,
        'weekSummary': _summary(appointments),
        'dailyTrends': trends,
        'providerStats': _provider_stats(appointments),
    }


@metrics.track_duration(metrics.dashboard_build_duration_seconds.labels(view='month'))
def build_month_dashboard(clinic, month=None, year=None, provider_id=None, now=None):
    """Calendar month view with per-day load buckets."""
    now = now or timezone.now()
    today = timezone.localdate(now)
    month = month or today.month
    year = year or today.year

    days_in_month = calendar.monthrange(year, month)[1]
    first_day = date(year, month, 1)
    last_day = date(year, month, days_in_month)

    appointments = _appointments(clinic, first_day, last_day, provider_id)
    grouped = _by_day(appointments)

    days = []
    weekly = {}
    busiest = None
    for offset in range(days_in_month):
        day = first_day + timedelta(days=offset)
        day_appts = grouped.get(day, [])
        stats = _day_stats(day_appts)
        active = sum(1 for appt in day_appts if appt.status not in INACTIVE_STATUSES)
        days.append({
            'date': day.isoformat(),
            'day': day.day,
            'dayOfWeek': _day_of_week(day),
            'isToday': day == today,
            'isWeekend': day.weekday() >= 5,
            'isPast': day < today,
            'stats': stats,
            'status': day_load_status(active),
        })

        week_number = (day.day - 1) // 7 + 1
        week = weekly.setdefault(week_number, {'weekNumber': week_number, 'scheduled': 0, 'completed': 0})
        week['scheduled'] += stats['scheduled']
        week['completed'] += stats['completed']

        if stats['scheduled'] and (busiest is None or stats['scheduled'] > busiest['count']):
            busiest = {'date': day.isoformat(), 'count': stats['scheduled']}

    summary = _summary(appointments)
    working_days = len(grouped)
    summary['avgPerDay'] = round(len(appointments) / working_days, 1) if working_days else 0
    summary['busiestDay'] = busiest

    type_counts = Counter(appt.appointment_type_id for appt in appointments)
    types = {appt.appointment_type_id: appt.appointment_type for appt in appointments}
    type_stats = [
        {
            'type': {
                'id': str(type_id),
                'name': types[type_id].name,
                'code': types[type_id].code,
                'color': types[type_id].color,
            },
            'count': count,
            'percentage': folds.percentage(count, len(appointments)),
        }
        for type_id, count in type_counts.most_common()
    ]

    return {
        'month': month,
        'year': year,
        'monthName': calendar.month_name[month],
        'daysInMonth': days_in_month,
        'days': days,
        'monthSummary': summary,
        'weeklyTrends': [weekly[number] for number in sorted(weekly)],
        'providerStats': _provider_stats(appointments, with_avg=True),
        'appointmentTypeStats': type_stats,
    }
