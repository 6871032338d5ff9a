"""
Resources service layer: chair occupancy and sterilization cycles.
"""
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.core.exceptions import ConflictError
from apps.core.models import AuditActionChoices, log_audit
from apps.core.observability import metrics
from apps.core.observability.events import log_domain_event

from . import qr_code
from .models import OccupancyStatusChoices, ResourceOccupancy, SterilizationCycle, TreatmentChair


def get_current_occupancy(chair):
    """Latest occupancy row for `chair`, or None when it was never touched."""
    return chair.occupancies.order_by('-updated_at', '-created_at').first()


def current_status(chair):
    occupancy = get_current_occupancy(chair)
    return occupancy.status if occupancy else OccupancyStatusChoices.AVAILABLE


def _refresh_occupied_gauge(clinic_id):
    occupied = 0
    for chair in TreatmentChair.objects.alive().filter(clinic_id=clinic_id, is_active=True):
        if current_status(chair) == OccupancyStatusChoices.OCCUPIED:
            occupied += 1
    metrics.chairs_occupied.labels(clinic_id=str(clinic_id)).set(occupied)


def set_chair_status(chair, status, user=None, appointment=None, **fields):
    """
    Update the chair's current occupancy row, creating it on first use.

    `fields` may carry occupied_at, expected_free_at, blocked_until and
    block_reason. Fields not given are cleared.
    """
    occupancy = get_current_occupancy(chair)
    if occupancy is None:
        occupancy = ResourceOccupancy(clinic_id=chair.clinic_id, chair=chair)

    occupancy.status = status
    occupancy.appointment = appointment
    occupancy.occupied_at = fields.get('occupied_at')
    occupancy.expected_free_at = fields.get('expected_free_at')
    occupancy.blocked_until = fields.get('blocked_until')
    occupancy.block_reason = fields.get('block_reason') or ''
    if user is not None and getattr(user, 'is_authenticated', False):
        occupancy.updated_by = user
    occupancy.save()

    _refresh_occupied_gauge(chair.clinic_id)
    return occupancy


def occupy_chair(chair, appointment=None, user=None, now=None):
    """Mark the chair OCCUPIED for `appointment` (patient seated)."""
    now = now or timezone.now()
    expected_free_at = None
    if appointment is not None and appointment.end_time and appointment.end_time > now:
        expected_free_at = appointment.end_time
    return set_chair_status(
        chair,
        OccupancyStatusChoices.OCCUPIED,
        user=user,
        appointment=appointment,
        occupied_at=now,
        expected_free_at=expected_free_at,
    )


def block_chair(chair, reason, block_type=OccupancyStatusChoices.BLOCKED, blocked_until=None,
                duration_minutes=None, user=None, request=None, now=None):
    """
    Take a chair out of service.

    Raises:
        ConflictError(CHAIR_OCCUPIED): a patient is in the chair
    """
    now = now or timezone.now()
    with transaction.atomic():
        chair = TreatmentChair.objects.select_for_update().get(pk=chair.pk)
        previous = current_status(chair)
        if previous == OccupancyStatusChoices.OCCUPIED:
            raise ConflictError(
                'Cannot block a chair that is currently occupied',
                code='CHAIR_OCCUPIED',
            )

        if blocked_until is None and duration_minutes:
            blocked_until = now + timedelta(minutes=duration_minutes)

        occupancy = set_chair_status(
            chair,
            block_type,
            user=user,
            blocked_until=blocked_until,
            block_reason=reason,
        )
        log_audit(
            chair.clinic,
            user,
            AuditActionChoices.UPDATE,
            'TreatmentChair',
            chair.id,
            before={'status': previous},
            after={
                'status': block_type,
                'blocked_until': blocked_until.isoformat() if blocked_until else None,
            },
            request=request,
            reason=reason,
        )

    log_domain_event(
        'chair_blocked',
        entity_type='TreatmentChair',
        entity_id=str(chair.id),
        entity_ids={'clinic_id': str(chair.clinic_id)},
        block_type=block_type,
    )
    return occupancy


def release_chair(chair, user=None, request=None):
    """Return a chair to AVAILABLE."""
    with transaction.atomic():
        previous = current_status(chair)
        occupancy = set_chair_status(chair, OccupancyStatusChoices.AVAILABLE, user=user)
        log_audit(
            chair.clinic,
            user,
            AuditActionChoices.UPDATE,
            'TreatmentChair',
            chair.id,
            before={'status': previous},
            after={'status': OccupancyStatusChoices.AVAILABLE},
            request=request,
        )
    return occupancy


def occupancy_summary(clinic):
    """
    Counts per status over the clinic's active chairs plus utilization.

    Chairs with no occupancy row count as AVAILABLE.
    """
    from apps.ops.metrics import chair_utilization

    counts = {choice: 0 for choice in OccupancyStatusChoices.values}
    statuses = []
    chairs = TreatmentChair.objects.alive().filter(clinic=clinic, is_active=True)
    for chair in chairs:
        status = current_status(chair)
        counts[status] += 1
        statuses.append({'status': status})

    return {
        'totalChairs': len(statuses),
        'byStatus': counts,
        'utilization': chair_utilization(statuses, len(statuses)),
    }


def create_cycle(clinic, validated_data, user=None, request=None):
    """Create a sterilization cycle; expiration defaults to start + shelf life."""
    with transaction.atomic():
        if not validated_data.get('expiration_date'):
            validated_data['expiration_date'] = qr_code.calculate_expiration_date(
                validated_data['start_time'],
                settings.STERILIZATION_SHELF_LIFE_DAYS,
            )
        if user is not None and getattr(user, 'is_authenticated', False):
            validated_data.setdefault('operator', user)
        cycle = SterilizationCycle.objects.create(clinic=clinic, **validated_data)
        log_audit(
            clinic,
            user,
            AuditActionChoices.CREATE,
            'SterilizationCycle',
            cycle.id,
            after={'cycle_number': cycle.cycle_number, 'status': cycle.status},
            request=request,
        )
    return cycle


def build_cycle_label(cycle):
    """All label payloads for a cycle, plus the rendered PNG."""
    from .labels import render_qr_data_url

    data = cycle.qr_data()
    compact = qr_code.generate_qr_content(data, settings.STERILIZATION_SHELF_LIFE_DAYS)
    return {
        'cycleId': str(cycle.id),
        'cycleNumber': cycle.cycle_number,
        'content': compact,
        'scannerContent': qr_code.generate_scanner_content(data),
        'legacyContent': qr_code.generate_legacy_content(
            cycle.cycle_number, cycle.id, cycle.start_time
        ),
        'expirationDate': cycle.expiration_date.isoformat(),
        'isStillSterile': qr_code.is_still_sterile(
            cycle.start_time, settings.STERILIZATION_SHELF_LIFE_DAYS
        ),
        'imageDataUrl': render_qr_data_url(compact),
    }


def describe_label(content):
    """Parse label text and add freshness info; None when unparseable."""
    payload = qr_code.parse_qr_content(content)
    if payload is None:
        return None
    return {
        'version': payload['version'],
        'cycleIdSuffix': payload['cycle_id_suffix'],
        'cycleNumber': payload['cycle_number'],
        'cycleType': payload['cycle_type'],
        'sterilizationDate': payload['sterilization_date'],
        'expirationDate': payload['expiration_date'],
        'temperature': payload['temperature'],
        'pressure': payload['pressure'],
        'exposureTime': payload['exposure_time'],
        'status': payload['status'],
        'equipmentName': payload['equipment_name'],
        'packageType': payload['package_type'],
        'time': payload['time'],
        'isStillSterile': qr_code.is_still_sterile(payload['sterilization_date']),
        'daysUntilExpiration': qr_code.days_until_expiration(payload['sterilization_date']),
    }
