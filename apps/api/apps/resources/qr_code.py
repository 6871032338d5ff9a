"""
Sterilization label payloads.

Three formats are read, newest first:

- Scanner (version 2): "Date STE 20-Dec-2025 Stclave-2 2312 13_15 Pouch"
  (date, equipment, cycle number, time, package type). Autoclave scanners
  emit this text directly.
- Compact JSON (version 1): short keys to keep the QR small, e.g.
  {"v":1,"id":"1a2b3c4d","cn":"CYC-2024-001","sd":"2024-11-30","ed":"2024-12-30"}
- Legacy (version 0): "ORCA-STERIL-<cycle number>-<8 hex id>-<YYYYMMDD>"

Payload dicts use the keys produced by `parse_qr_content`:
version, cycle_id_suffix, cycle_number, cycle_type, sterilization_date,
expiration_date, temperature, pressure, exposure_time, status,
equipment_name, package_type, time. Dates are ISO strings (YYYY-MM-DD).
"""
import json
import math
import re
from datetime import date, datetime, timedelta

from django.utils import timezone

DEFAULT_EXPIRATION_DAYS = 30

COMPACT_VERSION = 1
SCANNER_VERSION = 2
LEGACY_VERSION = 0

LEGACY_PREFIX = 'ORCA-STERIL'

SCANNER_RE = re.compile(
    r'^Date STE (\d{2}-[A-Za-z]{3}-\d{4}) ([^\s]+) ([^\s]+) (\d{2}_\d{2}) (.+)$'
)
LEGACY_RE = re.compile(r'^ORCA-STERIL-(.+)-([a-f0-9]{8})-(\d{8})$')
SCANNER_DATE_RE = re.compile(r'^(\d{2})-([A-Za-z]{3})-(\d{4})$')

MONTH_ABBREVIATIONS = [
    'Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun',
    'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec',
]

# Render defaults for label images
DEFAULT_QR_OPTIONS = {
    'width': 200,
    'margin': 2,
    'error_correction': 'H',
    'dark': '#000000',
    'light': '#FFFFFF',
}

# Printable label sizes (inches and pixels at 96 dpi)
LABEL_SIZES = {
    '4x2': {'width': 4, 'height': 2, 'width_px': 384, 'height_px': 192, 'name': 'Shipping (4" x 2")'},
    '2.625x1': {'width': 2.625, 'height': 1, 'width_px': 252, 'height_px': 96, 'name': 'Address (2 5/8" x 1")'},
    '2x1': {'width': 2, 'height': 1, 'width_px': 192, 'height_px': 96, 'name': 'Thermal 2" x 1"'},
    '2x2': {'width': 2, 'height': 2, 'width_px': 192, 'height_px': 192, 'name': 'Thermal 2" x 2"'},
    '2x4': {'width': 2, 'height': 4, 'width_px': 192, 'height_px': 384, 'name': 'Thermal 2" x 4"'},
    '4x6': {'width': 4, 'height': 6, 'width_px': 384, 'height_px': 576, 'name': 'Thermal 4" x 6"'},
}


def _as_date(value):
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            value = timezone.localtime(value)
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _valid_iso_date(value):
    """Return `value` as a YYYY-MM-DD string, or None when it is not a real date."""
    try:
        return date.fromisoformat(str(value)).isoformat()
    except ValueError:
        return None


def calculate_expiration_date(sterilization_date, days=DEFAULT_EXPIRATION_DAYS):
    """Sterilization date plus shelf life (30 days for wrapped instruments)."""
    return _as_date(sterilization_date) + timedelta(days=days)


def is_still_sterile(sterilization_date, days=DEFAULT_EXPIRATION_DAYS, now=None):
    now = now or timezone.now()
    expires = calculate_expiration_date(sterilization_date, days)
    return _as_date(now) < expires


def days_until_expiration(sterilization_date, days=DEFAULT_EXPIRATION_DAYS, now=None):
    """Whole days left, rounded up; negative once expired."""
    now = now or timezone.now()
    if timezone.is_naive(now):
        now = timezone.make_aware(now)
    expires = calculate_expiration_date(sterilization_date, days)
    expires_at = timezone.make_aware(datetime.combine(expires, datetime.min.time()))
    return math.ceil((expires_at - now).total_seconds() / 86400)


def format_scanner_date(value):
    """20-Dec-2025"""
    d = _as_date(value)
    return f'{d.day:02d}-{MONTH_ABBREVIATIONS[d.month - 1]}-{d.year}'


def parse_scanner_date(value):
    """'20-Dec-2025' -> '2025-12-20', or None when the date does not exist."""
    match = SCANNER_DATE_RE.match(value)
    if not match:
        return None
    day, month_name, year = match.groups()
    month_name = month_name.capitalize()
    if month_name not in MONTH_ABBREVIATIONS:
        return None
    month = MONTH_ABBREVIATIONS.index(month_name) + 1
    return _valid_iso_date(f'{year}-{month:02d}-{day}')


def generate_qr_content(data, expiration_days=DEFAULT_EXPIRATION_DAYS):
    """
    Compact JSON payload for a sterilization cycle.

    `data` keys: cycle_id, cycle_number, cycle_date (required);
    expiration_date, cycle_type, temperature, pressure, exposure_time,
    status, equipment_name (optional, omitted when falsy).
    """
    sterilization_date = _as_date(data['cycle_date'])
    expiration = data.get('expiration_date') or calculate_expiration_date(
        sterilization_date, expiration_days
    )

    compact = {
        'v': COMPACT_VERSION,
        'id': str(data['cycle_id'])[-8:],
        'cn': data['cycle_number'],
        'sd': sterilization_date.isoformat(),
        'ed': _as_date(expiration).isoformat(),
    }
    if data.get('cycle_type'):
        compact['ct'] = data['cycle_type']
    if data.get('temperature'):
        compact['t'] = round(float(data['temperature']))
    if data.get('pressure'):
        compact['p'] = round(float(data['pressure']))
    if data.get('exposure_time'):
        compact['et'] = data['exposure_time']
    if data.get('status'):
        compact['s'] = data['status']
    if data.get('equipment_name'):
        compact['eq'] = data['equipment_name']

    return json.dumps(compact, separators=(',', ':'))


def generate_scanner_content(data):
    """
    Scanner text: "Date STE DD-MMM-YYYY <equipment> <cycle number> HH_MM <package>".

    Equipment and cycle number must not contain spaces; they are replaced
    with '-' so the text still parses.
    """
    cycle_date = data['cycle_date']
    if isinstance(cycle_date, datetime) and timezone.is_aware(cycle_date):
        cycle_date = timezone.localtime(cycle_date)
    time_part = (
        f'{cycle_date.hour:02d}_{cycle_date.minute:02d}'
        if isinstance(cycle_date, datetime) else '00_00'
    )
    equipment = (data.get('equipment_name') or 'Unknown').replace(' ', '-')
    cycle_number = str(data['cycle_number']).replace(' ', '-')
    package_type = data.get('package_type') or 'Cassette'
    return f'Date STE {format_scanner_date(cycle_date)} {equipment} {cycle_number} {time_part} {package_type}'


def generate_legacy_content(cycle_number, cycle_id, sterilization_date):
    """ORCA-STERIL-<number>-<last 8 hex of id>-<YYYYMMDD>"""
    suffix = str(cycle_id).replace('-', '')[-8:].lower()
    return f'{LEGACY_PREFIX}-{cycle_number}-{suffix}-{_as_date(sterilization_date):%Y%m%d}'


def _payload(version, cycle_number, sterilization_date, expiration_date, **fields):
    payload = {
        'version': version,
        'cycle_id_suffix': '',
        'cycle_number': cycle_number,
        'cycle_type': None,
        'sterilization_date': sterilization_date,
        'expiration_date': expiration_date,
        'temperature': None,
        'pressure': None,
        'exposure_time': None,
        'status': None,
        'equipment_name': None,
        'package_type': None,
        'time': None,
    }
    payload.update(fields)
    return payload


def _parse_scanner(content):
    match = SCANNER_RE.match(content)
    if not match:
        return None
    date_str, equipment_name, cycle_number, time_part, package_type = match.groups()
    sterilization_date = parse_scanner_date(date_str)
    if not sterilization_date:
        return None
    return _payload(
        SCANNER_VERSION,
        cycle_number,
        sterilization_date,
        calculate_expiration_date(sterilization_date).isoformat(),
        equipment_name=equipment_name,
        package_type=package_type,
        time=time_part,
    )


def _parse_compact(content):
    try:
        data = json.loads(content)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    if not all(data.get(key) for key in ('v', 'cn', 'sd', 'ed')):
        return None
    sterilization_date = _valid_iso_date(data['sd'])
    expiration_date = _valid_iso_date(data['ed'])
    if not sterilization_date or not expiration_date:
        return None
    return _payload(
        data['v'],
        data['cn'],
        sterilization_date,
        expiration_date,
        cycle_id_suffix=data.get('id') or '',
        cycle_type=data.get('ct'),
        temperature=data.get('t'),
        pressure=data.get('p'),
        exposure_time=data.get('et'),
        status=data.get('s'),
        equipment_name=data.get('eq'),
    )


def _parse_legacy(content):
    match = LEGACY_RE.match(content)
    if not match:
        return None
    cycle_number, suffix, raw_date = match.groups()
    sterilization_date = f'{raw_date[:4]}-{raw_date[4:6]}-{raw_date[6:8]}'
    try:
        expiration = calculate_expiration_date(sterilization_date)
    except ValueError:
        return None
    return _payload(
        LEGACY_VERSION,
        cycle_number,
        sterilization_date,
        expiration.isoformat(),
        cycle_id_suffix=suffix,
    )


def parse_qr_content(content):
    """
    Parse any supported label payload.

    Tries scanner text, then compact JSON, then the legacy string.
    Returns a payload dict or None when nothing matches.
    """
    if not content:
        return None
    content = content.strip()
    return _parse_scanner(content) or _parse_compact(content) or _parse_legacy(content)
