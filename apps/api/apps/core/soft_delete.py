"""
Soft-delete filtering.

A record is "not deleted" when its `deleted_at` is unset or null. On the
relational store both states are the same column value, so the ORM predicate
is a single `isnull` lookup. The in-memory predicate `is_not_deleted` still
treats a missing attribute/key and an explicit None the same way, since
payloads built from dicts or partial objects can omit the field entirely.
"""
from django.db.models import Q

SOFT_DELETE_FIELD = 'deleted_at'

# Match records that have never been deleted.
SOFT_DELETE_FILTER = Q(**{f'{SOFT_DELETE_FIELD}__isnull': True})

_MISSING = object()


def with_soft_delete(filters=None, **lookups):
    """
    Merge caller filters with the not-deleted predicate.

    Accepts a dict of lookups, a Q object, keyword lookups, or nothing:

        Patient.objects.filter(with_soft_delete({'clinic': clinic}))
        Patient.objects.filter(with_soft_delete(Q(first_name='Ana')))
        Patient.objects.filter(with_soft_delete(clinic=clinic))
    """
    if filters is None:
        query = Q()
    elif isinstance(filters, Q):
        query = filters
    elif isinstance(filters, dict):
        query = Q(**filters)
    else:
        raise TypeError(f'Unsupported filter type: {type(filters).__name__}')

    if lookups:
        query &= Q(**lookups)

    return query & SOFT_DELETE_FILTER


def is_not_deleted(record):
    """Return True when `record` has no deletion timestamp (missing or None)."""
    if isinstance(record, dict):
        value = record.get(SOFT_DELETE_FIELD, _MISSING)
    else:
        value = getattr(record, SOFT_DELETE_FIELD, _MISSING)
    return value is _MISSING or value is None
