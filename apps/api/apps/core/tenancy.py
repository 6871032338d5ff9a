"""
Clinic (tenant) scoping for viewsets.

The clinic always comes from the authenticated user, never from the request
body or query string. Querysets are filtered on it before any lookup, so a
record from another clinic is indistinguishable from a missing one.
"""
from django.core.exceptions import ValidationError

from .exceptions import NotFoundError, PermissionDeniedError
from .soft_delete import SOFT_DELETE_FIELD, with_soft_delete


def get_request_clinic(request):
    """Return the caller's clinic or raise PERMISSION_DENIED."""
    user = getattr(request, 'user', None)
    clinic = getattr(user, 'clinic', None) if user is not None else None
    if clinic is None or not clinic.is_active:
        raise PermissionDeniedError('User is not assigned to an active clinic')
    return clinic


def _is_soft_deletable(model):
    return any(field.name == SOFT_DELETE_FIELD for field in model._meta.concrete_fields)


def get_scoped_object(queryset, clinic, code='NOT_FOUND', message=None, **lookups):
    """
    Fetch one live record inside `clinic` or raise NotFoundError(code).

    Used by services that receive ids from request payloads. A malformed
    id (not a UUID) is treated as a missing record.
    """
    model = queryset.model
    try:
        if _is_soft_deletable(model):
            obj = queryset.filter(with_soft_delete(clinic=clinic, **lookups)).first()
        else:
            obj = queryset.filter(clinic=clinic, **lookups).first()
    except (ValidationError, ValueError):
        obj = None
    if obj is None:
        raise NotFoundError(message or f'{model.__name__} not found', code=code)
    return obj


class ClinicScopedMixin:
    """
    Restrict a viewset to the caller's clinic and to live records.

    Set `soft_delete = False` on viewsets over models without `deleted_at`.
    """
    clinic_field = 'clinic'
    soft_delete = True

    @property
    def clinic(self):
        if not hasattr(self, '_clinic'):
            self._clinic = get_request_clinic(self.request)
        return self._clinic

    def get_queryset(self):
        queryset = super().get_queryset()
        lookups = {self.clinic_field: self.clinic}
        if self.soft_delete:
            return queryset.filter(with_soft_delete(lookups))
        return queryset.filter(**lookups)

    def perform_create(self, serializer):
        serializer.save(**{self.clinic_field: self.clinic})
