"""
Soft-delete filtering and tenant scoping helpers.
"""
import pytest
from django.db.models import Q
from django.utils import timezone

from apps.core.exceptions import NotFoundError
from apps.core.soft_delete import is_not_deleted, with_soft_delete
from apps.core.tenancy import get_scoped_object
from apps.patients.models import Patient


class TestWithSoftDelete:

    def test_empty_filters_only_match_live_rows(self):
        assert with_soft_delete() == Q(deleted_at__isnull=True)

    def test_dict_filters_are_merged(self):
        query = with_soft_delete({'clinic_id': 1})
        assert query == Q(clinic_id=1) & Q(deleted_at__isnull=True)

    def test_q_and_keyword_lookups_are_merged(self):
        query = with_soft_delete(Q(first_name='Ana'), last_name='Ruiz')
        assert query == (Q(first_name='Ana') & Q(last_name='Ruiz')) & Q(deleted_at__isnull=True)

    def test_unsupported_filter_type(self):
        with pytest.raises(TypeError):
            with_soft_delete(['clinic'])


class TestIsNotDeleted:

    @pytest.mark.parametrize('record,expected', [
        ({}, True),
        ({'deleted_at': None}, True),
        ({'deleted_at': '2024-01-01T00:00:00Z'}, False),
    ])
    def test_dict_records(self, record, expected):
        assert is_not_deleted(record) is expected

    def test_object_without_attribute(self):
        assert is_not_deleted(object()) is True


@pytest.mark.django_db
class TestSoftDeleteQueries:

    def test_alive_excludes_deleted(self, make_patient):
        live = make_patient()
        gone = make_patient()
        gone.soft_delete()

        ids = set(Patient.objects.alive().values_list('id', flat=True))
        assert live.id in ids
        assert gone.id not in ids

    def test_soft_delete_keeps_row(self, patient):
        patient.soft_delete()
        patient.refresh_from_db()
        assert patient.deleted_at is not None
        assert patient.deleted_at <= timezone.now()

    def test_scoped_lookup_hides_other_clinic(self, make_patient, clinic, other_clinic):
        foreign = make_patient(patient_clinic=other_clinic)
        with pytest.raises(NotFoundError) as exc_info:
            get_scoped_object(Patient.objects.all(), clinic, 'PATIENT_NOT_FOUND', pk=foreign.id)
        assert exc_info.value.code == 'PATIENT_NOT_FOUND'

    def test_scoped_lookup_hides_deleted(self, patient, clinic):
        patient.soft_delete()
        with pytest.raises(NotFoundError):
            get_scoped_object(Patient.objects.all(), clinic, pk=patient.id)

    def test_scoped_lookup_returns_live_row(self, patient, clinic):
        assert get_scoped_object(Patient.objects.all(), clinic, pk=patient.id) == patient
