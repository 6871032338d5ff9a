"""
Patient endpoints: envelopes, tenant isolation and soft delete.
"""
import pytest
from rest_framework import status

from apps.core.models import AuditLog
from apps.patients.models import Patient

ENDPOINT = '/api/patients/'


@pytest.mark.django_db
class TestPatientEnvelope:

    def test_list_is_paginated_envelope(self, admin_client, make_patient):
        make_patient()
        make_patient()

        response = admin_client.get(ENDPOINT, {'pageSize': 1})

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body['success'] is True
        assert body['data']['total'] == 2
        assert body['data']['page'] == 1
        assert body['data']['pageSize'] == 1
        assert body['data']['totalPages'] == 2
        assert len(body['data']['items']) == 1

    def test_create_wraps_created_patient(self, front_desk_client, clinic):
        response = front_desk_client.post(
            ENDPOINT,
            {'first_name': 'Ana', 'last_name': 'Ruiz', 'email': 'ana@example.com'},
            format='json',
        )

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body['success'] is True
        assert body['data']['full_name'] == 'Ana Ruiz'
        assert Patient.objects.get(id=body['data']['id']).clinic == clinic

    def test_missing_fields_use_error_envelope(self, front_desk_client):
        response = front_desk_client.post(ENDPOINT, {'first_name': 'Ana'}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        body = response.json()
        assert body['success'] is False
        assert body['error']['code'] == 'VALIDATION_ERROR'
        assert 'last_name' in body['error']['details']

    def test_anonymous_is_unauthorized(self, api_client):
        response = api_client.get(ENDPOINT)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()['error']['code'] == 'UNAUTHORIZED'


@pytest.mark.django_db
class TestPatientIsolation:

    def test_other_clinic_patients_are_not_listed(self, admin_client, make_patient, other_clinic):
        mine = make_patient()
        make_patient(patient_clinic=other_clinic)

        response = admin_client.get(ENDPOINT)

        ids = [item['id'] for item in response.json()['data']['items']]
        assert ids == [str(mine.id)]

    def test_other_clinic_patient_is_not_found(self, other_clinic_client, patient):
        response = other_clinic_client.get(f'{ENDPOINT}{patient.id}/')

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()['error']['code'] == 'NOT_FOUND'

    def test_user_without_clinic_is_denied(self, make_user, api_client):
        user = make_user('admin')
        user.clinic = None
        user.save()
        api_client.force_authenticate(user=user)

        response = api_client.get(ENDPOINT)

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()['error']['code'] == 'PERMISSION_DENIED'


@pytest.mark.django_db
class TestPatientSoftDelete:

    def test_delete_marks_row_and_hides_it(self, admin_client, patient):
        response = admin_client.delete(f'{ENDPOINT}{patient.id}/')

        assert response.status_code == status.HTTP_204_NO_CONTENT
        patient.refresh_from_db()
        assert patient.deleted_at is not None

        assert admin_client.get(f'{ENDPOINT}{patient.id}/').status_code == status.HTTP_404_NOT_FOUND
        assert AuditLog.objects.filter(entity_type='Patient', entity_id=str(patient.id)).exists()
