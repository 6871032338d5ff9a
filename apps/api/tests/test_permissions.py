"""
Role matrix across the API surfaces.
"""
import pytest
from rest_framework import status
from rest_framework.test import APIClient

from apps.authz.models import RoleChoices, User

ALL_ROLES = [choice.value for choice in RoleChoices]


def _client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.mark.django_db
class TestReadAccess:

    @pytest.mark.parametrize('role,url,allowed', [
        (RoleChoices.LAB_COORDINATOR, '/api/patients/', True),
        (RoleChoices.FRONT_DESK, '/api/lab/orders/', True),
        (RoleChoices.LAB_COORDINATOR, '/api/ops/dashboard/day/', False),
        (RoleChoices.CLINICAL_STAFF, '/api/ops/dashboard/day/', True),
        (RoleChoices.LAB_COORDINATOR, '/api/staff/', False),
        (RoleChoices.FRONT_DESK, '/api/staff/', True),
        (RoleChoices.CLINICAL_STAFF, '/api/content/articles/', True),
        (RoleChoices.LAB_COORDINATOR, '/api/content/articles/', False),
    ])
    def test_role_matrix(self, make_user, role, url, allowed):
        response = _client(make_user(role)).get(url)

        expected = status.HTTP_200_OK if allowed else status.HTTP_403_FORBIDDEN
        assert response.status_code == expected

    @pytest.mark.parametrize('role', ALL_ROLES)
    def test_everyone_reads_their_profile(self, make_user, role):
        assert _client(make_user(role)).get('/api/auth/me/').status_code == status.HTTP_200_OK

    def test_user_without_roles_is_denied(self, db, clinic):
        user = User.objects.create_user(email='norole@test.com', password='x', clinic=clinic)

        assert _client(user).get('/api/patients/').status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.django_db
class TestWriteAccess:

    @pytest.mark.parametrize('role,allowed', [
        (RoleChoices.ADMIN, True),
        (RoleChoices.FRONT_DESK, True),
        (RoleChoices.CLINICAL_STAFF, True),
        (RoleChoices.LAB_COORDINATOR, False),
    ])
    def test_patient_create(self, make_user, role, allowed):
        response = _client(make_user(role)).post(
            '/api/patients/', {'first_name': 'Ana', 'last_name': 'Lopez'}, format='json'
        )

        expected = status.HTTP_201_CREATED if allowed else status.HTTP_403_FORBIDDEN
        assert response.status_code == expected

    @pytest.mark.parametrize('role,allowed', [
        (RoleChoices.MANAGER, True),
        (RoleChoices.PROVIDER, False),
        (RoleChoices.FRONT_DESK, False),
    ])
    def test_staff_create(self, make_user, role, allowed):
        response = _client(make_user(role)).post(
            '/api/staff/',
            {'first_name': 'Sam', 'last_name': 'Reyes', 'title': 'Assistant'},
            format='json',
        )

        expected = status.HTTP_201_CREATED if allowed else status.HTTP_403_FORBIDDEN
        assert response.status_code == expected
