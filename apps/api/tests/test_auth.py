"""
JWT login, current user and the bootstrap_clinic command.
"""
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError
from rest_framework import status
from rest_framework.test import APIClient

from apps.authz.models import Role, RoleChoices, User
from apps.core.models import Clinic


@pytest.mark.django_db
class TestTokenLogin:

    def test_token_then_me(self, make_user, clinic):
        make_user(RoleChoices.FRONT_DESK, email='desk@test.com', first_name='Dana')
        client = APIClient()

        response = client.post(
            '/api/auth/token/', {'email': 'desk@test.com', 'password': 'testpass123'}, format='json'
        )
        assert response.status_code == status.HTTP_200_OK
        access = response.json()['access']

        client.credentials(HTTP_AUTHORIZATION=f'Bearer {access}')
        me = client.get('/api/auth/me/')

        assert me.status_code == status.HTTP_200_OK
        data = me.json()['data']
        assert data['email'] == 'desk@test.com'
        assert data['roles'] == ['front_desk']
        assert data['clinic'] == {'id': str(clinic.id), 'name': clinic.name, 'code': 'SMILE'}

    def test_wrong_password(self, make_user):
        make_user(RoleChoices.FRONT_DESK, email='desk@test.com')

        response = APIClient().post(
            '/api/auth/token/', {'email': 'desk@test.com', 'password': 'nope'}, format='json'
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_garbage_bearer_token(self):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION='Bearer not-a-token')

        response = client.get('/api/auth/me/')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()['success'] is False


@pytest.mark.django_db
class TestBootstrapClinic:

    def _run(self, **options):
        out = StringIO()
        args = []
        for key, value in options.items():
            args += [f"--{key.replace('_', '-')}", value]
        call_command('bootstrap_clinic', *args, stdout=out)
        return out.getvalue()

    def test_creates_clinic_roles_and_admin(self):
        output = self._run(
            code='MAIN', name='Main Street Ortho', admin_email='owner@test.com', admin_password='s3cret!'
        )

        clinic = Clinic.objects.get(code='MAIN')
        user = User.objects.get(email='owner@test.com')
        assert user.clinic == clinic
        assert user.check_password('s3cret!')
        assert user.role_names == {'admin'}
        assert Role.objects.count() == len(RoleChoices)
        assert 'Done' in output

    def test_is_idempotent(self):
        options = dict(code='MAIN', name='Main', admin_email='owner@test.com', admin_password='a')
        self._run(**options)
        self._run(**dict(options, admin_password='b'))

        assert Clinic.objects.filter(code='MAIN').count() == 1
        assert User.objects.get(email='owner@test.com').check_password('b')

    def test_user_of_another_clinic(self, make_user, other_clinic):
        make_user(RoleChoices.MANAGER, email='taken@test.com', user_clinic=other_clinic)

        with pytest.raises(CommandError):
            self._run(code='MAIN', name='Main', admin_email='taken@test.com', admin_password='x')
