"""
Global test fixtures for pytest.

Provides reusable fixtures for API testing:
- Clinics (tenants) and authenticated API clients by role
- Model factories (Patient, provider StaffProfile, Appointment, chairs, lab vendors)
"""
from datetime import timedelta
from itertools import count

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from apps.authz.models import Role, RoleChoices, User, UserRole
from apps.booking.models import Appointment, AppointmentType
from apps.core.models import Clinic
from apps.lab.models import LabVendor
from apps.ops.models import PatientFlowState
from apps.patients.models import Patient
from apps.resources.models import Room, TreatmentChair
from apps.staff.models import StaffProfile

_sequence = count(1)


# ============================================================================
# Clinics
# ============================================================================

@pytest.fixture
def clinic(db):
    return Clinic.objects.create(name='Smile Orthodontics', code='SMILE')


@pytest.fixture
def other_clinic(db):
    """A second tenant; nothing of it may leak into `clinic` responses."""
    return Clinic.objects.create(name='Other Orthodontics', code='OTHER')


# ============================================================================
# Users and API Clients
# ============================================================================

@pytest.fixture
def make_user(db, clinic):
    def _make_user(role, email=None, user_clinic=None, **extra):
        user = User.objects.create_user(
            email=email or f'{role}{next(_sequence)}@test.com',
            password='testpass123',
            clinic=user_clinic or clinic,
            is_active=True,
            **extra
        )
        role_obj, _ = Role.objects.get_or_create(name=role)
        UserRole.objects.create(user=user, role=role_obj)
        return user
    return _make_user


def _client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def api_client():
    """Unauthenticated DRF API client."""
    return APIClient()


@pytest.fixture
def admin_user(make_user):
    return make_user(RoleChoices.ADMIN)


@pytest.fixture
def admin_client(admin_user):
    """Admin has full access to every endpoint of its clinic."""
    return _client_for(admin_user)


@pytest.fixture
def manager_user(make_user):
    return make_user(RoleChoices.MANAGER)


@pytest.fixture
def manager_client(manager_user):
    return _client_for(manager_user)


@pytest.fixture
def provider_user(make_user):
    return make_user(RoleChoices.PROVIDER)


@pytest.fixture
def provider_client(provider_user):
    return _client_for(provider_user)


@pytest.fixture
def front_desk_user(make_user):
    return make_user(RoleChoices.FRONT_DESK)


@pytest.fixture
def front_desk_client(front_desk_user):
    return _client_for(front_desk_user)


@pytest.fixture
def clinical_staff_client(make_user):
    return _client_for(make_user(RoleChoices.CLINICAL_STAFF))


@pytest.fixture
def lab_coordinator_user(make_user):
    return make_user(RoleChoices.LAB_COORDINATOR)


@pytest.fixture
def lab_coordinator_client(lab_coordinator_user):
    return _client_for(lab_coordinator_user)


@pytest.fixture
def other_clinic_client(make_user, other_clinic):
    """Admin of the second clinic."""
    return _client_for(make_user(RoleChoices.ADMIN, user_clinic=other_clinic))


# ============================================================================
# Model Factories
# ============================================================================

@pytest.fixture
def make_patient(db, clinic):
    def _make_patient(patient_clinic=None, **fields):
        n = next(_sequence)
        data = {
            'first_name': 'Maria',
            'last_name': f'Garcia{n}',
            'email': f'patient{n}@example.com',
            'phone': '+15550001000',
        }
        data.update(fields)
        return Patient.objects.create(clinic=patient_clinic or clinic, **data)
    return _make_patient


@pytest.fixture
def patient(make_patient):
    return make_patient()


@pytest.fixture
def make_provider(db, clinic):
    def _make_provider(provider_clinic=None, **fields):
        n = next(_sequence)
        data = {'first_name': 'Lee', 'last_name': f'Park{n}', 'title': 'Orthodontist'}
        data.update(fields)
        return StaffProfile.objects.create(clinic=provider_clinic or clinic, is_provider=True, **data)
    return _make_provider


@pytest.fixture
def provider(make_provider):
    return make_provider()


@pytest.fixture
def appointment_type(db, clinic):
    return AppointmentType.objects.create(
        clinic=clinic,
        code='ADJ',
        name='Adjustment',
        default_duration=30,
    )


@pytest.fixture
def room(db, clinic):
    return Room.objects.create(clinic=clinic, name='Bay A', code='BAY-A')


@pytest.fixture
def make_chair(db, clinic, room):
    def _make_chair(name=None, chair_clinic=None, **fields):
        n = next(_sequence)
        return TreatmentChair.objects.create(
            clinic=chair_clinic or clinic,
            room=room if chair_clinic is None else None,
            name=name or f'Chair {n}',
            code=f'CH-{n}',
            **fields
        )
    return _make_chair


@pytest.fixture
def chair(make_chair):
    return make_chair()


@pytest.fixture
def vendor(db, clinic):
    return LabVendor.objects.create(clinic=clinic, name='Precision Ortho Lab', code='POL')


@pytest.fixture
def make_appointment(db, clinic, patient, provider, appointment_type):
    """
    Appointment with its SCHEDULED flow, starting `start` (default: one
    hour from now) and lasting `duration` minutes.
    """
    def _make_appointment(start=None, duration=30, flow=True, **fields):
        start = start or timezone.now() + timedelta(hours=1)
        data = {
            'patient': patient,
            'provider': provider,
            'appointment_type': appointment_type,
        }
        data.update(fields)
        appointment = Appointment.objects.create(
            clinic=clinic,
            start_time=start,
            end_time=start + timedelta(minutes=duration),
            duration=duration,
            **data
        )
        if flow:
            PatientFlowState.objects.create(
                clinic=clinic,
                appointment=appointment,
                patient=appointment.patient,
                provider=appointment.provider,
                chair=appointment.chair,
                scheduled_at=start,
            )
        return appointment
    return _make_appointment


@pytest.fixture
def appointment(make_appointment):
    return make_appointment()


@pytest.fixture
def media_root(settings, tmp_path):
    """Write uploads under a throwaway directory."""
    settings.MEDIA_ROOT = tmp_path
    return tmp_path
