"""
Patient image upload and background thumbnail generation.
"""
from io import BytesIO

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from PIL import Image
from rest_framework import status

from apps.imaging.models import PatientImage
from apps.imaging.tasks import generate_thumbnail

IMAGES = '/api/imaging/images/'


def _png(size=(800, 600), mode='RGBA'):
    buffer = BytesIO()
    Image.new(mode, size, color=(200, 30, 30, 255) if mode == 'RGBA' else 'white').save(buffer, format='PNG')
    return SimpleUploadedFile('intraoral.png', buffer.getvalue(), content_type='image/png')


@pytest.mark.django_db
class TestImageUpload:

    def test_upload_generates_thumbnail(self, front_desk_client, patient, media_root):
        response = front_desk_client.post(
            IMAGES,
            {'patient': str(patient.id), 'category': 'INTRAORAL', 'image': _png()},
            format='multipart',
        )

        assert response.status_code == status.HTTP_201_CREATED
        image = PatientImage.objects.get(pk=response.json()['data']['id'])
        assert image.image.name.startswith(f'imaging/{image.clinic_id}/{patient.id}/')
        assert image.image.name.endswith('.png')
        assert image.thumbnail_generated is True

        with image.thumbnail.open('rb') as thumb:
            rendered = Image.open(thumb)
            assert rendered.format == 'JPEG'
            assert max(rendered.size) == 300

    def test_patient_from_other_clinic(self, front_desk_client, make_patient, other_clinic, media_root):
        stranger = make_patient(patient_clinic=other_clinic)

        response = front_desk_client.post(
            IMAGES,
            {'patient': str(stranger.id), 'category': 'XRAY', 'image': _png()},
            format='multipart',
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'patient' in response.json()['error']['details']

    def test_appointment_must_match_patient(self, front_desk_client, make_patient, appointment, media_root):
        other = make_patient()

        response = front_desk_client.post(
            IMAGES,
            {
                'patient': str(other.id),
                'appointment': str(appointment.id),
                'category': 'EXTRAORAL',
                'image': _png(),
            },
            format='multipart',
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_filter_and_soft_delete(self, front_desk_client, patient, media_root):
        for category in ('INTRAORAL', 'XRAY'):
            front_desk_client.post(
                IMAGES,
                {'patient': str(patient.id), 'category': category, 'image': _png(size=(40, 40))},
                format='multipart',
            )

        xrays = front_desk_client.get(IMAGES, {'patientId': str(patient.id), 'category': 'XRAY'})
        [xray] = xrays.json()['data']['items']

        assert front_desk_client.delete(f"{IMAGES}{xray['id']}/").status_code == status.HTTP_204_NO_CONTENT
        assert front_desk_client.get(IMAGES).json()['data']['total'] == 1


@pytest.mark.django_db
class TestGenerateThumbnail:

    def test_unknown_image(self):
        assert generate_thumbnail('00000000-0000-0000-0000-000000000000').endswith('not found')

    def test_unreadable_file(self, clinic, patient, media_root):
        image = PatientImage(clinic=clinic, patient=patient, category='OTHER')
        image.image.save('broken.jpg', SimpleUploadedFile('broken.jpg', b'not an image'), save=False)
        image.save()

        image.refresh_from_db()
        assert image.thumbnail_generated is False
