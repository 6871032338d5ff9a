"""
Celery tasks for image processing.
"""
import logging
from io import BytesIO

from celery import shared_task
from django.core.files.base import ContentFile
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

THUMBNAIL_SIZE = (300, 300)
THUMBNAIL_QUALITY = 85


@shared_task(name='apps.imaging.tasks.generate_thumbnail')
def generate_thumbnail(image_id):
    """
    Generate a 300x300 JPEG thumbnail for a patient image.

    Args:
        image_id: PatientImage primary key
    """
    from .models import PatientImage

    image = PatientImage.objects.filter(pk=image_id).first()
    if image is None:
        logger.warning('Thumbnail skipped, image %s not found', image_id)
        return f"Image {image_id} not found"

    try:
        with image.image.open('rb') as source:
            img = Image.open(source)
            img.load()
    except (OSError, UnidentifiedImageError):
        logger.exception('Cannot read image %s', image_id)
        return f"Error generating thumbnail for image {image_id}"

    # JPEG has no alpha or palette
    if img.mode not in ('RGB', 'L'):
        img = img.convert('RGB')

    img.thumbnail(THUMBNAIL_SIZE, Image.Resampling.LANCZOS)

    output = BytesIO()
    img.save(output, format='JPEG', quality=THUMBNAIL_QUALITY)

    image.thumbnail.save(f"thumb_{image.id}.jpg", ContentFile(output.getvalue()), save=False)
    image.thumbnail_generated = True
    image.save(update_fields=['thumbnail', 'thumbnail_generated', 'updated_at'])

    return f"Thumbnail generated for image {image_id}"
