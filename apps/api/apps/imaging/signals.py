"""
Imaging signals - queue thumbnail generation on upload.
"""
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import PatientImage
from .tasks import generate_thumbnail


@receiver(post_save, sender=PatientImage)
def on_image_created(sender, instance, created, **kwargs):
    if created and instance.image:
        generate_thumbnail.delay(str(instance.id))
