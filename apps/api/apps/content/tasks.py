"""
Celery tasks for patient content.
"""
from celery import shared_task


@shared_task(name='apps.content.tasks.process_scheduled_deliveries')
def process_scheduled_deliveries():
    """Daily run: appointment reminder content for tomorrow's visits."""
    from .services import process_scheduled_deliveries as run

    return run()
