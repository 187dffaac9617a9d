"""
Celery configuration for the 10DLC registration gateway.

Beat entries live in settings.CELERY_BEAT_SCHEDULE.
"""
import os
from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'dlc_gateway.settings')

app = Celery('dlc_gateway')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
