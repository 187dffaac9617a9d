"""
ASGI config for dlc_gateway project.
"""
import os
from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'dlc_gateway.settings')
application = get_asgi_application()
