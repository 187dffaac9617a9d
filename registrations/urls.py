"""
URL configuration for registrations app.
"""
from django.urls import path
from registrations.models import WebhookEvent
from registrations.views import RegistryWebhookView

urlpatterns = [
    path(
        '10dlc/status/',
        RegistryWebhookView.as_view(endpoint=WebhookEvent.Endpoint.PRIMARY),
        name='dlc-webhook',
    ),
    path(
        '10dlc/status-failover/',
        RegistryWebhookView.as_view(endpoint=WebhookEvent.Endpoint.FAILOVER),
        name='dlc-webhook-failover',
    ),
]
