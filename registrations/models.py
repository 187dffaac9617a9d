"""
Data models for the 10DLC registration gateway.
"""
from django.conf import settings
from django.db import models


def _default_delivery_rate():
    return settings.DEFAULT_DELIVERY_RATE


class RegistrationRecord(models.Model):
    """
    Per-tenant 10DLC registration state.

    Mutated by the brand and campaign workflows, the webhook router and the
    reconciliation poller. Status changes go through
    registrations.services.transitions.apply_transition so that concurrent
    writers cannot move the status backwards.
    """

    class Status(models.TextChoices):
        NONE = 'none', 'Not registered'
        PENDING = 'pending', 'Pending'
        REJECTED = 'rejected', 'Rejected'
        BRAND_VERIFIED = 'brand_verified', 'Brand verified'
        CAMPAIGN_PENDING = 'campaign_pending', 'Campaign pending'
        APPROVED = 'approved', 'Approved'

    tenant_id = models.CharField(max_length=64, unique=True)
    organization_name = models.CharField(max_length=100, blank=True, default='')
    phone_number = models.CharField(max_length=20, null=True, blank=True, db_index=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.NONE,
        db_index=True
    )
    brand_id = models.CharField(max_length=64, null=True, blank=True)
    tcr_brand_id = models.CharField(max_length=64, null=True, blank=True)
    campaign_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    campaign_status = models.CharField(max_length=32, null=True, blank=True)
    rejection_reason = models.TextField(null=True, blank=True)
    registered_at = models.DateTimeField(null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    next_check_at = models.DateTimeField(null=True, blank=True)
    campaign_suspended = models.BooleanField(default=False)
    campaign_suspended_at = models.DateTimeField(null=True, blank=True)
    campaign_suspended_reason = models.CharField(max_length=100, null=True, blank=True)
    number_assigned_at = models.DateTimeField(null=True, blank=True)
    using_elevated_delivery_profile = models.BooleanField(default=False)
    delivery_rate = models.FloatField(default=_default_delivery_rate)
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'next_check_at'], name='reg_status_next_check_idx'),
            models.Index(fields=['brand_id'], name='reg_brand_id_idx'),
        ]

    def __str__(self):
        return f"Registration {self.tenant_id} - {self.status}"


class WebhookEvent(models.Model):
    """
    A signature-verified webhook delivery, stored before it is processed.

    The row doubles as the durable work-queue entry: process_webhook_event
    loads it by id, and requeue_stale_webhook_events picks up rows that were
    stored but never processed.
    """

    class Kind(models.TextChoices):
        BRAND_UPDATE = 'brand_update', 'Brand update'
        CAMPAIGN_UPDATE = 'campaign_update', 'Campaign update'
        CAMPAIGN_SUSPENSION = 'campaign_suspension', 'Campaign suspension'
        PHONE_NUMBER_UPDATE = 'phone_number_update', 'Phone number update'
        UNKNOWN = 'unknown', 'Unknown'

    class Status(models.TextChoices):
        RECEIVED = 'RECEIVED', 'Received'
        PROCESSED = 'PROCESSED', 'Processed'
        IGNORED = 'IGNORED', 'Ignored'
        FAILED = 'FAILED', 'Failed'

    class Endpoint(models.TextChoices):
        PRIMARY = 'primary', 'Primary'
        FAILOVER = 'failover', 'Failover'

    dedup_key = models.CharField(max_length=128, unique=True)
    kind = models.CharField(max_length=32, choices=Kind.choices, default=Kind.UNKNOWN)
    event_type = models.CharField(max_length=64, null=True, blank=True)
    raw_payload = models.JSONField()
    source_headers = models.JSONField(null=True, blank=True)
    endpoint = models.CharField(max_length=16, choices=Endpoint.choices, default=Endpoint.PRIMARY)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.RECEIVED,
        db_index=True
    )
    attempts = models.PositiveIntegerField(default=0)
    error_message = models.TextField(null=True, blank=True)
    received_at = models.DateTimeField(auto_now_add=True, db_index=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-received_at']
        indexes = [
            models.Index(fields=['status', 'received_at'], name='webhook_status_received_idx'),
        ]

    def __str__(self):
        return f"WebhookEvent {self.id} ({self.kind}) - {self.status}"
