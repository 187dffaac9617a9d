"""
Celery tasks for 10DLC registration workflows and webhook processing.
"""
import logging
from datetime import timedelta
from typing import Optional

from celery import shared_task
from django.conf import settings
from django.db import DatabaseError
from django.db.models import F, Q
from django.utils import timezone

from registrations.models import RegistrationRecord, WebhookEvent
from registrations.serializers import validate_event
from registrations.services import reconciliation
from registrations.services.errors import RegistryError, translate_registry_error
from registrations.services.mapping import build_brand_request, build_campaign_request
from registrations.services.normalization import normalize_profile
from registrations.services.registry_client import RegistryClient
from registrations.services.transitions import apply_transition
from registrations.services.validation import validate_profile
from registrations.services.webhook_router import route_event

logger = logging.getLogger(__name__)

Status = RegistrationRecord.Status

CAMPAIGN_CLAIM_MARKER = 'submitting'


def start_registration(tenant_id: str, profile: dict, phone_number: Optional[str] = None):
    """
    Entry point for the operator action (e.g. a tenant buying a number).

    Returns:
        Celery AsyncResult for the queued brand registration
    """
    logger.info(f"Queueing 10DLC brand registration for tenant {tenant_id}")
    return register_brand.delay(tenant_id, profile, phone_number)


@shared_task(bind=True)
def register_brand(self, tenant_id: str, profile: dict, phone_number: Optional[str] = None):
    """
    Register the tenant's brand with the registry.

    Not auto-retried: resubmitting after an ambiguous failure could create a
    second brand. Registry retries happen inside the client.

    Workflow:
    1. Load or create the tenant's record; skip if it already has a brand
    2. Normalize the profile
    3. Validate; on failure persist rejected, no registry call
    4. Submit the brand
    5. On registry failure persist rejected with a translated reason
    6. On success persist pending and schedule the first reconciliation check

    Args:
        tenant_id: Owning tenant
        profile: Tenant brand profile (see normalization.PROFILE_ALIASES)
        phone_number: E.164 number the tenant sends from

    Returns:
        Resulting registration status
    """
    # 1. Load or create the record
    record, created = RegistrationRecord.objects.get_or_create(tenant_id=tenant_id)
    logger.info(
        f"Brand registration for tenant {tenant_id} "
        f"({'new record' if created else f'current status: {record.status}'})"
    )

    if record.brand_id or record.status == Status.APPROVED:
        logger.info(
            f"Tenant {tenant_id} already has brand {record.brand_id} "
            f"(status {record.status}), skipping brand registration"
        )
        return record.status

    # 2. Normalize
    normalized = normalize_profile(profile)
    organization_name = str(normalized.get('organization_name', ''))[:100]

    base_fields = {'organization_name': organization_name}
    if phone_number:
        base_fields['phone_number'] = phone_number

    # 3. Validate
    is_valid, error_detail = validate_profile(normalized)
    if not is_valid:
        apply_transition(
            record,
            Status.REJECTED,
            rejection_reason=f"Validation error: {error_detail}",
            **base_fields
        )
        logger.info(f"Tenant {tenant_id} REJECTED before submission: {error_detail}")
        return record.status

    # 4. Submit the brand
    brand_request = build_brand_request(normalized)
    try:
        with RegistryClient() as client:
            response = client.submit_brand(brand_request)
    except RegistryError as e:
        reason = translate_registry_error(e)
        apply_transition(record, Status.REJECTED, rejection_reason=reason, **base_fields)
        logger.error(f"Tenant {tenant_id} brand registration failed: {reason}")
        return record.status

    # 5. Registry accepted the request but returned no id
    brand_id = response.get('brandId')
    if not brand_id:
        apply_transition(
            record,
            Status.REJECTED,
            rejection_reason="No brand ID returned from registry",
            **base_fields
        )
        logger.error(f"Tenant {tenant_id}: no brand ID in registry response {response}")
        return record.status

    # 6. Persist pending
    try:
        apply_transition(
            record,
            Status.PENDING,
            force=True,
            brand_id=brand_id,
            tcr_brand_id=response.get('tcrBrandId'),
            next_check_at=timezone.now() + timedelta(minutes=settings.FIRST_CHECK_DELAY_MINUTES),
            **base_fields
        )
    except DatabaseError as e:
        logger.error(
            f"Failed to persist brand {brand_id} for tenant {tenant_id} after successful "
            f"registry submission: {e}",
            exc_info=True
        )
        raise

    logger.info(f"Tenant {tenant_id}: brand {brand_id} submitted, awaiting verification")
    return record.status


@shared_task(bind=True)
def register_campaign(self, tenant_id: str):
    """
    Register the NOTIFICATIONS campaign for a verified brand.

    Concurrent triggers (webhook and poller) submit at most once: the record
    is claimed with a conditional update before the registry call. A claim
    older than CAMPAIGN_CLAIM_TIMEOUT_MINUTES is treated as abandoned.

    Args:
        tenant_id: Owning tenant

    Returns:
        Resulting registration status, or None if nothing was submitted
    """
    try:
        record = RegistrationRecord.objects.get(tenant_id=tenant_id)
    except RegistrationRecord.DoesNotExist:
        logger.error(f"Campaign registration: tenant {tenant_id} has no registration record")
        return None

    if not record.brand_id:
        logger.error(
            f"Campaign registration for tenant {tenant_id} triggered without a brand ID"
        )
        return None

    # Claim the record so only one worker submits
    claimed = (
        RegistrationRecord.objects
        .filter(pk=record.pk, status__in=[Status.BRAND_VERIFIED, Status.REJECTED])
        .filter(
            ~Q(campaign_status=CAMPAIGN_CLAIM_MARKER)
            | Q(updated_at__lte=timezone.now() - timedelta(minutes=settings.CAMPAIGN_CLAIM_TIMEOUT_MINUTES))
        )
        .update(
            campaign_status=CAMPAIGN_CLAIM_MARKER,
            version=F('version') + 1,
            updated_at=timezone.now(),
        )
    )
    if not claimed:
        logger.info(
            f"Tenant {tenant_id}: campaign not submitted (status {record.status}, "
            f"campaign status {record.campaign_status})"
        )
        return None

    record.refresh_from_db()
    campaign_request = build_campaign_request(
        record.brand_id, record.organization_name or record.tenant_id
    )

    try:
        with RegistryClient() as client:
            response = client.submit_campaign(campaign_request)
    except RegistryError as e:
        reason = translate_registry_error(e)
        apply_transition(record, Status.REJECTED, rejection_reason=reason, campaign_status=None)
        logger.error(f"Tenant {tenant_id} campaign registration failed: {reason}")
        return record.status
    except Exception:
        apply_transition(record, campaign_status=None)
        logger.error(f"Tenant {tenant_id}: unexpected error submitting campaign", exc_info=True)
        raise

    campaign_id = response.get('campaignId')
    if not campaign_id:
        apply_transition(
            record,
            Status.REJECTED,
            rejection_reason="No campaign ID returned from registry",
            campaign_status=None,
        )
        logger.error(f"Tenant {tenant_id}: no campaign ID in registry response {response}")
        return record.status

    try:
        apply_transition(
            record,
            Status.CAMPAIGN_PENDING,
            campaign_id=campaign_id,
            campaign_status='submitted',
            next_check_at=timezone.now() + timedelta(minutes=settings.RECHECK_INTERVAL_MINUTES),
        )
    except DatabaseError as e:
        logger.error(
            f"Failed to persist campaign {campaign_id} for tenant {tenant_id} after successful "
            f"registry submission: {e}",
            exc_info=True
        )
        raise

    logger.info(f"Tenant {tenant_id}: campaign {campaign_id} submitted, pending carrier approval")
    return record.status


@shared_task(
    bind=True,
    autoretry_for=(DatabaseError,),
    retry_backoff=30,  # Exponential backoff starting at 30s
    retry_backoff_max=480,  # Max backoff of 480s (8 minutes)
    max_retries=5,
    retry_jitter=False
)
def process_webhook_event(self, event_id: int):
    """
    Apply a stored webhook event to registration state.

    Workflow:
    1. Load the stored event; skip if already handled
    2. Re-validate the payload shape
    3. Dispatch to the router
    4. Mark PROCESSED (or IGNORED for unknown kinds)

    Database errors are retried with backoff; anything else marks the event
    FAILED and is re-raised.

    Args:
        event_id: ID of the WebhookEvent to process
    """
    try:
        event = WebhookEvent.objects.get(id=event_id)
    except WebhookEvent.DoesNotExist:
        logger.error(f"Webhook event {event_id} not found in database")
        raise

    if event.status in (WebhookEvent.Status.PROCESSED, WebhookEvent.Status.IGNORED):
        logger.info(f"Webhook event {event_id} already {event.status}, skipping")
        return event.status

    WebhookEvent.objects.filter(pk=event.pk).update(attempts=F('attempts') + 1)
    logger.info(f"Processing webhook event {event_id} ({event.kind}, {event.event_type})")

    try:
        kind, data = validate_event(event.raw_payload)
        handled = route_event(kind, data)

        event.status = WebhookEvent.Status.PROCESSED if handled else WebhookEvent.Status.IGNORED
        event.processed_at = timezone.now()
        event.error_message = None
        event.save(update_fields=['status', 'processed_at', 'error_message'])
        logger.info(f"Webhook event {event_id} {event.status}")
        return event.status

    except DatabaseError as e:
        if self.request.retries >= self.max_retries:
            _mark_failed(event_id, f"Max retries exhausted: {e}")
        logger.warning(
            f"Webhook event {event_id}: database error, will retry "
            f"(attempt {self.request.retries + 1}/{self.max_retries + 1}): {e}"
        )
        raise

    except Exception as e:
        _mark_failed(event_id, str(e))
        logger.error(f"Webhook event {event_id} FAILED: {e}", exc_info=True)
        raise


def _mark_failed(event_id: int, message: str) -> None:
    WebhookEvent.objects.filter(pk=event_id).update(
        status=WebhookEvent.Status.FAILED,
        error_message=message,
    )


@shared_task
def requeue_stale_webhook_events():
    """
    Re-enqueue events stored but never processed (lost broker message,
    worker restart).

    Returns:
        Number of events re-enqueued
    """
    cutoff = timezone.now() - timedelta(seconds=settings.WEBHOOK_REQUEUE_AFTER_SECONDS)
    stale_ids = list(
        WebhookEvent.objects.filter(
            status=WebhookEvent.Status.RECEIVED,
            received_at__lte=cutoff,
        ).values_list('id', flat=True)
    )
    for event_id in stale_ids:
        process_webhook_event.delay(event_id)

    if stale_ids:
        logger.warning(f"Re-enqueued {len(stale_ids)} stale webhook events: {stale_ids}")
    return len(stale_ids)


@shared_task
def reconcile_pending_registrations():
    """Beat entry point for the reconciliation poller."""
    return reconciliation.reconcile_pending_registrations()
