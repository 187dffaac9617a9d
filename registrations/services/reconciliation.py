"""
Reconciliation poller.

Backstop for lost webhooks: records waiting on the registry past their
next_check_at are checked directly against the registry API. Approval still
requires campaign provisioning; a verified brand only moves to brand_verified
and triggers the campaign workflow, exactly like the webhook path. Verified
brands whose campaign submission was lost or abandoned are re-triggered once
they have sat untouched for CAMPAIGN_CLAIM_TIMEOUT_MINUTES.
"""
import logging
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError
from django.db.models import F
from django.utils import timezone

from registrations.models import RegistrationRecord
from registrations.services.errors import ConcurrentTransitionError, RegistryError, translate_registry_error
from registrations.services.registry_client import RegistryClient
from registrations.services.transitions import (
    CAMPAIGN_FAILURE_STATUSES,
    apply_transition,
    campaign_substatus_advances,
)
from registrations.services.webhook_router import enqueue_campaign_registration, format_reasons

logger = logging.getLogger(__name__)

Status = RegistrationRecord.Status

LOCK_KEY = 'registrations:reconciliation-lock'


def _due(status: str, id_field: str, now, batch_size: int):
    return list(
        RegistrationRecord.objects.filter(
            status=status,
            next_check_at__isnull=False,
            next_check_at__lte=now,
        )
        .exclude(**{f'{id_field}__isnull': True})
        .exclude(**{id_field: ''})
        .order_by('next_check_at')[:batch_size]
    )


def _reconcile_brand(client: RegistryClient, record: RegistrationRecord, now, summary: dict) -> None:
    result = client.get_brand_status(record.brand_id)
    brand_status = result.get('status')
    identity_status = result.get('identityStatus')
    logger.info(
        f"Tenant {record.tenant_id}: brand {record.brand_id} status={brand_status}, "
        f"identityStatus={identity_status}"
    )

    if identity_status == 'VERIFIED':
        if apply_transition(record, Status.BRAND_VERIFIED, next_check_at=None):
            summary['verified'] += 1
            enqueue_campaign_registration(record)
    elif brand_status == 'REGISTRATION_FAILED' or identity_status == 'FAILED':
        reasons = format_reasons(result.get('failureReasons')) or 'Unknown reason'
        if apply_transition(
            record,
            Status.REJECTED,
            rejection_reason=f"Brand verification failed: {reasons}",
            next_check_at=None,
        ):
            summary['rejected'] += 1
    else:
        apply_transition(
            record,
            next_check_at=now + timedelta(minutes=settings.RECHECK_INTERVAL_MINUTES),
        )
        summary['rescheduled'] += 1


def _reconcile_campaign(client: RegistryClient, record: RegistrationRecord, now, summary: dict) -> None:
    result = client.get_campaign_status(record.campaign_id)
    campaign_status = result.get('campaignStatus') or result.get('status')
    logger.info(
        f"Tenant {record.tenant_id}: campaign {record.campaign_id} status={campaign_status}"
    )

    if campaign_status == 'MNO_PROVISIONED':
        if apply_transition(
            record,
            Status.APPROVED,
            campaign_status=campaign_status,
            next_check_at=None,
        ):
            summary['approved'] += 1
    elif campaign_status in CAMPAIGN_FAILURE_STATUSES:
        reasons = format_reasons(result.get('failureReasons')) or 'Unknown reason'
        if apply_transition(
            record,
            Status.REJECTED,
            campaign_status=campaign_status,
            rejection_reason=f"Campaign rejected at {campaign_status} stage: {reasons}",
            next_check_at=None,
        ):
            summary['rejected'] += 1
    else:
        fields = {'next_check_at': now + timedelta(minutes=settings.RECHECK_INTERVAL_MINUTES)}
        if campaign_status and campaign_substatus_advances(record.campaign_status, campaign_status):
            fields['campaign_status'] = campaign_status
        apply_transition(record, **fields)
        summary['rescheduled'] += 1


def _stalled_campaign_submissions(now, batch_size: int):
    # Verified brands whose campaign submission never started or never finished
    cutoff = now - timedelta(minutes=settings.CAMPAIGN_CLAIM_TIMEOUT_MINUTES)
    return list(
        RegistrationRecord.objects.filter(
            status=Status.BRAND_VERIFIED,
            campaign_id__isnull=True,
            updated_at__lte=cutoff,
        )
        .exclude(brand_id__isnull=True)
        .exclude(brand_id='')
        .order_by('updated_at')[:batch_size]
    )


def _release_campaign_claim(record: RegistrationRecord, now) -> bool:
    """Clear an abandoned submission claim; False if the record moved meanwhile."""
    released = RegistrationRecord.objects.filter(pk=record.pk, version=record.version).update(
        campaign_status=None,
        version=F('version') + 1,
        updated_at=now,
    )
    if released:
        logger.warning(
            f"Tenant {record.tenant_id}: campaign submission stalled since "
            f"{record.updated_at.isoformat()}, re-triggering"
        )
    return bool(released)


def _defer(record: RegistrationRecord, now) -> None:
    try:
        apply_transition(
            record,
            next_check_at=now + timedelta(minutes=settings.RECHECK_INTERVAL_MINUTES),
        )
    except (DatabaseError, ConcurrentTransitionError):
        logger.error(f"Tenant {record.tenant_id}: could not defer next check", exc_info=True)


def reconcile_pending_registrations(
    client: Optional[RegistryClient] = None,
    now=None,
    batch_size: Optional[int] = None,
) -> dict:
    """
    Check overdue pending brands and campaigns against the registry, and
    re-trigger campaign submissions that stalled after brand verification.

    A cache lock keeps overlapping runs from working the same batch. Failures
    on one record are logged and counted, and the record is pushed back by
    RECHECK_INTERVAL_MINUTES so it cannot crowd healthy records out of later
    batches; the batch continues.

    Args:
        client: Registry client (built from settings when omitted)
        now: Reference time (defaults to timezone.now())
        batch_size: Max records per status (defaults to RECONCILIATION_BATCH_SIZE)

    Returns:
        Summary dict with checked, verified, approved, rejected, rescheduled,
        campaigns_requeued and errors counts; 'skipped' is True when another
        run holds the lock
    """
    summary = {
        'checked': 0,
        'verified': 0,
        'approved': 0,
        'rejected': 0,
        'rescheduled': 0,
        'campaigns_requeued': 0,
        'errors': 0,
        'skipped': False,
    }

    if not cache.add(LOCK_KEY, 'locked', timeout=settings.RECONCILIATION_INTERVAL_SECONDS):
        logger.info("Reconciliation already running, skipping this pass")
        summary['skipped'] = True
        return summary

    owns_client = client is None
    if owns_client:
        client = RegistryClient()
    now = now or timezone.now()
    batch_size = batch_size or settings.RECONCILIATION_BATCH_SIZE

    try:
        brand_batch = _due(Status.PENDING, 'brand_id', now, batch_size)
        campaign_batch = _due(Status.CAMPAIGN_PENDING, 'campaign_id', now, batch_size)
        stalled_batch = _stalled_campaign_submissions(now, batch_size)
        logger.info(
            f"Reconciliation: {len(brand_batch)} pending brands, "
            f"{len(campaign_batch)} pending campaigns due for check, "
            f"{len(stalled_batch)} stalled campaign submissions"
        )

        work = [(record, _reconcile_brand) for record in brand_batch]
        work += [(record, _reconcile_campaign) for record in campaign_batch]

        for record, reconcile in work:
            summary['checked'] += 1
            try:
                reconcile(client, record, now, summary)
            except RegistryError as e:
                summary['errors'] += 1
                logger.warning(
                    f"Tenant {record.tenant_id}: registry check failed: {translate_registry_error(e)}"
                )
                _defer(record, now)
            except Exception as e:
                summary['errors'] += 1
                logger.error(
                    f"Tenant {record.tenant_id}: reconciliation failed: {e}",
                    exc_info=True
                )
                _defer(record, now)

        for record in stalled_batch:
            try:
                if _release_campaign_claim(record, now):
                    enqueue_campaign_registration(record)
                    summary['campaigns_requeued'] += 1
            except Exception as e:
                summary['errors'] += 1
                logger.error(
                    f"Tenant {record.tenant_id}: could not re-trigger campaign registration: {e}",
                    exc_info=True
                )
    finally:
        cache.delete(LOCK_KEY)
        if owns_client:
            client.close()

    logger.info(f"Reconciliation summary: {summary}")
    return summary
