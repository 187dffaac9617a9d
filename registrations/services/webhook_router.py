"""
Webhook event router.

Receives signature-verified, shape-validated registry notifications (see
registrations.serializers) and applies them to the matching registration
record through guarded transitions. Unknown records and unknown event types
are logged and dropped; persistence failures are logged with context and
re-raised to the task wrapper.
"""
import json
import logging
from typing import Optional

from django.db import DatabaseError
from django.utils import timezone

from registrations.models import RegistrationRecord, WebhookEvent
from registrations.services.transitions import (
    CAMPAIGN_FAILURE_STATUSES,
    CAMPAIGN_PENDING_STATUSES,
    apply_transition,
    campaign_substatus_advances,
)

logger = logging.getLogger(__name__)

Status = RegistrationRecord.Status
Kind = WebhookEvent.Kind


def mask_phone(phone_number: Optional[str]) -> str:
    """Log-safe phone number (last four digits)."""
    if not phone_number:
        return 'N/A'
    return f"***{str(phone_number)[-4:]}"


def format_reasons(reasons) -> str:
    """Flatten registry failure reasons (string, list or object) into one line."""
    if not reasons:
        return ''
    if isinstance(reasons, str):
        return reasons
    if isinstance(reasons, (list, tuple)):
        parts = []
        for item in reasons:
            if isinstance(item, dict):
                parts.append(str(item.get('description') or item.get('reason') or json.dumps(item)))
            else:
                parts.append(str(item))
        return '; '.join(p for p in parts if p)
    if isinstance(reasons, dict):
        return str(reasons.get('description') or reasons.get('reason') or json.dumps(reasons))
    return str(reasons)


def enqueue_campaign_registration(record: RegistrationRecord) -> None:
    # Imported here: tasks imports this module
    from registrations.tasks import register_campaign

    logger.info(f"Tenant {record.tenant_id}: brand verified, queueing campaign registration")
    register_campaign.delay(record.tenant_id)


def handle_brand_update(data: dict) -> None:
    """
    Brand lifecycle events, looked up by brand id.

    BRAND_ADD -> pending; identity VERIFIED -> brand_verified plus campaign
    submission; UNVERIFIED -> pending (never regressing); FAILED -> rejected.
    """
    brand_id = data['brandId']
    event_type = data.get('eventType')
    identity_status = data.get('brandIdentityStatus')
    tcr_brand_id = data.get('tcrBrandId')

    logger.info(
        f"Brand update: brandId={brand_id}, eventType={event_type}, "
        f"identityStatus={identity_status or 'N/A'}"
    )

    record = RegistrationRecord.objects.filter(brand_id=brand_id).first()
    if record is None:
        logger.warning(f"Brand {brand_id} not found - webhook may belong to another system")
        return

    extra = {}
    if tcr_brand_id and not record.tcr_brand_id:
        extra['tcr_brand_id'] = tcr_brand_id

    try:
        if event_type == 'BRAND_ADD':
            apply_transition(record, Status.PENDING, **extra)

        elif event_type == 'BRAND_IDENTITY_STATUS_UPDATE' and identity_status:
            if identity_status == 'VERIFIED':
                if apply_transition(record, Status.BRAND_VERIFIED, **extra):
                    enqueue_campaign_registration(record)
            elif identity_status == 'UNVERIFIED':
                apply_transition(record, Status.PENDING, **extra)
            elif identity_status == 'FAILED':
                description = data.get('description') or 'Unknown reason'
                apply_transition(
                    record,
                    Status.REJECTED,
                    rejection_reason=f"Brand verification failed: {description}",
                    **extra
                )
            else:
                logger.info(f"Brand {brand_id} identity status {identity_status} - no action needed")

        elif event_type == 'BRAND_IDENTITY_VET_UPDATE':
            logger.info(f"Brand {brand_id} vetting update: {data.get('description') or 'Unknown change'}")

        else:
            logger.info(f"Brand {brand_id}: unhandled brand event type {event_type} - no action taken")

    except DatabaseError as e:
        logger.error(
            f"Database error applying brand update: tenant={record.tenant_id}, "
            f"brandId={brand_id}, eventType={event_type}: {e}",
            exc_info=True
        )
        raise


def handle_campaign_update(data: dict) -> None:
    """
    Campaign review progress, looked up by campaign id with brand id fallback.

    MNO_PROVISIONED approves the tenant; failure stages reject it; intermediate
    stages keep it at campaign_pending while the sub-status only moves forward.
    """
    campaign_id = data['campaignId']
    brand_id = data.get('brandId')
    campaign_status = data['campaignStatus']

    logger.info(
        f"Campaign update: campaignId={campaign_id}, brandId={brand_id}, status={campaign_status}"
    )

    record = RegistrationRecord.objects.filter(campaign_id=campaign_id).first()
    if record is None and brand_id:
        record = RegistrationRecord.objects.filter(brand_id=brand_id).first()
    if record is None:
        logger.info(f"Campaign {campaign_id} (brand {brand_id}) not found in local database")
        return

    if record.campaign_id and record.campaign_id != campaign_id:
        logger.warning(
            f"Tenant {record.tenant_id}: campaign event for {campaign_id} does not match "
            f"stored campaign {record.campaign_id} - dropping"
        )
        return

    try:
        if campaign_status == 'MNO_PROVISIONED':
            if apply_transition(
                record,
                Status.APPROVED,
                campaign_id=campaign_id,
                campaign_status=campaign_status,
            ):
                logger.info(f"Tenant {record.tenant_id}: campaign {campaign_id} approved and provisioned")

        elif campaign_status in CAMPAIGN_FAILURE_STATUSES:
            reasons = format_reasons(data.get('failureReasons')) or data.get('reason') or 'Unknown reason'
            apply_transition(
                record,
                Status.REJECTED,
                campaign_id=campaign_id,
                campaign_status=campaign_status,
                rejection_reason=f"Campaign rejected at {campaign_status} stage: {reasons}",
            )

        elif campaign_status in CAMPAIGN_PENDING_STATUSES:
            fields = {'campaign_id': campaign_id}
            if campaign_substatus_advances(record.campaign_status, campaign_status):
                fields['campaign_status'] = campaign_status
            else:
                logger.info(
                    f"Tenant {record.tenant_id}: ignoring older campaign sub-status "
                    f"{campaign_status} (current {record.campaign_status})"
                )
            apply_transition(record, Status.CAMPAIGN_PENDING, **fields)

        else:
            logger.info(f"Campaign {campaign_id}: unhandled status {campaign_status} - no action taken")

    except DatabaseError as e:
        logger.error(
            f"Database error applying campaign update: tenant={record.tenant_id}, "
            f"campaignId={campaign_id}, status={campaign_status}: {e}",
            exc_info=True
        )
        raise


def handle_campaign_suspension(data: dict) -> None:
    """Dormancy flags the campaign as suspended without touching status."""
    campaign_id = data['campaignId']
    status = data['status']

    logger.warning(
        f"Campaign suspension: campaignId={campaign_id}, status={status}, "
        f"reason={data.get('description') or 'Unknown'}"
    )

    record = RegistrationRecord.objects.filter(campaign_id=campaign_id).first()
    if record is None:
        logger.info(f"Campaign {campaign_id} not found in local database")
        return

    try:
        apply_transition(
            record,
            campaign_suspended=True,
            campaign_suspended_at=timezone.now(),
            campaign_suspended_reason=status,
        )
        logger.warning(
            f"Tenant {record.tenant_id}: campaign {campaign_id} marked {status}; "
            f"re-assign the phone number to reactivate"
        )
    except DatabaseError as e:
        logger.error(
            f"Database error flagging suspension: tenant={record.tenant_id}, "
            f"campaignId={campaign_id}: {e}",
            exc_info=True
        )
        raise


def handle_phone_number_update(data: dict) -> None:
    """Number-to-campaign assignment events, looked up by phone number."""
    phone_number = data['phoneNumber']
    event_type = data['eventType']
    campaign_id = data.get('campaignId')
    status = data.get('status')

    logger.info(
        f"Phone number update: number={mask_phone(phone_number)}, campaign={campaign_id}, "
        f"eventType={event_type}, status={status}"
    )

    record = RegistrationRecord.objects.filter(phone_number=phone_number).first()
    if record is None:
        logger.info(f"Phone number {mask_phone(phone_number)} not found in local database")
        return

    try:
        if event_type == 'ASSIGNMENT':
            if status == 'success':
                fields = {
                    'number_assigned_at': timezone.now(),
                    'campaign_suspended': False,
                    'campaign_suspended_at': None,
                    'campaign_suspended_reason': None,
                }
                if campaign_id and not record.campaign_id:
                    fields['campaign_id'] = campaign_id
                apply_transition(record, **fields)
                logger.info(f"Tenant {record.tenant_id}: number assigned to campaign {campaign_id}")
            else:
                reasons = '; '.join(data.get('reasons') or []) or data.get('reason') or 'Unknown error'
                apply_transition(record, rejection_reason=f"Number assignment failed: {reasons}")
                logger.warning(f"Tenant {record.tenant_id}: number assignment failed: {reasons}")

        elif event_type == 'DELETION':
            apply_transition(record, number_assigned_at=None)
            logger.info(f"Tenant {record.tenant_id}: number unassigned from campaign")

        elif event_type == 'STATUS_UPDATE':
            logger.info(f"Tenant {record.tenant_id}: number status update {status}")

        else:
            logger.info(f"Unhandled phone number event type {event_type} - no action taken")

    except DatabaseError as e:
        logger.error(
            f"Database error applying phone number update: tenant={record.tenant_id}, "
            f"number={mask_phone(phone_number)}, eventType={event_type}: {e}",
            exc_info=True
        )
        raise


HANDLERS = {
    Kind.BRAND_UPDATE.value: handle_brand_update,
    Kind.CAMPAIGN_UPDATE.value: handle_campaign_update,
    Kind.CAMPAIGN_SUSPENSION.value: handle_campaign_suspension,
    Kind.PHONE_NUMBER_UPDATE.value: handle_phone_number_update,
}


def route_event(kind: str, data: dict) -> bool:
    """
    Dispatch a validated event to its handler.

    Returns:
        True if a handler ran, False for unknown kinds
    """
    handler = HANDLERS.get(str(kind))
    if handler is None:
        logger.info(f"No handler for webhook kind '{kind}' - ignoring")
        return False
    handler(data)
    return True
