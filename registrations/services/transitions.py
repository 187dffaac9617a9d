"""
Guarded status transitions for registration records.

The workflows, the webhook router and the reconciliation poller can all write
the same record. Every write goes through apply_transition, which

- refuses to move status backwards in the order
  none < pending < {brand_verified, rejected} < campaign_pending < approved,
- enforces the brand/campaign id invariants,
- writes with UPDATE ... WHERE pk = ? AND version = ?, re-reading and
  re-evaluating when another writer got there first.
"""
import logging
from typing import Optional

from django.conf import settings
from django.db.models import F
from django.utils import timezone

from registrations.models import RegistrationRecord
from registrations.services.errors import ConcurrentTransitionError
from registrations.signals import registration_status_changed

logger = logging.getLogger(__name__)

Status = RegistrationRecord.Status

STATUS_RANK = {
    Status.NONE.value: 0,
    Status.PENDING.value: 1,
    Status.BRAND_VERIFIED.value: 2,
    Status.REJECTED.value: 2,
    Status.CAMPAIGN_PENDING.value: 3,
    Status.APPROVED.value: 4,
}

MAX_CAS_ATTEMPTS = 5

# Campaign sub-statuses in registry pipeline order; failures are handled separately
CAMPAIGN_SUBSTATUS_ORDER = (
    'submitting',
    'submitted',
    'TCR_PENDING',
    'TCR_ACCEPTED',
    'TELNYX_ACCEPTED',
    'MNO_PENDING',
    'MNO_PROVISIONED',
)

CAMPAIGN_FAILURE_STATUSES = ('TCR_FAILED', 'TELNYX_FAILED', 'MNO_REJECTED')
CAMPAIGN_PENDING_STATUSES = ('TCR_PENDING', 'TCR_ACCEPTED', 'TELNYX_ACCEPTED', 'MNO_PENDING')


def is_transition_allowed(current: str, target: str, force: bool = False) -> bool:
    """
    Decide whether a record at ``current`` may move to ``target``.

    approved is terminal for every automatic path, force included.
    """
    current, target = str(current), str(target)
    if current == Status.APPROVED:
        return target == Status.APPROVED
    if force or current == target:
        return True
    # Failure events are authoritative
    if target == Status.REJECTED:
        return True
    if current == Status.REJECTED:
        return STATUS_RANK[target] >= STATUS_RANK[Status.BRAND_VERIFIED.value]
    return STATUS_RANK[target] > STATUS_RANK[current]


def campaign_substatus_advances(current: Optional[str], new: str) -> bool:
    """True unless ``new`` would move the campaign sub-status backwards."""
    if new in CAMPAIGN_FAILURE_STATUSES or not current:
        return True
    if current not in CAMPAIGN_SUBSTATUS_ORDER or new not in CAMPAIGN_SUBSTATUS_ORDER:
        return True
    return CAMPAIGN_SUBSTATUS_ORDER.index(new) >= CAMPAIGN_SUBSTATUS_ORDER.index(current)


def _violates_id_invariants(record: RegistrationRecord, target: str, updates: dict) -> Optional[str]:
    brand_id = updates.get('brand_id', record.brand_id)
    campaign_id = updates.get('campaign_id', record.campaign_id)
    if target in (Status.BRAND_VERIFIED, Status.CAMPAIGN_PENDING, Status.APPROVED) and not brand_id:
        return f"cannot enter {target} without a brand id"
    if target in (Status.CAMPAIGN_PENDING, Status.APPROVED) and not campaign_id:
        return f"cannot enter {target} without a campaign id"
    return None


def apply_transition(
    record: RegistrationRecord,
    status: Optional[str] = None,
    *,
    force: bool = False,
    **fields
) -> bool:
    """
    Apply a status change and/or field updates with compare-and-set.

    Args:
        record: Record to update; refreshed in place on success or lost race
        status: Target status, or None to update fields only
        force: Bypass rank ordering (workflow restarts); never leaves approved
        **fields: Other model fields to write in the same UPDATE

    Returns:
        True if the write was applied, False if it was a stale or invalid
        transition and was skipped

    Raises:
        ConcurrentTransitionError: Lost the race MAX_CAS_ATTEMPTS times
        DatabaseError: Propagated from the ORM
    """
    for attempt in range(MAX_CAS_ATTEMPTS):
        current = str(record.status)
        target = str(status or current)

        if not is_transition_allowed(current, target, force=force):
            logger.info(
                f"Tenant {record.tenant_id}: skipping stale transition {current} -> {target}"
            )
            return False

        updates = dict(fields)

        if 'brand_id' in updates and record.brand_id and updates['brand_id'] != record.brand_id:
            logger.warning(
                f"Tenant {record.tenant_id}: refusing to reassign brand id "
                f"{record.brand_id} -> {updates['brand_id']}"
            )
            updates.pop('brand_id')

        violation = _violates_id_invariants(record, target, updates)
        if violation:
            logger.error(f"Tenant {record.tenant_id}: {violation}")
            return False

        now = timezone.now()
        if target == Status.PENDING and record.registered_at is None:
            updates.setdefault('registered_at', now)
        if target == Status.APPROVED:
            if record.approved_at is None:
                updates.setdefault('approved_at', now)
            updates['using_elevated_delivery_profile'] = True
            updates['delivery_rate'] = settings.ELEVATED_DELIVERY_RATE
        if target != Status.REJECTED and target != current:
            updates['rejection_reason'] = None

        updates['status'] = target
        updates['updated_at'] = now

        rows = RegistrationRecord.objects.filter(
            pk=record.pk, version=record.version
        ).update(version=F('version') + 1, **updates)

        if rows == 1:
            for name, value in updates.items():
                setattr(record, name, value)
            record.version += 1
            if target != current:
                logger.info(f"Tenant {record.tenant_id}: status {current} -> {target}")
                registration_status_changed.send(
                    sender=RegistrationRecord,
                    record=record,
                    old_status=current,
                    new_status=target,
                    reason=updates.get('rejection_reason'),
                )
            return True

        logger.debug(
            f"Tenant {record.tenant_id}: version {record.version} is stale, "
            f"re-reading (attempt {attempt + 1}/{MAX_CAS_ATTEMPTS})"
        )
        record.refresh_from_db()

    raise ConcurrentTransitionError(
        f"Tenant {record.tenant_id}: gave up after {MAX_CAS_ATTEMPTS} conflicting writes"
    )
