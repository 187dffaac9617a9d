"""
Status-change hook for notification collaborators.

registration_status_changed is sent after a guarded transition actually
changes a record's status. Receivers get ``record``, ``old_status``,
``new_status`` and ``reason`` keyword arguments. Email or in-app
notification delivery lives outside this service and connects here.
"""
import logging

from django.dispatch import Signal, receiver

logger = logging.getLogger(__name__)

registration_status_changed = Signal()


@receiver(registration_status_changed)
def log_status_change(sender, record, old_status, new_status, reason=None, **kwargs):
    """Audit-log every status change for the tenant."""
    if reason:
        logger.info(
            f"Tenant {record.tenant_id}: 10DLC status {old_status} -> {new_status} ({reason})"
        )
    else:
        logger.info(f"Tenant {record.tenant_id}: 10DLC status {old_status} -> {new_status}")
