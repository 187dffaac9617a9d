"""
Ed25519 signature verification for inbound registry webhooks.

The registry signs ``"<timestamp>|<raw body>"`` with its private key and sends
the base64 signature and the timestamp in the ``telnyx-signature-ed25519`` and
``telnyx-timestamp`` headers.
"""
import base64
import binascii
import logging
import math
import time
from typing import Optional, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from django.conf import settings

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = 'telnyx-signature-ed25519'
TIMESTAMP_HEADER = 'telnyx-timestamp'

DEFAULT_TOLERANCE_SECONDS = 300


def _load_public_key(public_key: str) -> Optional[Ed25519PublicKey]:
    try:
        key_bytes = base64.b64decode(public_key, validate=True)
        return Ed25519PublicKey.from_public_bytes(key_bytes)
    except (binascii.Error, ValueError) as e:
        logger.error(f"Webhook public key is not a valid base64 Ed25519 key: {e}")
        return None


def verify_webhook_signature(
    raw_body: Union[bytes, str],
    signature: Optional[str],
    timestamp: Optional[str],
    public_key: Optional[str],
    now: Optional[float] = None,
    tolerance_seconds: Optional[int] = None,
) -> bool:
    """
    Verify a webhook delivery against the registry's Ed25519 public key.

    Never raises: every failure is logged and reported as False.

    Args:
        raw_body: Exact request body bytes as received
        signature: Base64 signature header value
        timestamp: Decimal seconds since the epoch, as sent in the header
        public_key: Base64 raw 32-byte Ed25519 public key
        now: Current epoch seconds (defaults to time.time())
        tolerance_seconds: Allowed clock skew / replay window
            (defaults to WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS)

    Returns:
        True if the signature matches and the timestamp is fresh
    """
    if not signature or not timestamp:
        logger.warning("Webhook rejected: missing signature or timestamp header")
        return False

    if not public_key:
        logger.error("Webhook rejected: no public key configured")
        return False

    try:
        parsed = float(timestamp)
    except (TypeError, ValueError):
        logger.warning(f"Webhook rejected: timestamp '{timestamp}' is not a number")
        return False
    if not math.isfinite(parsed):
        logger.warning(f"Webhook rejected: timestamp '{timestamp}' is not finite")
        return False
    # Decimal seconds; the fraction is truncated
    ts = int(parsed)

    if tolerance_seconds is None:
        tolerance_seconds = getattr(
            settings, 'WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS', DEFAULT_TOLERANCE_SECONDS
        )
    if now is None:
        now = time.time()

    if abs(now - ts) > tolerance_seconds:
        logger.warning(
            f"Webhook rejected: timestamp {ts} outside {tolerance_seconds}s window "
            f"(skew {int(now - ts)}s)"
        )
        return False

    key = _load_public_key(public_key)
    if key is None:
        return False

    try:
        signature_bytes = base64.b64decode(signature, validate=True)
    except (binascii.Error, ValueError):
        logger.warning("Webhook rejected: signature is not valid base64")
        return False

    if isinstance(raw_body, str):
        raw_body = raw_body.encode('utf-8')
    message = f"{timestamp}|".encode('utf-8') + raw_body

    try:
        key.verify(signature_bytes, message)
    except InvalidSignature:
        logger.warning("Webhook rejected: signature mismatch")
        return False

    logger.debug("Webhook signature verified")
    return True
