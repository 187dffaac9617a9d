import base64
import json
import os
import sys
import time

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'dlc_gateway.settings')


@pytest.fixture(autouse=True)
def clear_cache():
    """Reconciliation lock lives in the cache; start every test without it."""
    from django.core.cache import cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def signing_key():
    """Fresh Ed25519 private key standing in for the registry's signing key."""
    return Ed25519PrivateKey.generate()


@pytest.fixture
def public_key_b64(signing_key):
    """Base64 raw public key, as configured in TELNYX_WEBHOOK_PUBLIC_KEY."""
    raw = signing_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
    return base64.b64encode(raw).decode('ascii')


@pytest.fixture
def webhook_public_key(settings, public_key_b64):
    """Configure the webhook public key for the duration of a test."""
    settings.TELNYX_WEBHOOK_PUBLIC_KEY = public_key_b64
    return public_key_b64


@pytest.fixture
def sign_body(signing_key):
    """
    Return a helper producing signed request kwargs for APIClient.post.

    Usage: client.post(url, data=body, content_type='application/json', **sign_body(body))
    """
    def _sign(body, timestamp=None):
        if isinstance(body, dict):
            body = json.dumps(body)
        if isinstance(body, str):
            body = body.encode('utf-8')
        ts = str(int(time.time()) if timestamp is None else timestamp)
        signature = signing_key.sign(f"{ts}|".encode('utf-8') + body)
        return {
            'HTTP_TELNYX_SIGNATURE_ED25519': base64.b64encode(signature).decode('ascii'),
            'HTTP_TELNYX_TIMESTAMP': ts,
        }
    return _sign


@pytest.fixture
def valid_profile():
    """Return the minimal valid tenant profile."""
    return {
        'name': 'Grace Chapel',
        'email': 'pastor@grace.org',
    }


@pytest.fixture
def full_profile():
    """Return a tenant profile with every optional field populated."""
    return {
        'organizationName': '  Grace Chapel  ',
        'contactEmail': 'Pastor@Grace.ORG',
        'ein': '12-3456789',
        'brandPhoneNumber': '+15125550100',
        'streetAddress': '100 Main St',
        'city': 'Austin',
        'state': 'tx',
        'postalCode': '78701',
        'website': 'https://grace.example.org',
        'entityType': 'NON_PROFIT',
        'vertical': 'RELIGION',
    }


@pytest.fixture
def make_record(db):
    """Factory for RegistrationRecord rows."""
    from registrations.models import RegistrationRecord

    counter = {'n': 0}

    def _make(**fields):
        counter['n'] += 1
        fields.setdefault('tenant_id', f"tenant-{counter['n']}")
        fields.setdefault('organization_name', 'Grace Chapel')
        return RegistrationRecord.objects.create(**fields)
    return _make
