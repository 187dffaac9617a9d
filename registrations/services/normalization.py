"""
Normalization service for tenant brand profiles.
"""
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

# Accepted input keys -> canonical profile keys
PROFILE_ALIASES = {
    'name': 'organization_name',
    'organizationName': 'organization_name',
    'organization_name': 'organization_name',
    'email': 'contact_email',
    'contactEmail': 'contact_email',
    'contact_email': 'contact_email',
    'ein': 'tax_id',
    'taxId': 'tax_id',
    'tax_id': 'tax_id',
    'brandPhoneNumber': 'brand_phone_number',
    'brand_phone_number': 'brand_phone_number',
    'streetAddress': 'street_address',
    'street_address': 'street_address',
    'city': 'city',
    'state': 'state',
    'postalCode': 'postal_code',
    'postal_code': 'postal_code',
    'website': 'website',
    'entityType': 'entity_type',
    'entity_type': 'entity_type',
    'vertical': 'vertical',
}

TAX_ID_PUNCTUATION = re.compile(r'[\s\-]')


def normalize_value(value: Any) -> Any:
    """Trim strings; leave everything else alone."""
    if isinstance(value, str):
        return value.strip()
    return value


def normalize_profile(profile: dict) -> dict:
    """
    Normalizes a tenant brand profile.

    Operations:
    - Map accepted aliases to canonical keys (unknown keys are dropped)
    - Trim whitespace from all string fields; empty strings become missing
    - Lowercase the contact email
    - Uppercase the state code
    - Strip spaces and dashes from the tax id

    Args:
        profile: Profile as supplied by the operator action

    Returns:
        Normalized profile keyed by canonical field names
    """
    if not profile:
        return {}

    normalized = {}
    for key, value in profile.items():
        canonical = PROFILE_ALIASES.get(key)
        if canonical is None:
            logger.debug(f"Ignoring unknown profile field '{key}'")
            continue
        value = normalize_value(value)
        if value is None or value == '':
            continue
        # First alias wins so 'name' and 'organizationName' never fight
        normalized.setdefault(canonical, value)

    for key in ('tax_id', 'postal_code'):
        if isinstance(normalized.get(key), int) and not isinstance(normalized[key], bool):
            normalized[key] = str(normalized[key])

    if isinstance(normalized.get('contact_email'), str):
        normalized['contact_email'] = normalized['contact_email'].lower()

    if isinstance(normalized.get('state'), str):
        normalized['state'] = normalized['state'].upper()

    if isinstance(normalized.get('tax_id'), str):
        normalized['tax_id'] = TAX_ID_PUNCTUATION.sub('', normalized['tax_id'])
        if not normalized['tax_id']:
            del normalized['tax_id']

    logger.debug(f"Normalized profile keys: {sorted(normalized)}")
    return normalized
