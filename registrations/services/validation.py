"""
Validation service for tenant brand profiles.

Runs before any registry call so that malformed tenant data is rejected
locally with a readable reason instead of burning a registry request.
"""
import re
import logging
from typing import Tuple, Optional, NamedTuple, Pattern

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

NAME_MAX_LENGTH = 100
EMAIL_MAX_LENGTH = 100


class FieldRule(NamedTuple):
    label: str
    max_length: Optional[int] = None
    pattern: Optional[Pattern] = None
    format_hint: Optional[str] = None


# Optional profile fields, validated only when present
OPTIONAL_FIELD_RULES = {
    'tax_id': FieldRule(
        'Tax ID', pattern=re.compile(r'^\d{9,20}$'), format_hint='9-20 digits'
    ),
    'brand_phone_number': FieldRule(
        'Brand phone number', max_length=20, pattern=re.compile(r'^\+1\d{10}$'),
        format_hint='+1 followed by 10 digits'
    ),
    'street_address': FieldRule('Street address', max_length=100),
    'city': FieldRule('City', max_length=100),
    'state': FieldRule(
        'State', pattern=re.compile(r'^[A-Z]{2}$'), format_hint='two-letter state code'
    ),
    'postal_code': FieldRule(
        'Postal code', pattern=re.compile(r'^\d{5}(-\d{4})?$'), format_hint='12345 or 12345-6789'
    ),
    'website': FieldRule('Website', max_length=2000),
}


def _check_rule(value, rule: FieldRule) -> Optional[str]:
    text = str(value)
    if rule.max_length is not None and len(text) > rule.max_length:
        return f"{rule.label} cannot exceed {rule.max_length} characters (current: {len(text)})"
    if rule.pattern is not None and not rule.pattern.match(text):
        hint = f" (expected {rule.format_hint})" if rule.format_hint else ''
        return f"{rule.label} format is invalid{hint}"
    return None


def validate_profile(profile: dict) -> Tuple[bool, Optional[str]]:
    """
    Validates a normalized brand profile.

    Rules:
    1. organization_name required, 1-100 characters
    2. contact_email required, at most 100 characters, address-shaped
    3. Optional fields are checked against OPTIONAL_FIELD_RULES only if present

    Args:
        profile: Normalized profile (see normalization.normalize_profile)

    Returns:
        Tuple of (is_valid, error_detail)
        - is_valid: True if the profile may be submitted to the registry
        - error_detail: First failing rule, None otherwise
    """
    if not profile:
        logger.debug("Validation failed: empty profile")
        return False, "Organization name is required"

    name = profile.get('organization_name')
    if not name or not isinstance(name, str):
        logger.debug("Validation failed: missing organization name")
        return False, "Organization name is required"
    if len(name) > NAME_MAX_LENGTH:
        logger.debug("Validation failed: organization name too long")
        return False, f"Organization name cannot exceed {NAME_MAX_LENGTH} characters (current: {len(name)})"

    email = profile.get('contact_email')
    if not email or not isinstance(email, str):
        logger.debug("Validation failed: missing contact email")
        return False, "Email is required"
    if len(email) > EMAIL_MAX_LENGTH:
        logger.debug("Validation failed: contact email too long")
        return False, f"Email cannot exceed {EMAIL_MAX_LENGTH} characters (current: {len(email)})"
    if not EMAIL_PATTERN.match(email):
        logger.debug(f"Validation failed: email '{email}' is not address-shaped")
        return False, "Email format is invalid"

    for field, rule in OPTIONAL_FIELD_RULES.items():
        value = profile.get(field)
        if value is None or value == '':
            continue
        error = _check_rule(value, rule)
        if error:
            logger.debug(f"Validation failed on '{field}': {error}")
            return False, error

    logger.debug("Validation passed")
    return True, None
