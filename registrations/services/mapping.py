"""
Mapping service for building registry brand and campaign requests.
"""
import logging
from typing import Tuple

from django.conf import settings

logger = logging.getLogger(__name__)

SUPPORTED_ENTITY_TYPES = (
    'NON_PROFIT',
    'PRIVATE_CORPORATION',
    'PUBLIC_CORPORATION',
    'GOVERNMENT_ENTITY',
)

# Declared categories the registry does not accept verbatim
VERTICAL_ALIASES = {
    'RELIGION': 'NGO',
}

CAMPAIGN_USECASE = 'NOTIFICATIONS'

OPTIN_KEYWORDS = 'START,JOIN'
OPTIN_MESSAGE = 'You have been added to our mailing list. Reply STOP to unsubscribe.'
OPTOUT_KEYWORDS = 'STOP,UNSUBSCRIBE'
OPTOUT_MESSAGE = 'You have been unsubscribed. You will no longer receive messages from us.'
HELP_KEYWORDS = 'HELP,INFO'
HELP_MESSAGE = 'For help, please visit our website or contact support.'

SAMPLE_MESSAGES = (
    'Reminder: our weekly meeting starts at 10 AM this Sunday.',
    'Community event this weekend. Bring your family!',
    'Schedule update: Wednesday evening session moved to 6 PM.',
    'Volunteer opportunity: help us with community outreach this month.',
    'Your contribution history is now available online.',
)


def webhook_urls() -> Tuple[str, str]:
    """
    Callback URLs the registry notifies about brand and campaign changes.

    Returns:
        Tuple of (primary_url, failover_url)
    """
    base_url = settings.WEBHOOK_BASE_URL.rstrip('/')
    return (
        f'{base_url}/api/webhooks/10dlc/status',
        f'{base_url}/api/webhooks/10dlc/status-failover',
    )


def resolve_entity_type(entity_type) -> str:
    """Return a supported entity type, falling back to DLC_DEFAULT_ENTITY_TYPE."""
    if isinstance(entity_type, str) and entity_type.upper() in SUPPORTED_ENTITY_TYPES:
        return entity_type.upper()
    if entity_type:
        logger.warning(f"Unsupported entity type '{entity_type}', using default")
    return settings.DLC_DEFAULT_ENTITY_TYPE


def resolve_vertical(vertical) -> str:
    """Map a declared category onto a registry vertical (RELIGION -> NGO)."""
    if not isinstance(vertical, str) or not vertical.strip():
        return settings.DLC_DEFAULT_VERTICAL
    vertical = vertical.strip().upper()
    return VERTICAL_ALIASES.get(vertical, vertical)


def build_brand_request(profile: dict) -> dict:
    """
    Maps a normalized, validated profile to the registry brand request.

    Optional profile fields are only sent when present.

    Args:
        profile: Normalized profile

    Returns:
        Request body for POST /10dlc/brand
    """
    primary_url, failover_url = webhook_urls()
    name = profile['organization_name']

    request = {
        'entityType': resolve_entity_type(profile.get('entity_type')),
        'displayName': name,
        'companyName': name,
        'country': 'US',
        'email': profile['contact_email'],
        'vertical': resolve_vertical(profile.get('vertical')),
        'webhookURL': primary_url,
        'webhookFailoverURL': failover_url,
    }

    optional_fields = {
        'tax_id': 'ein',
        'brand_phone_number': 'phone',
        'street_address': 'street',
        'city': 'city',
        'state': 'state',
        'postal_code': 'postalCode',
        'website': 'website',
    }
    for profile_key, request_key in optional_fields.items():
        value = profile.get(profile_key)
        if value:
            request[request_key] = value

    logger.debug(f"Mapped brand request with {len(request)} fields")
    return request


def build_campaign_request(brand_id: str, organization_name: str) -> dict:
    """
    Builds the NOTIFICATIONS campaign declaration for a verified brand.

    Args:
        brand_id: Registry brand id
        organization_name: Used in the campaign description

    Returns:
        Request body for POST /10dlc/campaignBuilder
    """
    request = {
        'brandId': brand_id,
        'description': f'{organization_name} Notification Campaign',
        'usecase': CAMPAIGN_USECASE,
        'termsAndConditions': True,
        'subscriberOptin': True,
        'optinKeywords': OPTIN_KEYWORDS,
        'optinMessage': OPTIN_MESSAGE,
        'subscriberOptout': True,
        'optoutKeywords': OPTOUT_KEYWORDS,
        'optoutMessage': OPTOUT_MESSAGE,
        'subscriberHelp': True,
        'helpKeywords': HELP_KEYWORDS,
        'helpMessage': HELP_MESSAGE,
    }
    for index, sample in enumerate(SAMPLE_MESSAGES, start=1):
        request[f'sample{index}'] = sample
    return request
