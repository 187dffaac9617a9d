"""
Webhook payload shapes.

Registry notifications are flat JSON objects whose fields depend on the event
kind. classify_event picks the kind from the discriminator fields
(``type``, falling back to ``eventType``) and each kind has one serializer
describing the fields its handler relies on.
"""
import logging
from typing import Tuple

from rest_framework import serializers

from registrations.models import WebhookEvent

logger = logging.getLogger(__name__)

Kind = WebhookEvent.Kind


class BrandUpdateSerializer(serializers.Serializer):
    """TCR_BRAND_UPDATE: BRAND_ADD, BRAND_IDENTITY_STATUS_UPDATE, BRAND_IDENTITY_VET_UPDATE."""
    type = serializers.CharField(required=False)
    eventType = serializers.CharField()
    brandId = serializers.CharField()
    tcrBrandId = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    brandName = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    brandIdentityStatus = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    description = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class CampaignUpdateSerializer(serializers.Serializer):
    """TCR_CAMPAIGN_UPDATE: campaign moving through registry and carrier review."""
    type = serializers.CharField()
    eventType = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    campaignId = serializers.CharField()
    brandId = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    campaignStatus = serializers.CharField()
    failureReasons = serializers.JSONField(required=False, allow_null=True)
    reason = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class CampaignSuspensionSerializer(serializers.Serializer):
    """TELNYX_EVENT with status DORMANT."""
    type = serializers.CharField()
    status = serializers.CharField()
    campaignId = serializers.CharField()
    brandId = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    description = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class PhoneNumberUpdateSerializer(serializers.Serializer):
    """TCR_PHONE_NUMBER_UPDATE: ASSIGNMENT, DELETION, STATUS_UPDATE."""
    type = serializers.CharField()
    eventType = serializers.CharField()
    phoneNumber = serializers.CharField()
    campaignId = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    status = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    reasons = serializers.ListField(
        child=serializers.CharField(), required=False, allow_null=True
    )
    reason = serializers.CharField(required=False, allow_null=True, allow_blank=True)


EVENT_SERIALIZERS = {
    Kind.BRAND_UPDATE.value: BrandUpdateSerializer,
    Kind.CAMPAIGN_UPDATE.value: CampaignUpdateSerializer,
    Kind.CAMPAIGN_SUSPENSION.value: CampaignSuspensionSerializer,
    Kind.PHONE_NUMBER_UPDATE.value: PhoneNumberUpdateSerializer,
}

TYPE_TO_KIND = {
    'TCR_BRAND_UPDATE': Kind.BRAND_UPDATE,
    'TCR_CAMPAIGN_UPDATE': Kind.CAMPAIGN_UPDATE,
    'TCR_PHONE_NUMBER_UPDATE': Kind.PHONE_NUMBER_UPDATE,
}


def classify_event(payload) -> str:
    """
    Determine the event kind from the discriminator fields.

    Raises:
        serializers.ValidationError: Payload is not an object or carries
            neither ``type`` nor ``eventType``
    """
    if not isinstance(payload, dict):
        raise serializers.ValidationError('Webhook payload must be a JSON object')

    event_type = payload.get('type')
    sub_type = payload.get('eventType')
    if not event_type and not sub_type:
        raise serializers.ValidationError('Webhook payload is missing type/eventType')

    if event_type == 'TELNYX_EVENT':
        if payload.get('status') == 'DORMANT':
            return Kind.CAMPAIGN_SUSPENSION
        return Kind.UNKNOWN

    if event_type:
        return TYPE_TO_KIND.get(event_type, Kind.UNKNOWN)

    # Some brand notifications arrive with eventType only
    if isinstance(sub_type, str) and sub_type.startswith('BRAND_'):
        return Kind.BRAND_UPDATE

    return Kind.UNKNOWN


def validate_event(payload) -> Tuple[str, dict]:
    """
    Classify and shape-check a webhook payload.

    Returns:
        Tuple of (kind, validated_data); validated_data is empty for
        unknown kinds

    Raises:
        serializers.ValidationError: Missing discriminator or the payload
            does not match its kind's shape
    """
    kind = classify_event(payload)
    if kind == Kind.UNKNOWN:
        logger.info(
            f"Unknown webhook event type={payload.get('type')} eventType={payload.get('eventType')}"
        )
        return kind, {}

    serializer = EVENT_SERIALIZERS[str(kind)](data=payload)
    serializer.is_valid(raise_exception=True)
    return kind, dict(serializer.validated_data)


def event_type_label(payload) -> str:
    """Audit label stored with the event."""
    if not isinstance(payload, dict):
        return ''
    return str(payload.get('eventType') or payload.get('type') or '')[:64]
