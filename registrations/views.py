"""
API views for the 10DLC registration gateway.
"""
import hashlib
import logging
import uuid

from django.conf import settings
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from rest_framework import serializers, status
from rest_framework.exceptions import ParseError, UnsupportedMediaType
from rest_framework.response import Response
from rest_framework.views import APIView

from registrations.models import WebhookEvent
from registrations.serializers import event_type_label, validate_event
from registrations.services.signature import SIGNATURE_HEADER, TIMESTAMP_HEADER, verify_webhook_signature
from registrations.tasks import process_webhook_event

logger = logging.getLogger(__name__)


def unwrap_payload(body):
    """
    Return the event payload from a request body.

    Accepts both flat notifications and the ``{"data": {"payload": {...}}}``
    envelope.
    """
    if isinstance(body, dict):
        data = body.get('data')
        if isinstance(data, dict) and isinstance(data.get('payload'), dict):
            return data['payload']
    return body


def compute_dedup_key(body, raw_body: bytes) -> str:
    """Registry event id when present, else a SHA-256 of the raw body."""
    candidates = []
    if isinstance(body, dict):
        candidates.extend([body.get('id'), body.get('eventId')])
        data = body.get('data')
        if isinstance(data, dict):
            candidates.append(data.get('id'))
            payload = data.get('payload')
            if isinstance(payload, dict):
                candidates.append(payload.get('eventId'))
    for candidate in candidates:
        if candidate not in (None, ''):
            return f"id:{candidate}"[:128]
    return f"sha256:{hashlib.sha256(raw_body).hexdigest()}"


@method_decorator(csrf_exempt, name='dispatch')
class RegistryWebhookView(APIView):
    """
    Webhook endpoint for registry brand/campaign/number notifications.

    POST /api/webhooks/10dlc/status/ (and /status-failover/)
    - Verifies the Ed25519 signature over the raw body
    - Classifies and shape-checks the payload
    - Stores it once per dedup key and enqueues async processing
    - Returns 202 Accepted with event_id and correlation_id

    GET returns a static health body.
    """

    endpoint = WebhookEvent.Endpoint.PRIMARY

    def get(self, request):
        return Response(
            {
                'status': 'ok',
                'message': '10DLC webhook endpoint is healthy',
            },
            status=status.HTTP_200_OK
        )

    def post(self, request):
        """
        Handle an incoming registry notification.

        Returns:
            202 Accepted: Stored (or already stored) and queued for processing
            400 Bad Request: Non-JSON body, malformed JSON or unrecognised payload shape
            401 Unauthorized: Missing or invalid signature
            500 Internal Server Error: Misconfiguration or unexpected error
        """
        # Generate correlation ID for request tracing
        correlation_id = str(uuid.uuid4())

        try:
            # Signature covers the exact bytes received
            raw_body = request.body

            public_key = settings.TELNYX_WEBHOOK_PUBLIC_KEY
            if not public_key:
                logger.error(
                    f"TELNYX_WEBHOOK_PUBLIC_KEY not configured, correlation_id={correlation_id}"
                )
                return Response(
                    {
                        'error': 'Webhook verification not configured',
                        'correlation_id': correlation_id
                    },
                    status=status.HTTP_500_INTERNAL_SERVER_ERROR
                )

            signature = request.headers.get(SIGNATURE_HEADER)
            timestamp = request.headers.get(TIMESTAMP_HEADER)
            if not verify_webhook_signature(raw_body, signature, timestamp, public_key):
                logger.warning(
                    f"Webhook signature verification failed, correlation_id={correlation_id}"
                )
                return Response(
                    {
                        'error': 'Invalid signature',
                        'correlation_id': correlation_id
                    },
                    status=status.HTTP_401_UNAUTHORIZED
                )

            body = request.data
            payload = unwrap_payload(body)
            kind, _ = validate_event(payload)

            # Extract headers for audit trail
            source_headers = {
                'content-type': request.META.get('CONTENT_TYPE', ''),
                'user-agent': request.META.get('HTTP_USER_AGENT', ''),
                'x-forwarded-for': request.META.get('HTTP_X_FORWARDED_FOR', ''),
                'remote-addr': request.META.get('REMOTE_ADDR', ''),
                TIMESTAMP_HEADER: timestamp,
            }

            dedup_key = compute_dedup_key(body, raw_body)
            ignored = kind == WebhookEvent.Kind.UNKNOWN

            event, created = WebhookEvent.objects.get_or_create(
                dedup_key=dedup_key,
                defaults={
                    'kind': kind,
                    'event_type': event_type_label(payload),
                    'raw_payload': payload,
                    'source_headers': source_headers,
                    'endpoint': self.endpoint,
                    'status': (
                        WebhookEvent.Status.IGNORED if ignored
                        else WebhookEvent.Status.RECEIVED
                    ),
                }
            )

            logger.info(
                f"Webhook event {event.id} ({kind}) {'stored' if created else 'duplicate'} "
                f"via {self.endpoint} endpoint, correlation_id={correlation_id}"
            )

            if not ignored and (created or event.status == WebhookEvent.Status.FAILED):
                if not created:
                    WebhookEvent.objects.filter(pk=event.pk).update(
                        status=WebhookEvent.Status.RECEIVED
                    )
                process_webhook_event.delay(event.id)
                logger.info(
                    f"Webhook event {event.id} enqueued for processing, "
                    f"correlation_id={correlation_id}"
                )

            return Response(
                {
                    'status': 'accepted',
                    'event_id': event.id,
                    'duplicate': not created,
                    'correlation_id': correlation_id
                },
                status=status.HTTP_202_ACCEPTED
            )

        except ParseError as e:
            logger.warning(
                f"Malformed JSON payload: {e}, "
                f"correlation_id={correlation_id}"
            )
            return Response(
                {
                    'error': 'Malformed JSON',
                    'correlation_id': correlation_id
                },
                status=status.HTTP_400_BAD_REQUEST
            )
        except UnsupportedMediaType as e:
            logger.warning(
                f"Unsupported webhook content type: {e}, "
                f"correlation_id={correlation_id}"
            )
            return Response(
                {
                    'error': 'Unsupported content type',
                    'correlation_id': correlation_id
                },
                status=status.HTTP_400_BAD_REQUEST
            )
        except serializers.ValidationError as e:
            logger.warning(
                f"Invalid webhook payload: {e.detail}, "
                f"correlation_id={correlation_id}"
            )
            return Response(
                {
                    'error': 'Invalid payload',
                    'details': e.detail,
                    'correlation_id': correlation_id
                },
                status=status.HTTP_400_BAD_REQUEST
            )
        except Exception as e:
            logger.error(
                f"Error processing webhook request: {e}, "
                f"correlation_id={correlation_id}",
                exc_info=True
            )
            return Response(
                {
                    'error': 'Internal server error',
                    'correlation_id': correlation_id
                },
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )
