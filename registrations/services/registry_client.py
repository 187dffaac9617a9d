"""
Registry API client (Telnyx 10DLC) with bounded retry.

Every call goes through call_with_retry: up to REGISTRY_MAX_ATTEMPTS attempts,
retrying rate limits, server errors and transport failures with exponential
backoff plus jitter. Other 4xx responses fail on the first attempt.
"""
import json
import logging
import random
import time
from typing import Any, Callable, Optional, TypeVar

import httpx
from django.conf import settings

from registrations.services.errors import RegistryError, parse_error_body

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_BASE_SECONDS = 1.0


def _compute_delay(attempt: int, base_delay: float) -> float:
    """Delay before the next attempt: base * 2^attempt plus up to 1s jitter."""
    return base_delay * (2 ** attempt) + random.uniform(0, 1)


def call_with_retry(
    operation: Callable[[], T],
    description: str = 'registry call',
    max_attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run a registry operation, retrying retryable RegistryErrors.

    Args:
        operation: Zero-argument callable performing one attempt
        description: Short label for log lines
        max_attempts: Total attempts (defaults to REGISTRY_MAX_ATTEMPTS)
        base_delay: Backoff base in seconds (defaults to REGISTRY_BACKOFF_BASE_SECONDS)
        sleep: Injected for tests

    Returns:
        Whatever the operation returns

    Raises:
        RegistryError: The last failure once attempts are exhausted, or the
            first non-retryable failure
    """
    if max_attempts is None:
        max_attempts = getattr(settings, 'REGISTRY_MAX_ATTEMPTS', DEFAULT_MAX_ATTEMPTS)
    if base_delay is None:
        base_delay = getattr(settings, 'REGISTRY_BACKOFF_BASE_SECONDS', DEFAULT_BACKOFF_BASE_SECONDS)

    for attempt in range(max_attempts):
        try:
            return operation()
        except RegistryError as e:
            if not e.retryable:
                logger.warning(f"{description} failed with non-retryable error: {e}")
                raise
            if attempt >= max_attempts - 1:
                logger.error(f"{description} failed after {max_attempts} attempts: {e}")
                raise
            delay = _compute_delay(attempt, base_delay)
            logger.warning(
                f"{description} attempt {attempt + 1}/{max_attempts} failed ({e}), "
                f"retrying in {delay:.2f}s"
            )
            sleep(delay)

    raise RuntimeError('unreachable')  # pragma: no cover


class RegistryClient:
    """
    Thin wrapper over the registry's 10DLC endpoints.

    Pass ``client`` to inject a preconfigured httpx.Client (tests use one
    backed by httpx.MockTransport); otherwise the client owns its own.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_key = api_key if api_key is not None else settings.TELNYX_API_KEY
        self.base_url = (base_url or settings.TELNYX_API_BASE_URL).rstrip('/')
        timeout = timeout if timeout is not None else settings.REGISTRY_REQUEST_TIMEOUT
        self._sleep = sleep
        self._owns_client = client is None
        self._client = client or httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _headers(self) -> dict:
        return {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        }

    def _request_once(self, method: str, path: str, payload: Optional[dict] = None) -> dict:
        try:
            response = self._client.request(method, path, json=payload, headers=self._headers())
        except httpx.TransportError as e:
            logger.warning(f"Transport error calling registry {method} {path}: {e}")
            raise RegistryError(f"Registry unreachable: {e}") from e

        logger.info(f"Registry {method} {path} -> {response.status_code}")

        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError):
            data = None

        if not response.is_success:
            parsed = parse_error_body(data)
            detail = parsed.get('detail')
            raise RegistryError(
                f"Registry returned {response.status_code}" + (f": {detail}" if detail else ''),
                status_code=response.status_code,
                error_code=parsed.get('code'),
                detail=detail,
                body=response.text,
            )

        if isinstance(data, dict) and isinstance(data.get('data'), dict):
            return data['data']
        return data if isinstance(data, dict) else {}

    def _call(self, method: str, path: str, payload: Optional[dict] = None) -> dict:
        return call_with_retry(
            lambda: self._request_once(method, path, payload),
            description=f"{method} {path}",
            sleep=self._sleep,
        )

    def submit_brand(self, brand_request: dict) -> dict:
        """
        Register a brand.

        Returns:
            Registry brand object; contains 'brandId' on success
        """
        logger.info(f"Submitting brand '{brand_request.get('displayName')}' to registry")
        logger.debug("Brand request:\n%s", describe_payload(brand_request))
        return self._call('POST', '/10dlc/brand', brand_request)

    def submit_campaign(self, campaign_request: dict) -> dict:
        """
        Register a campaign for an existing brand.

        Returns:
            Registry campaign object; contains 'campaignId' on success
        """
        logger.info(f"Submitting campaign for brand {campaign_request.get('brandId')} to registry")
        logger.debug("Campaign request:\n%s", describe_payload(campaign_request))
        return self._call('POST', '/10dlc/campaignBuilder', campaign_request)

    def get_brand_status(self, brand_id: str) -> dict:
        """Returns 'status', 'identityStatus' and optional 'failureReasons' for a brand."""
        return self._call('GET', f'/10dlc/brand/{brand_id}')

    def get_campaign_status(self, campaign_id: str) -> dict:
        """Returns 'campaignStatus' and optional 'failureReasons' for a campaign."""
        return self._call('GET', f'/10dlc/campaign/{campaign_id}')


def describe_payload(payload: Any) -> str:
    """Readable JSON for debug logs."""
    try:
        return json.dumps(payload, indent=2, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(payload)
