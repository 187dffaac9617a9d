"""
Registry error taxonomy and translation to operator-actionable text.
"""
import logging
from typing import Optional

logger = logging.getLogger(__name__)

# Registry numeric error codes with fixed, operator-facing explanations
REGISTRY_ERROR_CODES = {
    '10001': 'Inactive phone number',
    '10002': 'Invalid phone number',
    '10003': 'Invalid URL - URLs can be max 2000 characters',
    '10004': 'Missing required parameter',
    '10005': 'Resource not found',
    '10006': 'Invalid resource ID',
    '10015': 'Bad request - malformed request body',
    '10016': 'Phone number must be in +E.164 format',
    '10019': 'Invalid email address',
    '10023': 'Invalid JSON in request body',
    '10032': 'Invalid enumerated value',
    '10033': 'Value outside of allowed range',
    '20001': 'Invalid API Key secret',
    '20002': 'API Key revoked',
    '20006': 'Expired access token',
    '40010': 'Not 10DLC registered',
    '40332': 'Brand cannot be deleted due to associated active campaign',
    '40333': 'Messaging profile spend limit reached',
}

STATUS_MESSAGES = {
    401: 'Authentication failed - check API key configuration',
    403: 'Authorization failed - insufficient permissions',
    422: 'Request validation failed - check all required fields',
    429: 'Rate limit exceeded - please try again in a few moments',
}

SERVER_ERROR_MESSAGE = 'Registry API server error - please try again in a few moments'


class RegistryError(Exception):
    """
    Raised when the registry API call fails.

    status_code is None for transport failures (timeouts, refused
    connections), which are retried like 5xx responses.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        detail: Optional[str] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.detail = detail
        self.body = body

    @property
    def retryable(self) -> bool:
        return self.status_code is None or self.status_code == 429 or self.status_code >= 500


class ConcurrentTransitionError(Exception):
    """Raised when a guarded status write keeps losing the compare-and-set race."""
    pass


def parse_error_body(data) -> dict:
    """
    Pull the first error's code and detail out of a registry error body.

    The registry answers ``{"errors": [{"code": "10002", "title": ..., "detail": ...}]}``.

    Returns:
        Dict with optional 'code' and 'detail' keys
    """
    if not isinstance(data, dict):
        return {}
    errors = data.get('errors')
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        first = errors[0]
        code = first.get('code')
        return {
            'code': str(code) if code is not None else None,
            'detail': first.get('detail') or first.get('title'),
        }
    detail = data.get('detail') or data.get('message')
    return {'detail': detail} if detail else {}


def translate_registry_error(exc: Exception) -> str:
    """
    Translate a registry failure into text an operator can act on.

    Order: known registry code, then HTTP status class, then the registry's
    own detail, then a generic server-error text for 5xx, then the raw
    exception message.
    """
    logger.debug(f"Translating registry failure: {exc!r}")
    if isinstance(exc, RegistryError):
        if exc.error_code and exc.error_code in REGISTRY_ERROR_CODES:
            return REGISTRY_ERROR_CODES[exc.error_code]
        if exc.status_code in STATUS_MESSAGES:
            return STATUS_MESSAGES[exc.status_code]
        if exc.detail:
            return exc.detail
        if exc.status_code is not None and exc.status_code >= 500:
            return SERVER_ERROR_MESSAGE
    return str(exc) or exc.__class__.__name__
