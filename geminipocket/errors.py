"""Error taxonomy shared by the relay and the client.

Provider failures are mapped onto a small set of stable categories so that
callers see the same message for the same kind of failure regardless of the
exact wording Google returns.
"""
import json
import logging
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


class ErrorCategory(str, Enum):
    RATE_LIMITED = "rate_limited"
    PERMISSION_DENIED = "permission_denied"
    BAD_REQUEST = "bad_request"
    PROVIDER_FAULT = "provider_fault"
    UNKNOWN = "unknown"

    @property
    def retry_later(self) -> bool:
        return self in (ErrorCategory.RATE_LIMITED, ErrorCategory.PROVIDER_FAULT)

    @property
    def http_status(self) -> int:
        return {
            ErrorCategory.RATE_LIMITED: 429,
            ErrorCategory.PERMISSION_DENIED: 502,
            ErrorCategory.BAD_REQUEST: 400,
            ErrorCategory.PROVIDER_FAULT: 503,
            ErrorCategory.UNKNOWN: 502,
        }[self]

    @property
    def user_message(self) -> Optional[str]:
        """Fixed message for the category; None where the provider wording is used."""
        return _CATEGORY_MESSAGES.get(self)


# google.rpc status names reported in the provider error envelope
_STATUS_CATEGORIES = {
    "RESOURCE_EXHAUSTED": ErrorCategory.RATE_LIMITED,
    "UNAUTHENTICATED": ErrorCategory.PERMISSION_DENIED,
    "PERMISSION_DENIED": ErrorCategory.PERMISSION_DENIED,
    "INVALID_ARGUMENT": ErrorCategory.BAD_REQUEST,
    "FAILED_PRECONDITION": ErrorCategory.BAD_REQUEST,
    "NOT_FOUND": ErrorCategory.BAD_REQUEST,
    "OUT_OF_RANGE": ErrorCategory.BAD_REQUEST,
    "INTERNAL": ErrorCategory.PROVIDER_FAULT,
    "UNAVAILABLE": ErrorCategory.PROVIDER_FAULT,
    "DEADLINE_EXCEEDED": ErrorCategory.PROVIDER_FAULT,
}

_HTTP_CATEGORIES = {
    429: ErrorCategory.RATE_LIMITED,
    401: ErrorCategory.PERMISSION_DENIED,
    403: ErrorCategory.PERMISSION_DENIED,
    400: ErrorCategory.BAD_REQUEST,
    404: ErrorCategory.BAD_REQUEST,
    409: ErrorCategory.BAD_REQUEST,
    412: ErrorCategory.BAD_REQUEST,
}

RATE_LIMITED_MESSAGE = "Rate limit or quota exceeded, try again later"
PERMISSION_DENIED_MESSAGE = "Permission denied by provider, check credentials"
PROVIDER_FAULT_MESSAGE = "Provider error, try again later"

_CATEGORY_MESSAGES = {
    ErrorCategory.RATE_LIMITED: RATE_LIMITED_MESSAGE,
    ErrorCategory.PERMISSION_DENIED: PERMISSION_DENIED_MESSAGE,
    ErrorCategory.PROVIDER_FAULT: PROVIDER_FAULT_MESSAGE,
}


class GeminiPocketError(Exception):
    """Base class for every error surfaced to relay or CLI callers."""

    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message}


class InvalidRequest(GeminiPocketError):
    http_status = 400


class AuthError(GeminiPocketError):
    http_status = 401


class TransportError(GeminiPocketError):
    """The network round trip itself failed (DNS, refused, timeout...)."""

    http_status = 502


class ProtocolError(GeminiPocketError):
    """A successful response was missing fields we rely on."""

    http_status = 502


class RetrievalError(GeminiPocketError):
    """Fetching a finished artifact failed; the generation itself succeeded."""

    http_status = 502


class PollTimeout(GeminiPocketError):
    pass


class RelayError(GeminiPocketError):
    """The relay answered with a ``{"success": false}`` envelope."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ProviderError(GeminiPocketError):
    def __init__(self, category: ErrorCategory, message: str, status: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.category = category
        self.status = status
        self.body = body
        self.http_status = category.http_status

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["category"] = self.category.value
        if self.category is ErrorCategory.UNKNOWN:
            data["provider_status"] = self.status
        return data


def _parse_envelope(body: Any) -> Optional[dict]:
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        try:
            body = json.loads(body)
        except ValueError:
            return None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"]
    return None


def classify_provider_error(status_code: int, body: Any) -> ProviderError:
    """Map a non-2xx provider response onto exactly one ErrorCategory.

    The google.rpc ``status`` string inside the error envelope wins over the
    HTTP status code; anything unrecognised becomes ``UNKNOWN`` with the raw
    status and body attached.
    """
    envelope = _parse_envelope(body)
    category = None
    provider_message = None
    if envelope is not None:
        category = _STATUS_CATEGORIES.get(str(envelope.get("status") or "").upper())
        provider_message = envelope.get("message")

    if category is None:
        category = _HTTP_CATEGORIES.get(status_code)
    if category is None and 500 <= status_code < 600:
        category = ErrorCategory.PROVIDER_FAULT
    if category is None:
        category = ErrorCategory.UNKNOWN

    if category.user_message:
        message = category.user_message
    elif category is ErrorCategory.BAD_REQUEST:
        message = provider_message or f"Provider rejected the request (HTTP {status_code})"
    else:
        raw = body.decode("utf-8", errors="replace") if isinstance(body, (bytes, bytearray)) else str(body)
        message = f"Provider request failed (HTTP {status_code}): {raw[:500]}"

    logger.warning("Provider returned HTTP %s, mapped to %s", status_code, category.value)
    return ProviderError(category, message, status=status_code, body=body)
