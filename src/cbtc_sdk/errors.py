"""Error types raised by the CBTC SDK."""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional, TypeVar

E = TypeVar("E", bound="CBTCError")


class CBTCError(Exception):
    """Base exception for the CBTC SDK."""

    default_code = "CBTC_ERROR"
    retryable = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class AuthError(CBTCError):
    """Bad credentials, a rejected refresh token, or an unreachable token service."""

    default_code = "AUTH_ERROR"

    def __init__(
        self,
        message: str = "Authentication failed",
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)
        self.status_code = status_code


class MalformedTokenError(CBTCError):
    """Bearer token could not be decoded into claims."""

    default_code = "MALFORMED_TOKEN"


class AuthExpiredError(CBTCError):
    """Ledger rejected the bearer token; the caller must re-authenticate."""

    default_code = "AUTH_EXPIRED"
    # Header value that was rejected; never included in to_dict
    authorization: Optional[str] = None


class TransientNetworkError(CBTCError):
    """Network failure that is safe to retry."""

    default_code = "TRANSIENT_NETWORK_ERROR"
    retryable = True

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)
        self.status_code = status_code


class LedgerUnavailableError(TransientNetworkError):
    """Ledger returned 5xx or timed out. Retry with the same command id."""

    default_code = "LEDGER_UNAVAILABLE"


class AttestorUnavailableError(CBTCError):
    """Attestor could not provide the contracts an operation needs."""

    default_code = "ATTESTOR_UNAVAILABLE"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)
        self.status_code = status_code


class RegistryUnavailableError(TransientNetworkError):
    """Token-standard registry could not provide a choice context."""

    default_code = "REGISTRY_UNAVAILABLE"


class SubmissionError(CBTCError):
    """Ledger rejected a command. Not retried verbatim."""

    default_code = "SUBMISSION_REJECTED"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code=code, details=details)
        self.status_code = status_code

    @classmethod
    def from_response(cls, status_code: int, body: Any) -> "SubmissionError":
        """Create a SubmissionError from a ledger error body."""
        if not isinstance(body, dict):
            return cls(message=str(body) or "Command rejected", status_code=status_code)
        return cls(
            message=body.get("cause") or body.get("message") or "Command rejected",
            code=body.get("code"),
            status_code=status_code,
            details={
                key: body[key]
                for key in ("errorCategory", "grpcCodeValue", "correlationId", "context")
                if key in body
            },
        )


class InsufficientBalanceError(CBTCError):
    """Unlocked holdings do not cover the requested amount."""

    default_code = "INSUFFICIENT_BALANCE"

    def __init__(self, have: Decimal, need: Decimal, instrument: Optional[str] = None):
        super().__init__(
            f"Insufficient balance: have {have}, need {need}",
            details={
                "have": str(have),
                "need": str(need),
                "instrument": instrument,
            },
        )
        self.have = have
        self.need = need
        self.instrument = instrument


class PollingTimeoutError(CBTCError, TimeoutError):
    """Local polling gave up. The underlying operation may still complete."""

    default_code = "POLLING_TIMEOUT"

    def __init__(self, message: str, attempts: int = 0, details: Optional[dict[str, Any]] = None):
        super().__init__(message, details=details)
        self.attempts = attempts


class ValidationError(CBTCError):
    """Invalid input supplied by the caller."""

    default_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, details={"field": field})
        self.field = field


class UnexpectedResponseError(CBTCError):
    """A service answered successfully but the payload was not understood."""

    default_code = "UNEXPECTED_RESPONSE"


def with_context(error: E, **context: Any) -> E:
    """Attach operation context (step, batch index...) to an error in place."""
    for key, value in context.items():
        error.details.setdefault(key, value)
    return error


__all__ = [
    "CBTCError",
    "AuthError",
    "MalformedTokenError",
    "AuthExpiredError",
    "TransientNetworkError",
    "LedgerUnavailableError",
    "AttestorUnavailableError",
    "RegistryUnavailableError",
    "SubmissionError",
    "InsufficientBalanceError",
    "PollingTimeoutError",
    "ValidationError",
    "UnexpectedResponseError",
    "with_context",
]
