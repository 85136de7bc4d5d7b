"""
Error taxonomy for generation runs.

Every error carries a ``retryable`` flag read by the step executor: retryable
errors are attempted again with backoff, the others fail the step at once.
Exceptions that are not ``GenerationError`` subclasses are treated as
retryable operation errors.
"""

from enum import Enum
from typing import Any, Dict, Optional


class GenerationError(Exception):
    """Base error for the generator."""

    retryable = True
    default_code = "GENERATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class StepTimeoutError(GenerationError):
    """A step attempt exceeded its timeout."""
    default_code = "STEP_TIMEOUT"

    def __init__(self, step_name: str, timeout: float) -> None:
        super().__init__(
            f"Step '{step_name}' timed out after {timeout:g}s",
            details={"step": step_name, "timeout": timeout},
        )


class AdmissionDeniedError(GenerationError):
    """Raised by callers that decide to abort on an admission denial."""
    retryable = False
    default_code = "ADMISSION_DENIED"

    def __init__(self, decision) -> None:
        super().__init__(
            decision.reason or "Admission denied",
            details={
                "limit": decision.limit,
                "wait_time_seconds": decision.wait_time_seconds,
            },
        )
        self.decision = decision


class PersistenceError(GenerationError):
    """The durable usage store could not be read or written."""
    retryable = False
    default_code = "PERSISTENCE_ERROR"


class InputValidationError(GenerationError):
    """The generation request itself is invalid."""
    retryable = False
    default_code = "INVALID_INPUT"


class OutputValidationError(GenerationError):
    """The generated application failed its final checks."""
    retryable = False
    default_code = "INVALID_OUTPUT"


class MalformedOutputError(GenerationError):
    """The provider answered, but the answer could not be parsed."""
    default_code = "MALFORMED_OUTPUT"


class InvalidStepTransitionError(GenerationError):
    retryable = False
    default_code = "INVALID_STEP_TRANSITION"


class ProviderErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    OVERLOADED = "overloaded"
    NETWORK = "network"
    SERVER = "server"
    INVALID_REQUEST = "invalid_request"
    AUTHENTICATION = "authentication"


TRANSIENT_PROVIDER_ERRORS = {
    ProviderErrorKind.RATE_LIMITED,
    ProviderErrorKind.OVERLOADED,
    ProviderErrorKind.NETWORK,
    ProviderErrorKind.SERVER,
}


class ProviderError(GenerationError):
    """The text-generation provider rejected or failed the call."""
    default_code = "PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        kind: ProviderErrorKind,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, details={"kind": kind.value, "status_code": status_code})
        self.kind = kind
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind in TRANSIENT_PROVIDER_ERRORS


def is_retryable(error: BaseException) -> bool:
    """Return True if the executor should attempt the step again."""
    if isinstance(error, GenerationError):
        return error.retryable
    return True
