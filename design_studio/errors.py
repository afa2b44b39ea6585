import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import httpx
import openai


class GenErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    PAYMENT_REQUIRED = "payment_required"
    MALFORMED = "malformed"
    TRANSPORT = "transport"
    UNKNOWN = "unknown"
    FETCH_FAILED = "fetch_failed"

    @property
    def is_quota(self) -> bool:
        """Quota errors abort the rest of a mockup batch."""
        return self in (GenErrorKind.RATE_LIMITED, GenErrorKind.PAYMENT_REQUIRED)


@dataclass(frozen=True)
class GenError:
    kind: GenErrorKind
    message: str = ""

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}" if self.message else self.kind.value


class DesignStudioError(Exception):
    """Base class for errors raised by this package."""


class GenerationError(DesignStudioError):
    """
    Raised inside the generation adapters when a response cannot be used.

    The gateway converts it into a `Failure` carrying the same kind.
    """

    def __init__(self, kind: GenErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


class PipelineError(DesignStudioError):
    pass


class InvalidTransition(PipelineError):
    def __init__(self, stage: Any, event: Any) -> None:
        super().__init__(f"Event {event.value!r} is not allowed in stage {stage.value!r}")
        self.stage = stage
        self.event = event


class SelectionRequired(PipelineError):
    """Raised when a stage is started without any artifact selected from the previous one."""


class FetchFailed(DesignStudioError):
    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Could not fetch artifact {_shorten(url)}: {reason}")
        self.url = url
        self.reason = reason
        self.kind = GenErrorKind.FETCH_FAILED


def classify_exception(exc: BaseException) -> GenError:
    """
    Map an exception raised by an SDK or HTTP client onto the error taxonomy.

    Works for openai (and langchain-openai, which re-raises openai errors),
    replicate and httpx exceptions.
    """
    if isinstance(exc, GenerationError):
        return GenError(exc.kind, exc.message)

    message = str(exc) or exc.__class__.__name__
    status = _status_of(exc)

    if status == 429 or isinstance(exc, openai.RateLimitError):
        return GenError(GenErrorKind.RATE_LIMITED, message)
    if status == 402:
        return GenError(GenErrorKind.PAYMENT_REQUIRED, message)
    if isinstance(exc, (openai.APIConnectionError, httpx.TransportError)):
        return GenError(GenErrorKind.TRANSPORT, message)
    if status is not None:
        return GenError(GenErrorKind.TRANSPORT, f"HTTP {status}: {message}")
    if isinstance(exc, (json.JSONDecodeError, KeyError, IndexError, TypeError)):
        return GenError(GenErrorKind.MALFORMED, message)
    return GenError(GenErrorKind.UNKNOWN, message)


def _status_of(exc: BaseException) -> Optional[int]:
    # openai.APIStatusError
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    # replicate.exceptions.ReplicateError
    status = getattr(exc, "status", None)
    if isinstance(status, int):
        return status
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    return None


def _shorten(url: str, limit: int = 80) -> str:
    # Data URIs can be megabytes long.
    return url if len(url) <= limit else url[:limit] + "..."
