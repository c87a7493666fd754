"""Error types, normalization and retry classification."""

from __future__ import annotations

import json
import traceback
from dataclasses import dataclass
from typing import Optional

import requests


class SwitchboardError(Exception):
    """Base class for switchboard errors."""


class ConfigError(SwitchboardError):
    pass


class NoModelsAvailableError(ConfigError):
    def __init__(self, message: str = "No AI models available") -> None:
        super().__init__(message)


class BackendError(SwitchboardError):
    """A model backend returned an unusable response."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        model_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.model_id = model_id


class EmptyResponseError(BackendError):
    pass


@dataclass(frozen=True)
class NormalizedError:
    message: str
    kind: Optional[str] = None
    details: Optional[str] = None


def _status_code(exc: BaseException) -> Optional[int]:
    if isinstance(exc, BackendError):
        return exc.status_code
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return exc.response.status_code
    code = getattr(exc, "status_code", None)
    return code if isinstance(code, int) else None


def classify_error(exc: BaseException) -> Optional[str]:
    """Map an exception to a retryable error kind, or None."""
    if isinstance(exc, EmptyResponseError):
        return "empty-response"

    status = _status_code(exc)
    if status == 429:
        return "rate-limit"
    if status is not None and 500 <= status < 600:
        return "server-error"

    if isinstance(exc, (requests.Timeout, requests.ConnectionError, TimeoutError, ConnectionError)):
        return "network-timeout"
    if isinstance(exc, json.JSONDecodeError):
        return "json-parse-error"
    return None


def normalize_error(exc: BaseException) -> NormalizedError:
    """Flatten any exception into message/kind/details once, at the boundary."""
    message = str(exc).strip() or type(exc).__name__
    details = None
    if exc.__traceback__ is not None:
        details = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return NormalizedError(message=message, kind=classify_error(exc), details=details)
