"""Failover log schema enforcement."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from jsonschema import Draft7Validator

FAILOVER_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": [
        "role",
        "model_id",
        "message",
        "kind",
        "occurred_at",
    ],
    "properties": {
        "role": {"type": "string", "minLength": 1},
        "model_id": {"type": "string", "minLength": 1},
        "message": {"type": "string"},
        "kind": {
            "type": ["string", "null"],
            "enum": [
                "rate-limit",
                "server-error",
                "network-timeout",
                "empty-response",
                "json-parse-error",
                None,
            ],
        },
        "occurred_at": {"type": "string", "format": "date-time"},
        "attempt": {"type": "integer", "minimum": 1},
        "has_details": {"type": "boolean"},
    },
}

_validator = Draft7Validator(FAILOVER_SCHEMA)


def validate_failover(payload: Dict[str, Any]) -> None:
    errors = sorted(_validator.iter_errors(payload), key=lambda e: list(e.path))
    if errors:
        messages = ", ".join(error.message for error in errors)
        raise ValueError(f"failover log validation failed: {messages}")


@dataclass
class FailoverLogRecord:
    role: str
    model_id: str
    message: str
    kind: Optional[str] = None
    attempt: int = 1
    has_details: bool = False
    occurred_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "role": self.role,
            "model_id": self.model_id,
            "message": self.message,
            "kind": self.kind,
            "attempt": self.attempt,
            "has_details": self.has_details,
            "occurred_at": self.occurred_at,
        }
        validate_failover(payload)
        return payload
