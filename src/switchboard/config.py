"""Configuration loader for model roles and their fallback chains."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from .backends import DEFAULT_URLS
from .errors import ConfigError

DEFAULT_CONFIG_PATH = Path("config/switchboard.defaults.yml")


@dataclass(frozen=True)
class BackendConfig:
    model_id: str
    provider: str
    model: str
    url: Optional[str] = None
    api_key_env: Optional[str] = None
    timeout_sec: int = 30


@dataclass(frozen=True)
class RoleConfig:
    name: str
    backends: Tuple[BackendConfig, ...]
    model_reset_interval_ms: int = 60000
    retry_after_output: bool = True


@dataclass(frozen=True)
class SwitchboardConfig:
    roles: Dict[str, RoleConfig]
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SwitchboardConfig":
        defaults = data.get("defaults") or {}
        roles_data = data.get("roles") or {}
        if not isinstance(roles_data, dict):
            raise ConfigError("roles must be a mapping of role name to role settings")

        roles = {
            name: _role_from_dict(name, role_data or {}, defaults)
            for name, role_data in roles_data.items()
        }
        return cls(roles=roles, log_level=str(data.get("log_level", "INFO")).upper())


def _role_from_dict(name: str, data: Dict[str, Any], defaults: Dict[str, Any]) -> RoleConfig:
    backends_data = data.get("backends") or []
    if not backends_data:
        raise ConfigError(f"role {name!r} has no backends")

    return RoleConfig(
        name=name,
        backends=tuple(_backend_from_dict(name, entry) for entry in backends_data),
        model_reset_interval_ms=int(
            data.get("model_reset_interval_ms", defaults.get("model_reset_interval_ms", 60000))
        ),
        retry_after_output=_as_bool(
            data.get("retry_after_output", defaults.get("retry_after_output", True))
        ),
    )


def _backend_from_dict(role: str, data: Dict[str, Any]) -> BackendConfig:
    try:
        model = str(data["model"])
    except KeyError as exc:
        raise ConfigError(f"backend in role {role!r} is missing 'model'") from exc

    provider = str(data.get("provider", "openai"))
    if not data.get("url") and provider not in DEFAULT_URLS:
        raise ConfigError(f"backend {model!r} in role {role!r}: unknown provider {provider!r} and no url")

    return BackendConfig(
        model_id=str(data.get("model_id") or f"{provider}/{model}"),
        provider=provider,
        model=model,
        url=data.get("url"),
        api_key_env=data.get("api_key_env"),
        timeout_sec=int(data.get("timeout_sec", 30)),
    )


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


ENV_MAP = {
    "log_level": "SWITCHBOARD_LOG_LEVEL",
    "defaults.model_reset_interval_ms": "SWITCHBOARD_MODEL_RESET_INTERVAL_MS",
    "defaults.retry_after_output": "SWITCHBOARD_RETRY_AFTER_OUTPUT",
}

ENV_CASTS = {
    "model_reset_interval_ms": int,
    "retry_after_output": _as_bool,
}


def load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")
    return data


def merge_env_overrides(config_data: Dict[str, Any]) -> Dict[str, Any]:
    merged = json.loads(json.dumps(config_data))  # deep copy via json

    for dotted_key, env_name in ENV_MAP.items():
        if env_name not in os.environ:
            continue
        target = merged
        parts = dotted_key.split(".")
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        last = parts[-1]
        cast = ENV_CASTS.get(last, str)
        try:
            target[last] = cast(os.environ[env_name])
        except ValueError as exc:
            raise ConfigError(f"{env_name}: cannot parse {os.environ[env_name]!r}") from exc

    return merged


def load_config(config_path: str | Path = DEFAULT_CONFIG_PATH) -> SwitchboardConfig:
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    data = load_yaml(path)
    data = merge_env_overrides(data)
    return SwitchboardConfig.from_dict(data)
