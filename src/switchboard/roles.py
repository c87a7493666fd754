"""
Model Roles — one fallback executor per logical model role

Each role ("primary", "light", ...) gets its own backend chain, reset
interval and error formatter. The registry is an explicit object: build it
once at startup, ``get`` from it per request, ``teardown`` it in tests.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Callable, Dict, Optional, Sequence

from .backends import DEFAULT_URLS, ModelBackend, OpenAICompatibleBackend
from .config import BackendConfig, SwitchboardConfig
from .errors import ConfigError, NormalizedError
from .fallback import ErrorObserver, FallbackModel, create_fallback
from .observability import FailoverLogRecord

logger = logging.getLogger(__name__)

BackendFactory = Callable[[BackendConfig], ModelBackend]


def build_backend(config: BackendConfig) -> ModelBackend:
    """Default factory: every configured provider speaks chat-completions."""
    api_key = os.environ.get(config.api_key_env) if config.api_key_env else None
    if config.api_key_env and not api_key:
        logger.warning("%s: %s is not set", config.model_id, config.api_key_env)
    return OpenAICompatibleBackend(
        model_id=config.model_id,
        url=config.url or DEFAULT_URLS[config.provider],
        api_key=api_key,
        model=config.model,
        timeout=config.timeout_sec,
    )


def role_error_logger(role: str) -> ErrorObserver:
    """Observer that logs a validated failover record for ``role``."""
    attempts = {"count": 0}

    def _on_error(error: NormalizedError, model_id: str) -> None:
        attempts["count"] += 1
        record = FailoverLogRecord(
            role=role,
            model_id=model_id,
            message=error.message,
            kind=error.kind,
            attempt=attempts["count"],
            has_details=error.details is not None,
        )
        logger.warning("[%s] Model failed: %s: %s", role, model_id, error.message, extra={"failover": record.to_dict()})

    return _on_error


class ModelRoles:
    def __init__(self) -> None:
        self._roles: Dict[str, FallbackModel] = {}

    def init(
        self,
        role: str,
        models: Sequence[Any],
        replace: bool = False,
        on_error: Optional[ErrorObserver] = None,
        **options: Any,
    ) -> FallbackModel:
        if role in self._roles and not replace:
            raise ConfigError(f"model role {role!r} is already initialized")
        model = create_fallback(models, on_error=on_error or role_error_logger(role), **options)
        self._roles[role] = model
        logger.info(
            "role %s: %s",
            role, " -> ".join(getattr(m, "model_id", type(m).__name__) for m in models),
        )
        return model

    def get(self, role: str) -> FallbackModel:
        try:
            return self._roles[role]
        except KeyError as exc:
            raise ConfigError(f"model role {role!r} is not initialized") from exc

    def names(self) -> list:
        return list(self._roles)

    def reset(self) -> None:
        """Send every role back to its primary model."""
        for model in self._roles.values():
            model.reset()

    def teardown(self) -> None:
        self._roles.clear()

    @classmethod
    def from_config(
        cls,
        config: SwitchboardConfig,
        backend_factory: BackendFactory = build_backend,
        clock: Optional[Callable[[], float]] = None,
    ) -> "ModelRoles":
        roles = cls()
        for name, role in config.roles.items():
            roles.init(
                name,
                [backend_factory(backend) for backend in role.backends],
                model_reset_interval=role.model_reset_interval_ms,
                retry_after_output=role.retry_after_output,
                clock=clock,
            )
        return roles


if __name__ == "__main__":
    from .config import load_config

    cfg = load_config()
    logging.basicConfig(
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        level=cfg.log_level,
    )
    roles = ModelRoles.from_config(cfg)
    for name in roles.names():
        chain = " -> ".join(m.model_id for m in roles.get(name).models)
        print(f"{name}: {chain}")
