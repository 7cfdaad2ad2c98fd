"""
Error types for the configuration-driven data-access layer.

The API layer maps these onto HTTP status codes; scripts map them onto exit
codes.
"""

from __future__ import annotations

from typing import Any, List, Optional


class ConfigModelError(Exception):
    """Base error for all data-access layer exceptions."""


class ModelConfigNotFoundError(ConfigModelError):
    """Raised when no descriptor file exists for a model name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Model config not found: '{name}'")


class ModelConfigInvalidError(ConfigModelError):
    """Raised when a descriptor cannot be parsed or fails validation."""

    def __init__(self, name: str, reason: str, errors: Optional[List[Any]] = None) -> None:
        self.name = name
        self.errors = errors or []
        super().__init__(f"Model config '{name}' is invalid: {reason}")


class ConnectionNotFoundError(ConfigModelError):
    def __init__(self, conn_name: str) -> None:
        self.conn_name = conn_name
        super().__init__(f"Database connection not configured: '{conn_name}'")


class KvConfigNotFoundError(ConfigModelError):
    def __init__(self, kv_name: str, model_name: str) -> None:
        self.kv_name = kv_name
        self.model_name = model_name
        super().__init__(f"KV config [{kv_name}] does not exist in model {model_name}")


class RecordNotFoundError(ConfigModelError):
    def __init__(self, model_name: str, pk_value: Any) -> None:
        self.model_name = model_name
        self.pk_value = pk_value
        super().__init__(f"Record {pk_value!r} not found in model {model_name}")


class RecordExistsError(ConfigModelError):
    """Raised when a write would duplicate a unique key or primary key."""

    def __init__(self, model_name: str) -> None:
        self.model_name = model_name
        super().__init__(f"Record already exists in model {model_name}")


class ReadOnlyModelError(ConfigModelError):
    def __init__(self, model_name: str) -> None:
        self.model_name = model_name
        super().__init__(f"Model {model_name} has no primary key and is read-only")
