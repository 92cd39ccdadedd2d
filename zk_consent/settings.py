"""
Server settings.

Resolution order, later wins: dataclass defaults, YAML file, environment
(``ZK_CONSENT_<FIELD>``), then explicit overrides (CLI flags).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .consent_protocol.config import (
    DEFAULT_MAX_CLOCK_SKEW_SECONDS,
    DEFAULT_VERIFY_TIMEOUT_SECONDS,
)
from .consent_protocol.exceptions import ConfigurationError
from .consent_protocol.feature_flags import valid_backends
from .network.consentzk.constants import DEFAULT_HOST, DEFAULT_PORT

ENV_PREFIX = "ZK_CONSENT_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class ServerSettings:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    backend: str = "mock"
    state_file: Optional[str] = None
    allow_reset: bool = False
    allow_attested: bool = True
    verify_timeout: float = DEFAULT_VERIFY_TIMEOUT_SECONDS
    max_clock_skew: int = DEFAULT_MAX_CLOCK_SKEW_SECONDS
    setup_key_hex: Optional[str] = None

    def validate(self) -> None:
        if not self.host:
            raise ConfigurationError("host must not be empty")
        if not 0 <= self.port <= 65535:
            raise ConfigurationError(f"port out of range: {self.port}")
        if self.backend not in valid_backends():
            raise ConfigurationError(
                f"unknown backend {self.backend!r}; expected one of {', '.join(valid_backends())}"
            )
        if self.verify_timeout <= 0:
            raise ConfigurationError("verify_timeout must be positive")
        if self.max_clock_skew < 0:
            raise ConfigurationError("max_clock_skew must not be negative")
        self.setup_key()

    def setup_key(self) -> Optional[bytes]:
        if self.setup_key_hex is None:
            return None
        try:
            key = bytes.fromhex(self.setup_key_hex)
        except ValueError as exc:
            raise ConfigurationError("setup_key_hex is not valid hex") from exc
        if len(key) < 16:
            raise ConfigurationError("setup_key_hex must encode at least 16 bytes")
        return key

    def with_overrides(self, **overrides: Any) -> "ServerSettings":
        """Apply non-None overrides and re-validate."""
        updated = replace(
            self, **{name: value for name, value in overrides.items() if value is not None}
        )
        updated.validate()
        return updated


_FIELD_TYPES = {f.name: f.type for f in fields(ServerSettings)}


def _coerce(name: str, value: Any) -> Any:
    kind = _FIELD_TYPES[name]
    if value is None:
        if kind.startswith("Optional"):
            return None
        raise ConfigurationError(f"{name} must not be null")
    try:
        if kind == "bool":
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise ValueError(f"not a boolean: {value!r}")
        if kind == "int":
            if isinstance(value, bool):
                raise ValueError("booleans are not integers")
            return int(value)
        if kind == "float":
            return float(value)
        return str(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"invalid value for {name}: {exc}") from exc


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp)
    except OSError as exc:
        raise ConfigurationError(f"cannot read settings file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"invalid YAML in {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"settings file {path} must contain a mapping")
    unknown = sorted(set(data) - set(_FIELD_TYPES))
    if unknown:
        raise ConfigurationError(f"unknown settings in {path}: {', '.join(unknown)}")
    return data


def load_settings(
    path: Optional[str | Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ServerSettings:
    """
    Build settings from defaults, an optional YAML file and the environment.

    Raises:
        ConfigurationError: On unreadable files, unknown keys or bad values
    """
    env = os.environ if env is None else env
    values: Dict[str, Any] = {}

    if path is not None:
        for name, value in _read_yaml(Path(path)).items():
            values[name] = _coerce(name, value)

    for name in _FIELD_TYPES:
        raw = env.get(ENV_PREFIX + name.upper())
        if raw is not None and raw != "":
            values[name] = _coerce(name, raw)

    settings = ServerSettings(**values)
    settings.validate()
    return settings
