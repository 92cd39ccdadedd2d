"""
Which proving backend a process uses.

WARNING: "mock" checks the transition predicate in-process and proves
nothing in zero knowledge. Only "snarkjs" produces real Groth16 proofs.
"""

from __future__ import annotations

import os
from typing import Final, Optional, Tuple

BACKEND_MOCK: Final[str] = "mock"
BACKEND_SNARKJS: Final[str] = "snarkjs"
ENV_VAR_NAME: Final[str] = "ZK_CONSENT_BACKEND"

_BACKENDS: Final[Tuple[str, ...]] = (BACKEND_MOCK, BACKEND_SNARKJS)

_forced: Optional[str] = None


def valid_backends() -> Tuple[str, ...]:
    return _BACKENDS


def _clean(value: Optional[str], origin: str) -> Optional[str]:
    """Lower-case and check a backend name; blank means unset."""
    if value is None:
        return None
    name = value.strip().lower() if isinstance(value, str) else value
    if name == "":
        return None
    if name not in _BACKENDS:
        raise ValueError(
            f"{origin} names unknown backend {value!r} (choose from {', '.join(_BACKENDS)})"
        )
    return name


def get_backend_type(prefer: Optional[str] = None) -> str:
    """
    Pick the backend: ``prefer`` wins, then a forced value from
    ``set_backend_type``, then ``$ZK_CONSENT_BACKEND``, then "mock".

    Raises:
        ValueError: If any consulted source names an unknown backend
    """
    for candidate in (
        _clean(prefer, "prefer"),
        _forced,
        _clean(os.getenv(ENV_VAR_NAME), ENV_VAR_NAME),
    ):
        if candidate is not None:
            return candidate
    return BACKEND_MOCK


def set_backend_type(value: Optional[str]) -> None:
    """Force a backend for this process (tests); None clears it."""
    global _forced
    _forced = _clean(value, "override")
