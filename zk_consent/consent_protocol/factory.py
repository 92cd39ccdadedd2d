"""
Build proving backends by name.

Backends are imported lazily: selecting "mock" never imports the snarkjs
module, and the reverse.

WARNING: this picks a backend; it says nothing about whether the backend's
proofs are sound.
"""

from __future__ import annotations

import importlib
from typing import Any, Dict, Final, Optional, Tuple, Type

from .feature_flags import BACKEND_MOCK, BACKEND_SNARKJS, get_backend_type
from .interfaces import ProofBackend

# name -> (module relative to this package, class)
BACKEND_REGISTRY: Final[Dict[str, Tuple[str, str]]] = {
    BACKEND_MOCK: (".adapters.predicate_adapter", "PredicateCheckingBackend"),
    BACKEND_SNARKJS: (".snark.backend", "SnarkjsGroth16Backend"),
}


def _registered(name: Optional[str], origin: str) -> Optional[str]:
    if not name:
        return None
    if name not in BACKEND_REGISTRY:
        raise ValueError(
            f"{origin}: no backend registered as {name!r} "
            f"(registered: {', '.join(sorted(BACKEND_REGISTRY))})"
        )
    return name


def backend_class(name: str) -> Type[ProofBackend]:
    """
    Import and return the class registered under ``name``.

    Raises:
        ImportError: If the module or class is missing
        TypeError: If the class is not a ProofBackend
    """
    module_name, class_name = BACKEND_REGISTRY[name]
    try:
        module = importlib.import_module(module_name, package=__package__)
        cls = getattr(module, class_name)
    except (ModuleNotFoundError, AttributeError) as exc:
        raise ImportError(f"backend {name!r} is not importable: {exc}") from exc
    if not (isinstance(cls, type) and issubclass(cls, ProofBackend)):
        raise TypeError(f"{module_name}.{class_name} is not a ProofBackend")
    return cls


def resolve_backend_name(
    *, prefer: Optional[str] = None, override: Optional[str] = None
) -> str:
    """``override`` beats ``prefer``, which beats the feature flags."""
    return (
        _registered(override, "override")
        or _registered(prefer, "prefer")
        or _registered(get_backend_type(), "feature flags")
    )


def get_proof_backend(
    *, prefer: Optional[str] = None, override: Optional[str] = None, **kwargs: Any
) -> ProofBackend:
    """
    Instantiate the selected backend.

    Keyword arguments go to the backend constructor, e.g. ``setup_key`` for
    "mock" or ``base_dir`` for "snarkjs".
    """
    return backend_class(resolve_backend_name(prefer=prefer, override=override))(**kwargs)
