"""Helpers to resolve compiled consent-circuit artifacts with layout fallbacks."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable

from ..config import PUBLIC_SIGNAL_COUNT

ENV_CIRCUIT_DIR = "ZK_CONSENT_CIRCUIT_DIR"
MAX_VK_BYTES = 1024 * 1024


@dataclass(frozen=True)
class ProverAssets:
    wasm_path: Path
    zkey_path: Path


def default_circuit_dir() -> Path:
    return Path(os.getenv(ENV_CIRCUIT_DIR, Path.cwd() / "build"))


def resolve_prover_assets(base_dir: str | Path | None = None) -> ProverAssets:
    """
    Locate the witness generator (wasm) and the final proving key (zkey).

    Checks the flat layout first, then the layouts produced by circom
    (``circuits/consent_js/consent.wasm``) and the web bundle
    (``public/``).
    """
    base = Path(base_dir) if base_dir else default_circuit_dir()
    wasm = _first_existing(
        [
            base / "consent.wasm",
            base / "consent_js" / "consent.wasm",
            base / "circuits" / "consent_js" / "consent.wasm",
            base / "circuits" / "consent.wasm",
            base.parent / "public" / "consent.wasm",
        ],
        "consent circuit wasm",
    )
    zkey = _first_existing(
        [
            base / "consent_final.zkey",
            base / "circuits" / "consent_final.zkey",
            base / "keys" / "consent_final.zkey",
            base.parent / "public" / "consent_final.zkey",
        ],
        "consent proving key",
    )
    return ProverAssets(wasm_path=wasm, zkey_path=zkey)


def resolve_vk(base_dir: str | Path | None = None) -> Path:
    base = Path(base_dir) if base_dir else default_circuit_dir()
    return _first_existing(
        [
            base / "verification_key.json",
            base / "keys" / "verification_key.json",
        ],
        "consent verification key",
    )


def load_verification_key(path: str | Path) -> Dict[str, Any]:
    """
    Load a snarkjs Groth16 verification key and check its shape.

    Raises:
        ValueError: If the file is too large or is not a Groth16 key for a
            circuit with five public signals
    """
    path = Path(path)
    if path.stat().st_size > MAX_VK_BYTES:
        raise ValueError("verification key size exceeds limit")
    vk = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(vk, dict):
        raise ValueError("verification key must be a JSON object")
    if vk.get("protocol") != "groth16":
        raise ValueError(f"unsupported protocol: {vk.get('protocol')!r}")
    ic = vk.get("IC")
    if not isinstance(ic, list) or len(ic) != PUBLIC_SIGNAL_COUNT + 1:
        raise ValueError(
            f"verification key must have {PUBLIC_SIGNAL_COUNT + 1} IC points"
        )
    n_public = vk.get("nPublic")
    if n_public is not None and n_public != PUBLIC_SIGNAL_COUNT:
        raise ValueError(f"verification key declares nPublic={n_public}")
    return vk


def _first_existing(candidates: Iterable[Path], label: str) -> Path:
    candidates = list(candidates)
    for path in candidates:
        if path.is_file():
            return path
    raise FileNotFoundError(
        f"Unable to resolve {label}. Checked: {', '.join(str(p) for p in candidates)}"
    )
