"""snarkjs Groth16 backend and circuit artifact resolution."""

from .assets import ProverAssets, load_verification_key, resolve_prover_assets, resolve_vk
from .backend import SnarkjsGroth16Backend, circuit_input

__all__ = [
    "ProverAssets",
    "SnarkjsGroth16Backend",
    "circuit_input",
    "load_verification_key",
    "resolve_prover_assets",
    "resolve_vk",
]
