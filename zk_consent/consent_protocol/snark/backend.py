"""Groth16 proving/verification through the snarkjs command-line tool."""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..exceptions import ProofGenerationError, ProverUnavailable, VerifierTimeout
from ..interfaces import ProofBackend
from ..predicate import evaluate_transition
from ..security import ConsentHasher, get_default_hasher
from ..types import PublicSignals, TransitionWitness, ZkProof
from .assets import load_verification_key, resolve_prover_assets, resolve_vk

logger = logging.getLogger(__name__)

ENV_SNARKJS_BIN = "ZK_CONSENT_SNARKJS"
DEFAULT_PROVE_TIMEOUT = 120
DEFAULT_VERIFY_TIMEOUT = 30

_PROOF_KEYS = ("pi_a", "pi_b", "pi_c")


def circuit_input(witness: TransitionWitness, public_signals: PublicSignals) -> Dict[str, Any]:
    """Map a witness onto the consent circuit's input signal names."""
    return {
        "currentTime": str(public_signals.current_time),
        "domainSalt": str(public_signals.domain_salt),
        "newConsentCommitment": str(public_signals.new_commitment),
        "nullifier": str(public_signals.nullifier),
        "root": str(public_signals.root),
        "identitySecret": str(witness.identity_secret),
        "oldConsent": str(witness.old_consent_bits),
        "newConsent": str(witness.new_consent_bits),
        "oldTimestamp": str(witness.old_timestamp),
        "timestamp": str(witness.new_timestamp),
        "pathElements": [str(s) for s in witness.path.siblings],
        "pathIndices": list(witness.path.path_bits),
    }


class SnarkjsGroth16Backend(ProofBackend):
    """
    Drive ``snarkjs groth16 fullprove`` / ``snarkjs groth16 verify``.

    The hasher must be the one the circuit was compiled with; it is used
    for the local predicate pre-check that keeps unsatisfiable witnesses
    from ever reaching the prover.
    """

    _BACKEND_NAME = "snarkjs-groth16"
    _BACKEND_VERSION = "0.1.0"

    def __init__(
        self,
        base_dir: str | Path | None = None,
        *,
        snarkjs_bin: Optional[str] = None,
        prove_timeout: float = DEFAULT_PROVE_TIMEOUT,
        verify_timeout: float = DEFAULT_VERIFY_TIMEOUT,
        hasher: Optional[ConsentHasher] = None,
    ) -> None:
        self._base_dir = Path(base_dir) if base_dir else None
        self._snarkjs_bin = snarkjs_bin or os.getenv(ENV_SNARKJS_BIN, "snarkjs")
        self._prove_timeout = prove_timeout
        self._verify_timeout = verify_timeout
        self._hasher = hasher or get_default_hasher()

    @property
    def backend_name(self) -> str:
        return self._BACKEND_NAME

    @property
    def backend_version(self) -> str:
        return self._BACKEND_VERSION

    def _find_snarkjs(self) -> Optional[str]:
        return shutil.which(self._snarkjs_bin)

    def _run(self, args: List[str], timeout: float) -> subprocess.CompletedProcess:
        return subprocess.run(
            args,
            capture_output=True,
            text=True,
            check=False,
            timeout=timeout,
        )

    def prove(self, witness: TransitionWitness, public_signals: PublicSignals) -> ZkProof:
        result = evaluate_transition(public_signals, witness, self._hasher)
        if not result.satisfied:
            failed = ", ".join(check.value for check in result.failed)
            raise ProofGenerationError(
                f"witness does not satisfy the transition predicate ({failed})"
            )

        snarkjs = self._find_snarkjs()
        if snarkjs is None:
            raise ProverUnavailable(f"snarkjs binary not found: {self._snarkjs_bin}")
        try:
            assets = resolve_prover_assets(self._base_dir)
        except FileNotFoundError as exc:
            raise ProverUnavailable(str(exc)) from exc

        with tempfile.TemporaryDirectory() as tmp_dir:
            tmp = Path(tmp_dir)
            input_path = tmp / "input.json"
            proof_path = tmp / "proof.json"
            public_path = tmp / "public.json"
            input_path.write_text(json.dumps(circuit_input(witness, public_signals)))

            try:
                completed = self._run(
                    [
                        snarkjs,
                        "groth16",
                        "fullprove",
                        str(input_path),
                        str(assets.wasm_path),
                        str(assets.zkey_path),
                        str(proof_path),
                        str(public_path),
                    ],
                    self._prove_timeout,
                )
            except subprocess.TimeoutExpired as exc:
                raise ProverUnavailable("snarkjs prover timed out") from exc
            except OSError as exc:
                raise ProverUnavailable(f"snarkjs could not be started: {exc}") from exc

            if completed.returncode != 0:
                stderr = completed.stderr.strip() or "unknown prover error"
                raise ProofGenerationError(f"prover failed: {stderr}")

            proof_payload = json.loads(proof_path.read_text())
            produced = json.loads(public_path.read_text())

        if produced != public_signals.to_wire():
            raise ProofGenerationError("prover produced unexpected public signals")

        return ZkProof(payload=proof_payload, public_signals=public_signals)

    def verify(self, proof: ZkProof) -> bool:
        try:
            if not isinstance(proof, ZkProof):
                return False
            if not all(key in proof.payload for key in _PROOF_KEYS):
                return False
            snarkjs = self._find_snarkjs()
            if snarkjs is None:
                logger.error("snarkjs binary not found: %s", self._snarkjs_bin)
                return False
            vk_path = resolve_vk(self._base_dir)
            load_verification_key(vk_path)

            with tempfile.TemporaryDirectory() as tmp_dir:
                tmp = Path(tmp_dir)
                proof_path = tmp / "proof.json"
                public_path = tmp / "public.json"
                proof_path.write_text(json.dumps(proof.payload))
                public_path.write_text(json.dumps(proof.public_signals.to_wire()))
                completed = self._run(
                    [
                        snarkjs,
                        "groth16",
                        "verify",
                        str(vk_path),
                        str(public_path),
                        str(proof_path),
                    ],
                    self._verify_timeout,
                )
            return completed.returncode == 0 and "OK" in completed.stdout
        except subprocess.TimeoutExpired as exc:
            raise VerifierTimeout("snarkjs verifier timed out") from exc
        except Exception:
            logger.warning("snarkjs verification could not run", exc_info=True)
            return False

    def get_backend_info(self) -> Dict[str, Any]:
        return {
            "name": self.backend_name,
            "version": self.backend_version,
            "snarkjs": self._snarkjs_bin,
            "circuit_dir": str(self._base_dir) if self._base_dir else None,
            "hasher": getattr(self._hasher, "name", type(self._hasher).__name__),
        }
