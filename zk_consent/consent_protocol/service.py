"""
⚠️ DRAFT — requires crypto review before production use

Verification service: the admission state machine.

    Received -> ProofChecked -> ReplayChecked -> RootChecked -> Admitted
        |             |               |               |
        +-------------+---------------+---------------+----> Rejected

Checks run cheapest and most replay-relevant first. The replay check, the
root check and the admission itself (spend the nullifier and insert the
commitment as a single store write) run inside the accumulator's admission
lock, so two proofs carrying the same nullifier can never both be admitted.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import trio

from .accumulator import ConsentAccumulator
from .adapter import ProofAdapter
from .config import DEFAULT_MAX_CLOCK_SKEW_SECONDS, DEFAULT_VERIFY_TIMEOUT_SECONDS
from .exceptions import (
    REJECTION_KINDS,
    InternalError,
    InvalidProof,
    NullifierReused,
    RejectionError,
    StaleRoot,
    VerifierTimeout,
)
from .types import Proof, ProofKind, proof_from_wire, signals_summary

logger = logging.getLogger(__name__)

NULLIFIER_REUSED_MESSAGE = "Nullifier already used (consent already recorded)"
REJECTED_MESSAGE = "Consent proof rejected"
INTERNAL_ERROR_MESSAGE = "Internal server error"


class AdmissionState(Enum):
    RECEIVED = "Received"
    PROOF_CHECKED = "ProofChecked"
    REPLAY_CHECKED = "ReplayChecked"
    ROOT_CHECKED = "RootChecked"
    ADMITTED = "Admitted"
    REJECTED = "Rejected"


@dataclass(frozen=True)
class AdmissionResult:
    """Terminal outcome of one verification request."""

    state: AdmissionState
    trail: Tuple[AdmissionState, ...]
    root: Optional[int] = None
    error: Optional[str] = None
    mode: Optional[ProofKind] = None

    @property
    def success(self) -> bool:
        return self.state is AdmissionState.ADMITTED

    @property
    def status(self) -> int:
        if self.success:
            return 200
        error_cls = REJECTION_KINDS.get(self.error or "", InternalError)
        return error_cls.status

    def message(self) -> Optional[str]:
        """User-facing message; only a reused nullifier is explained."""
        if self.success:
            return None
        if self.error == NullifierReused.kind:
            return NULLIFIER_REUSED_MESSAGE
        if self.status >= 500:
            return INTERNAL_ERROR_MESSAGE
        return REJECTED_MESSAGE

    def to_response(self) -> Tuple[int, Dict[str, Any]]:
        body: Dict[str, Any] = {"success": self.success}
        if self.success:
            body["root"] = str(self.root)
        else:
            body["error"] = self.message()
        if self.mode is not None:
            body["mode"] = self.mode.value
        return self.status, body


class VerificationService:
    """
    Admits consent transitions into one accumulator.

    Example:
        >>> service = VerificationService(ConsentAccumulator(), adapter)
        >>> result = service.submit(request_body)
        >>> status, body = result.to_response()
    """

    def __init__(
        self,
        accumulator: ConsentAccumulator,
        adapter: ProofAdapter,
        *,
        allow_attested: bool = True,
        clock: Callable[[], float] = time.time,
        verify_timeout: float = DEFAULT_VERIFY_TIMEOUT_SECONDS,
        max_clock_skew: int = DEFAULT_MAX_CLOCK_SKEW_SECONDS,
        allow_reset: bool = False,
    ) -> None:
        self._accumulator = accumulator
        self._adapter = adapter
        self._allow_attested = allow_attested
        self._clock = clock
        self._verify_timeout = verify_timeout
        self._max_clock_skew = max_clock_skew
        self._allow_reset = allow_reset

    @property
    def accumulator(self) -> ConsentAccumulator:
        return self._accumulator

    @property
    def allow_reset(self) -> bool:
        return self._allow_reset

    def _now(self) -> int:
        return int(self._clock())

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _check_proof(self, proof: Proof, now: int) -> None:
        if proof.kind is ProofKind.ATTESTED and not self._allow_attested:
            raise InvalidProof("attested claims are disabled on this server")
        skew = abs(now - proof.public_signals.current_time)
        if skew > self._max_clock_skew:
            raise InvalidProof(f"currentTime is {skew}s away from server time")
        if not self._adapter.verify(proof, now=now):
            raise InvalidProof("proof did not verify")

    def _commit(self, proof: Proof, trail: List[AdmissionState]) -> int:
        signals = proof.public_signals
        with self._accumulator.admission() as acc:
            if acc.has_nullifier(signals.nullifier):
                raise NullifierReused("nullifier already recorded")
            trail.append(AdmissionState.REPLAY_CHECKED)

            if not acc.membership_root_valid(signals.root):
                raise StaleRoot("claimed root is not the current root")
            trail.append(AdmissionState.ROOT_CHECKED)

            root = acc.admit(signals.nullifier, signals.new_commitment)
        trail.append(AdmissionState.ADMITTED)
        return root

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def _admitted(
        self, proof: Proof, trail: List[AdmissionState], root: int
    ) -> AdmissionResult:
        summary = signals_summary(proof.public_signals)
        if proof.kind is ProofKind.ATTESTED:
            logger.warning(
                "Admitted attested claim (weaker assurance): nullifier=%s root=%s",
                summary["nullifier"],
                str(root)[:12],
            )
        else:
            logger.info(
                "Admitted zk transition: nullifier=%s root=%s",
                summary["nullifier"],
                str(root)[:12],
            )
        return AdmissionResult(
            state=AdmissionState.ADMITTED,
            trail=tuple(trail),
            root=root,
            mode=proof.kind,
        )

    def _rejected(
        self,
        trail: List[AdmissionState],
        kind: str,
        proof: Optional[Proof],
    ) -> AdmissionResult:
        return AdmissionResult(
            state=AdmissionState.REJECTED,
            trail=tuple(trail) + (AdmissionState.REJECTED,),
            error=kind,
            mode=proof.kind if proof is not None else None,
        )

    def _handle_failure(
        self,
        exc: Exception,
        trail: List[AdmissionState],
        proof: Optional[Proof],
    ) -> AdmissionResult:
        if isinstance(exc, RejectionError):
            logger.info("Rejected at %s: %s (%s)", trail[-1].value, exc.kind, exc)
            return self._rejected(trail, exc.kind, proof)
        if isinstance(exc, InternalError):
            logger.error("Admission failed at %s: %s", trail[-1].value, exc)
            return self._rejected(trail, InternalError.kind, proof)
        logger.error("Unexpected error at %s", trail[-1].value, exc_info=exc)
        return self._rejected(trail, InternalError.kind, proof)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def admit(self, proof: Proof) -> AdmissionResult:
        """Run an already-decoded proof through the state machine."""
        trail = [AdmissionState.RECEIVED]
        try:
            self._check_proof(proof, self._now())
            trail.append(AdmissionState.PROOF_CHECKED)
            root = self._commit(proof, trail)
        except Exception as exc:
            return self._handle_failure(exc, trail, proof)
        return self._admitted(proof, trail, root)

    def submit(self, payload: Any) -> AdmissionResult:
        """Decode a request body and run it through the state machine."""
        trail = [AdmissionState.RECEIVED]
        proof: Optional[Proof] = None
        try:
            proof = proof_from_wire(payload)
            self._check_proof(proof, self._now())
            trail.append(AdmissionState.PROOF_CHECKED)
            root = self._commit(proof, trail)
        except Exception as exc:
            return self._handle_failure(exc, trail, proof)
        return self._admitted(proof, trail, root)

    async def asubmit(self, payload: Any) -> AdmissionResult:
        """
        Trio variant of ``submit``.

        Verification runs in a worker thread bounded by ``verify_timeout``;
        exceeding it rejects with VerifierTimeout. The admission critical
        section is not subject to the timeout.
        """
        trail = [AdmissionState.RECEIVED]
        proof: Optional[Proof] = None
        try:
            proof = proof_from_wire(payload)
            now = self._now()
            try:
                with trio.fail_after(self._verify_timeout):
                    await trio.to_thread.run_sync(
                        self._check_proof, proof, now, abandon_on_cancel=True
                    )
            except trio.TooSlowError as exc:
                raise VerifierTimeout(
                    f"verification exceeded {self._verify_timeout}s"
                ) from exc
            trail.append(AdmissionState.PROOF_CHECKED)
            root = await trio.to_thread.run_sync(self._commit, proof, trail)
        except Exception as exc:
            return self._handle_failure(exc, trail, proof)
        return self._admitted(proof, trail, root)

    # ------------------------------------------------------------------
    # Queries and administration
    # ------------------------------------------------------------------

    def health(self) -> Dict[str, Any]:
        return {
            "status": "ok",
            "treeSize": len(self._accumulator),
            "root": str(self._accumulator.current_root()),
        }

    def membership_path_response(self, commitment: int) -> Dict[str, Any]:
        """
        Membership path for a client's previously admitted commitment.

        Raises:
            KeyError: If the commitment is not in the accumulator
        """
        with self._accumulator.admission() as acc:
            path = acc.membership_path(commitment)
            root = acc.current_root()
        body: Dict[str, Any] = {"success": True, "root": str(root)}
        body.update(path.to_wire())
        return body

    def reset(self) -> Dict[str, Any]:
        """
        Clear the accumulator and nullifier set (test/demo servers only).

        Raises:
            PermissionError: If reset is disabled
        """
        if not self._allow_reset:
            raise PermissionError("reset is disabled on this server")
        self._accumulator.reset()
        return {"success": True, "root": str(self._accumulator.current_root())}
