"""Client side of consent proof exchange: transport and the accept flow."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

import trio

from ...consent_protocol.adapter import ProofAdapter
from ...consent_protocol.config import EMPTY_ROOT, MAX_CONSENT_BITS
from ...consent_protocol.exceptions import (
    ConfigurationError,
    MalformedRequest,
    ProofGenerationError,
    ProverUnavailable,
)
from ...consent_protocol.identity import IdentityStore
from ...consent_protocol.predicate import derive_public_signals, is_bitwise_superset
from ...consent_protocol.security import ConsentHasher, domain_salt_for, get_default_hasher
from ...consent_protocol.service import NULLIFIER_REUSED_MESSAGE
from ...consent_protocol.types import (
    ConsentRecord,
    MerklePath,
    TransitionWitness,
    parse_field_element,
)
from .constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    OP_HEALTH,
    OP_PATH,
    OP_RESET,
    OP_VERIFY,
    READ_TIMEOUT,
    RESPONSE_MAX_BYTES,
    WRITE_TIMEOUT,
)
from .errors import ProtocolError
from .framing import read_frame, write_frame
from .messages import ConsentRequest, decode_response, encode_request

logger = logging.getLogger(__name__)


class ConsentTransport(Protocol):
    async def request(self, op: str, body: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        ...


class TcpTransport:
    """One TCP connection per request, framed CBOR envelopes."""

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        self._host = host
        self._port = port
        self._read_timeout = READ_TIMEOUT if timeout is None else timeout
        self._write_timeout = WRITE_TIMEOUT if timeout is None else timeout

    async def request(self, op: str, body: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        stream = await trio.open_tcp_stream(self._host, self._port)
        async with stream:
            await write_frame(
                stream,
                encode_request(ConsentRequest(op=op, body=body)),
                timeout=self._write_timeout,
            )
            response_blob = await read_frame(
                stream, max_bytes=RESPONSE_MAX_BYTES, timeout=self._read_timeout
            )
        response = decode_response(response_blob)
        return response.status, response.body


def parse_server_address(address: str) -> Tuple[str, int]:
    """Split ``host:port``; a bare host gets the default port."""
    host, sep, port = address.rpartition(":")
    if not sep:
        return address, DEFAULT_PORT
    try:
        return host or DEFAULT_HOST, int(port)
    except ValueError as exc:
        raise ValueError(f"invalid server address: {address!r}") from exc


@dataclass(frozen=True)
class ConsentOutcome:
    accepted: bool
    root: Optional[str] = None
    mode: Optional[str] = None
    error: Optional[str] = None
    already_consented: bool = False


async def fetch_health(transport: ConsentTransport) -> Dict[str, Any]:
    _, body = await transport.request(OP_HEALTH, {})
    return body


async def request_reset(transport: ConsentTransport) -> Tuple[int, Dict[str, Any]]:
    return await transport.request(OP_RESET, {})


class ConsentClient:
    """
    Per-domain consent flow for one identity.

    ``accept`` derives the witness from the local identity secret and the
    last admitted record, proves off the trio thread, and submits once.
    A second ``accept`` while one is in flight is dropped: two proofs from
    the same prior state would race on the server's root and nullifier
    checks.
    """

    def __init__(
        self,
        transport: ConsentTransport,
        identity: IdentityStore,
        domain: str,
        adapter: ProofAdapter,
        *,
        clock: Callable[[], float] = time.time,
        hasher: Optional[ConsentHasher] = None,
        last_record: Optional[ConsentRecord] = None,
    ) -> None:
        self._transport = transport
        self._identity = identity
        self._domain_salt = domain_salt_for(domain)
        self._adapter = adapter
        self._clock = clock
        self._hasher = hasher or get_default_hasher()
        self._last_record = last_record
        self._in_flight = False

    @property
    def domain_salt(self) -> int:
        return self._domain_salt

    @property
    def last_record(self) -> Optional[ConsentRecord]:
        return self._last_record

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def _prior_state(self, secret: int) -> Tuple[ConsentRecord, int, MerklePath]:
        if self._last_record is None:
            return ConsentRecord.initial(), EMPTY_ROOT, MerklePath.empty()

        old = self._last_record
        leaf = self._hasher.commitment(old.consent_bits, old.timestamp, secret)
        status, body = await self._transport.request(OP_PATH, {"commitment": str(leaf)})
        if status != 200 or not body.get("success"):
            raise ProofGenerationError(
                f"server has no membership path for the prior record: {body.get('error')}"
            )
        try:
            root = parse_field_element(body.get("root"), "root")
            path = MerklePath.from_wire(body)
        except MalformedRequest as exc:
            raise ProofGenerationError(f"bad membership path from server: {exc}") from exc
        return old, root, path

    async def accept(self, new_consent_bits: int = MAX_CONSENT_BITS) -> Optional[ConsentOutcome]:
        """
        Prove and submit a transition to ``new_consent_bits``.

        Returns:
            The outcome, or None if another accept was already in flight
        """
        if self._in_flight:
            logger.info("Accept already in flight; ignoring duplicate")
            return None
        self._in_flight = True
        try:
            return await self._accept(new_consent_bits)
        finally:
            self._in_flight = False

    async def _accept(self, new_consent_bits: int) -> ConsentOutcome:
        if (
            isinstance(new_consent_bits, bool)
            or not isinstance(new_consent_bits, int)
            or not 0 <= new_consent_bits <= MAX_CONSENT_BITS
        ):
            return ConsentOutcome(
                accepted=False, error=f"consent bits out of range: {new_consent_bits!r}"
            )
        try:
            secret = self._identity.secret_field()
        except ConfigurationError as exc:
            logger.error("Identity unavailable: %s", exc)
            return ConsentOutcome(accepted=False, error=str(exc))
        now = int(self._clock())

        try:
            old, root, path = await self._prior_state(secret)
        except ProofGenerationError as exc:
            return ConsentOutcome(accepted=False, error=str(exc))
        except (OSError, ProtocolError, trio.TooSlowError) as exc:
            logger.warning("Consent server unreachable: %s", exc)
            return ConsentOutcome(accepted=False, error=f"server unreachable: {exc}")

        if not is_bitwise_superset(old.consent_bits, new_consent_bits):
            logger.warning(
                "New consent bits %#04x drop categories granted in %#04x",
                new_consent_bits,
                old.consent_bits,
            )

        witness = TransitionWitness(
            identity_secret=secret,
            old_consent_bits=old.consent_bits,
            new_consent_bits=new_consent_bits,
            old_timestamp=old.timestamp,
            new_timestamp=now,
            path=path,
        )
        try:
            signals = derive_public_signals(
                witness,
                current_time=now,
                domain_salt=self._domain_salt,
                claimed_root=root,
                hasher=self._hasher,
            )
        except ValueError as exc:
            logger.info("No proof produced: %s", exc)
            return ConsentOutcome(accepted=False, error=str(exc))

        try:
            proof = await trio.to_thread.run_sync(
                self._adapter.prove, witness, signals, abandon_on_cancel=True
            )
        except (ProofGenerationError, ProverUnavailable) as exc:
            logger.info("No proof produced: %s", exc)
            return ConsentOutcome(accepted=False, error=str(exc))

        try:
            status, body = await self._transport.request(OP_VERIFY, proof.to_wire())
        except (OSError, ProtocolError, trio.TooSlowError) as exc:
            logger.warning("Consent server unreachable: %s", exc)
            return ConsentOutcome(
                accepted=False, mode=proof.kind.value, error=f"server unreachable: {exc}"
            )

        mode = body.get("mode", proof.kind.value)
        if status == 200 and body.get("success"):
            self._last_record = witness.new_record
            logger.info("Consent recorded (%s)", mode)
            return ConsentOutcome(accepted=True, root=body.get("root"), mode=mode)

        error = body.get("error")
        return ConsentOutcome(
            accepted=False,
            mode=mode,
            error=error,
            already_consented=error == NULLIFIER_REUSED_MESSAGE,
        )

    def reject(self) -> ConsentOutcome:
        """Decline: nothing is proven, stored or sent."""
        logger.info("Consent declined; nothing recorded")
        return ConsentOutcome(accepted=False)
