"""
Command-line interface for the zero-knowledge consent protocol.

Runs the verification server, submits consent from a local identity, and
inspects or resets a running server.
"""

import hashlib
import logging
import sys
from typing import NoReturn

import click

from zk_consent import __version__
from zk_consent.consent_protocol.accumulator import ConsentAccumulator
from zk_consent.consent_protocol.adapter import ProofAdapter
from zk_consent.consent_protocol.config import MAX_CONSENT_BITS
from zk_consent.consent_protocol.exceptions import ConsentProtocolError
from zk_consent.consent_protocol.factory import get_proof_backend
from zk_consent.consent_protocol.feature_flags import valid_backends
from zk_consent.consent_protocol.identity import IdentityStore
from zk_consent.consent_protocol.security import domain_salt_for, get_default_hasher
from zk_consent.consent_protocol.service import VerificationService
from zk_consent.consent_protocol.store import CborFileStore, InMemoryStore
from zk_consent.network.consentzk.client import (
    ConsentClient,
    TcpTransport,
    fetch_health,
    parse_server_address,
    request_reset,
)
from zk_consent.network.consentzk.constants import DEFAULT_HOST, DEFAULT_PORT
from zk_consent.network.consentzk.errors import ProtocolError
from zk_consent.settings import load_settings

_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]
_DEFAULT_SERVER = f"{DEFAULT_HOST}:{DEFAULT_PORT}"


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _fail(message: str, code: int = 1) -> NoReturn:
    click.echo(click.style(f"✗ {message}", fg="red"), err=True)
    sys.exit(code)


def _build_backend(name, setup_key=None):
    kwargs = {}
    if name == "mock" and setup_key is not None:
        kwargs["setup_key"] = setup_key
    return get_proof_backend(prefer=name, **kwargs)


def _transport(server: str) -> TcpTransport:
    try:
        host, port = parse_server_address(server)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--server")
    return TcpTransport(host, port)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity",
)
def main(log_level):
    """
    Zero-knowledge cookie consent.

    Prove consent transitions without revealing identity, and admit them
    into a Merkle accumulator with replay protection.
    """
    _configure_logging(log_level)


@main.command()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="YAML settings file")
@click.option("--host", type=str, help=f"Listen host (default: {DEFAULT_HOST})")
@click.option("--port", type=int, help=f"Listen port (default: {DEFAULT_PORT})")
@click.option("--backend", type=click.Choice(valid_backends()), help="Proof backend")
@click.option("--state-file", type=click.Path(dir_okay=False), help="Accumulator log (default: in memory)")
@click.option("--allow-reset", is_flag=True, help="Expose the reset operation")
@click.option("--no-attested", is_flag=True, help="Refuse attested (offline) claims")
@click.option(
    "--log-level",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    help="Logging verbosity for the server",
)
def serve(config_path, host, port, backend, state_file, allow_reset, no_attested, log_level):
    """
    Run the consent verification server.

    Examples:

        zk-consent serve --port 8100

        zk-consent serve --state-file consent.log --allow-reset
    """
    import trio

    from zk_consent.network.consentzk.protocol import serve_consent

    if log_level:
        logging.getLogger().setLevel(getattr(logging, log_level.upper()))

    try:
        settings = load_settings(config_path).with_overrides(
            host=host,
            port=port,
            backend=backend,
            state_file=state_file,
            allow_reset=True if allow_reset else None,
            allow_attested=False if no_attested else None,
        )
        store = CborFileStore(settings.state_file) if settings.state_file else InMemoryStore()
        accumulator = ConsentAccumulator(store)
        adapter = ProofAdapter(
            _build_backend(settings.backend, settings.setup_key()),
            allow_attested_fallback=settings.allow_attested,
        )
    except (ConsentProtocolError, ValueError, ImportError) as exc:
        _fail(f"Cannot start server: {exc}")

    service = VerificationService(
        accumulator,
        adapter,
        allow_attested=settings.allow_attested,
        verify_timeout=settings.verify_timeout,
        max_clock_skew=settings.max_clock_skew,
        allow_reset=settings.allow_reset,
    )

    click.echo(click.style("Consent verification server", fg="cyan", bold=True))
    click.echo(f"  • listening:  {settings.host}:{settings.port}")
    click.echo(f"  • backend:    {adapter.backend.backend_name}")
    click.echo(f"  • state:      {settings.state_file or 'in memory'} ({len(accumulator)} leaves)")
    click.echo(f"  • attested:   {'allowed' if settings.allow_attested else 'refused'}")
    if settings.allow_reset:
        click.echo(click.style("  • reset is ENABLED (test/demo only)", fg="yellow"))

    try:
        trio.run(serve_consent, service, settings.host, settings.port)
    except KeyboardInterrupt:
        click.echo("\nStopped.")
    except OSError as exc:
        _fail(f"Server error: {exc}")


@main.command()
@click.option("--domain", required=True, help="Domain the consent applies to")
@click.option(
    "--bits",
    type=click.IntRange(0, MAX_CONSENT_BITS),
    default=MAX_CONSENT_BITS,
    show_default=True,
    help="Consent category bitfield",
)
@click.option("--server", default=_DEFAULT_SERVER, show_default=True, help="host:port")
@click.option("--identity-file", type=click.Path(dir_okay=False), help="Identity secret file")
@click.option("--backend", type=click.Choice(valid_backends()), help="Proof backend")
def accept(domain, bits, server, identity_file, backend):
    """Prove and submit consent for DOMAIN."""
    import trio

    transport = _transport(server)
    try:
        proof_backend = _build_backend(backend)
        client = ConsentClient(
            transport,
            IdentityStore(identity_file),
            domain,
            ProofAdapter(proof_backend),
        )
    except (ConsentProtocolError, ValueError, ImportError) as exc:
        _fail(str(exc))

    outcome = trio.run(client.accept, bits)
    if outcome is None:
        _fail("Another consent submission is in flight")
    if outcome.accepted:
        click.echo(click.style("✓ Consent recorded", fg="green"))
        click.echo(f"  • mode: {outcome.mode}")
        if outcome.mode == "attested":
            click.echo(click.style("  • attested claim: weaker assurance than a ZK proof", fg="yellow"))
        click.echo(f"  • root: {outcome.root}")
    elif outcome.already_consented:
        click.echo(click.style("✓ You already consented on this domain", fg="yellow"))
    else:
        _fail(f"Consent not recorded: {outcome.error}")


@main.command()
@click.option("--server", default=_DEFAULT_SERVER, show_default=True, help="host:port")
def status(server):
    """Show server health, accumulator size and root."""
    import trio

    try:
        body = trio.run(fetch_health, _transport(server))
    except (OSError, ProtocolError, trio.TooSlowError) as exc:
        _fail(f"Server unreachable: {exc}")
    click.echo(f"status:   {body.get('status')}")
    click.echo(f"treeSize: {body.get('treeSize')}")
    click.echo(f"root:     {body.get('root')}")


@main.command()
@click.option("--server", default=_DEFAULT_SERVER, show_default=True, help="host:port")
@click.confirmation_option(prompt="Clear every admitted commitment and nullifier?")
def reset(server):
    """Reset a test/demo server to the empty state."""
    import trio

    try:
        status_code, body = trio.run(request_reset, _transport(server))
    except (OSError, ProtocolError, trio.TooSlowError) as exc:
        _fail(f"Server unreachable: {exc}")
    if status_code != 200:
        _fail(f"Reset refused: {body.get('error')}")
    click.echo(click.style("✓ Server reset", fg="green"))


@main.group()
def identity():
    """Inspect or erase the local identity secret."""


@identity.command("show")
@click.option("--identity-file", type=click.Path(dir_okay=False), help="Identity secret file")
@click.option("--domain", help="Also show the nullifier prefix for this domain")
def identity_show(identity_file, domain):
    """Show where the identity lives and a short fingerprint (never the secret)."""
    store = IdentityStore(identity_file)
    click.echo(f"path: {store.path}")
    try:
        secret = store.load()
    except ConsentProtocolError as exc:
        _fail(str(exc))
    if secret is None:
        click.echo("status: absent (created on first accept)")
        return
    fingerprint = hashlib.sha3_256(secret).hexdigest()[:16]
    click.echo("status: present")
    click.echo(f"fingerprint: {fingerprint}")
    if domain:
        nullifier = get_default_hasher().nullifier(store.secret_field(), domain_salt_for(domain))
        click.echo(f"nullifier[{domain}]: {str(nullifier)[:12]}…")


@identity.command("forget")
@click.option("--identity-file", type=click.Path(dir_okay=False), help="Identity secret file")
@click.confirmation_option(prompt="Erase the identity secret? Future consents will be unlinkable to past ones.")
def identity_forget(identity_file):
    """Erase the local identity secret."""
    store = IdentityStore(identity_file)
    store.forget()
    click.echo(click.style(f"✓ Identity erased: {store.path}", fg="green"))


@main.command()
def version():
    """Show version information."""
    click.echo(f"\nzk-consent v{__version__}")
    click.echo("Prototype - requires crypto review before production use\n")


if __name__ == "__main__":
    main()
