"""trio stream handler and TCP server for consent proof exchange."""

from __future__ import annotations

import logging
from typing import Any

import trio

from ...consent_protocol.service import VerificationService
from .constants import DEFAULT_HOST, DEFAULT_PORT, RESPONSE_MAX_BYTES, TOTAL_TIMEOUT
from .errors import ProtocolError
from .framing import read_frame, write_frame
from .handler import MALFORMED_MESSAGE, ahandle_request_bytes, error_response
from .messages import encode_response

logger = logging.getLogger(__name__)

_CLOSE_TIMEOUT = 1.0


async def _close_quietly(stream: Any) -> None:
    with trio.move_on_after(_CLOSE_TIMEOUT):
        try:
            await stream.aclose()
        except (trio.BrokenResourceError, trio.ClosedResourceError):
            logger.debug("Stream already closed")


async def handle_consent_stream(stream: Any, service: VerificationService) -> None:
    """Serve exactly one request/response exchange on ``stream``, then close it."""
    try:
        with trio.fail_after(TOTAL_TIMEOUT):
            request_blob = await read_frame(stream)
            response_blob = await ahandle_request_bytes(request_blob, service)
            await write_frame(stream, response_blob, max_bytes=RESPONSE_MAX_BYTES)
    except ProtocolError as exc:
        logger.info("Rejecting malformed frame: %s", exc)
        try:
            await write_frame(
                stream,
                encode_response(error_response(400, MALFORMED_MESSAGE)),
                max_bytes=RESPONSE_MAX_BYTES,
            )
        except (trio.BrokenResourceError, trio.ClosedResourceError, trio.TooSlowError):
            logger.debug("Peer went away before the error response was sent")
    except trio.TooSlowError:
        logger.info("Connection timed out")
    except (trio.BrokenResourceError, trio.ClosedResourceError) as exc:
        logger.info("Connection lost: %s", exc)
    finally:
        await _close_quietly(stream)


async def serve_consent(
    service: VerificationService,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    *,
    task_status: Any = trio.TASK_STATUS_IGNORED,
) -> None:
    """
    Accept connections until cancelled.

    ``task_status.started`` receives trio's listener list, so callers using
    ``nursery.start`` with port 0 can read back the bound port.
    """

    async def _handler(stream: Any) -> None:
        await handle_consent_stream(stream, service)

    logger.info("Serving consent verification on %s:%d", host, port)
    await trio.serve_tcp(_handler, port, host=host, task_status=task_status)
