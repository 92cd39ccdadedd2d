"""Pure request/response handler for consent proof exchange."""

from __future__ import annotations

import logging
from functools import partial
from typing import Callable, Union

import trio

from ...consent_protocol.exceptions import MalformedRequest
from ...consent_protocol.service import (
    INTERNAL_ERROR_MESSAGE,
    AdmissionResult,
    VerificationService,
)
from ...consent_protocol.types import parse_field_element
from .constants import OP_HEALTH, OP_PATH, OP_RESET, OP_VERIFY
from .errors import ProtocolError, SizeLimitError
from .messages import ConsentRequest, ConsentResponse, decode_request, encode_response

logger = logging.getLogger(__name__)

MALFORMED_MESSAGE = "Malformed request"
UNKNOWN_COMMITMENT_MESSAGE = "Unknown commitment"
RESET_DISABLED_MESSAGE = "Reset disabled"


def error_response(status: int, message: str) -> ConsentResponse:
    return ConsentResponse(status=status, body={"success": False, "error": message})


def _admission_response(result: AdmissionResult) -> ConsentResponse:
    status, body = result.to_response()
    return ConsentResponse(status=status, body=body)


def _reset_response(service: VerificationService) -> ConsentResponse:
    try:
        body = service.reset()
    except PermissionError:
        return error_response(403, RESET_DISABLED_MESSAGE)
    return ConsentResponse(status=200, body=body)


def _path_response(service: VerificationService, commitment: int) -> ConsentResponse:
    try:
        body = service.membership_path_response(commitment)
    except KeyError:
        return error_response(400, UNKNOWN_COMMITMENT_MESSAGE)
    return ConsentResponse(status=200, body=body)


def _admin_call(
    req: ConsentRequest, service: VerificationService
) -> Union[ConsentResponse, Callable[[], ConsentResponse]]:
    """
    Answer an admin op directly, or return the call that needs the
    accumulator lock so the caller decides which thread runs it.
    """
    if req.op == OP_HEALTH:
        return ConsentResponse(status=200, body=service.health())

    if req.op == OP_RESET:
        return partial(_reset_response, service)

    if req.op == OP_PATH:
        try:
            commitment = parse_field_element(req.body.get("commitment"), "commitment")
        except MalformedRequest:
            return error_response(400, MALFORMED_MESSAGE)
        return partial(_path_response, service, commitment)

    return error_response(400, MALFORMED_MESSAGE)


def _encode(resp: ConsentResponse) -> bytes:
    try:
        return encode_response(resp)
    except SizeLimitError:
        return encode_response(error_response(500, "response too large"))


def _decode(request_blob: bytes) -> ConsentRequest | ConsentResponse:
    try:
        return decode_request(request_blob)
    except ProtocolError as exc:
        logger.info("Bad request: %s", exc)
        return error_response(400, MALFORMED_MESSAGE)


def handle_request_bytes(request_blob: bytes, service: VerificationService) -> bytes:
    """Decode one request, run it against ``service``, encode the response."""
    req = _decode(request_blob)
    if isinstance(req, ConsentResponse):
        return _encode(req)

    try:
        if req.op == OP_VERIFY:
            response = _admission_response(service.submit(req.body))
        else:
            outcome = _admin_call(req, service)
            response = outcome if isinstance(outcome, ConsentResponse) else outcome()
    except Exception:
        logger.exception("Unhandled error serving op=%s", req.op)
        response = error_response(500, INTERNAL_ERROR_MESSAGE)
    return _encode(response)


async def ahandle_request_bytes(
    request_blob: bytes, service: VerificationService
) -> bytes:
    """
    Trio variant: verification is bounded by the service's verify timeout,
    and ops that take the accumulator lock run in a worker thread.
    """
    req = _decode(request_blob)
    if isinstance(req, ConsentResponse):
        return _encode(req)

    try:
        if req.op == OP_VERIFY:
            response = _admission_response(await service.asubmit(req.body))
        else:
            outcome = _admin_call(req, service)
            if isinstance(outcome, ConsentResponse):
                response = outcome
            else:
                response = await trio.to_thread.run_sync(outcome)
    except Exception:
        logger.exception("Unhandled error serving op=%s", req.op)
        response = error_response(500, INTERNAL_ERROR_MESSAGE)
    return _encode(response)
