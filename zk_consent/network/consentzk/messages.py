"""CBOR envelopes for consent proof exchange.

Request:  {"msg_v": 1, "op": "verify" | "reset" | "health" | "path", "body": {...}}
Response: {"msg_v": 1, "status": <int>, "body": {...}}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

import cbor2

from .constants import MSG_V, OPS, REQUEST_MAX_BYTES, RESPONSE_MAX_BYTES
from .errors import SchemaError, SizeLimitError


@dataclass(frozen=True)
class ConsentRequest:
    op: str
    body: Dict[str, Any] = field(default_factory=dict)
    msg_v: int = MSG_V

    def validate(self) -> None:
        if self.msg_v != MSG_V:
            raise SchemaError("unsupported msg_v")
        if self.op not in OPS:
            raise SchemaError(f"unsupported op: {self.op!r}")
        if not isinstance(self.body, dict):
            raise SchemaError("body must be a map")


@dataclass(frozen=True)
class ConsentResponse:
    status: int
    body: Dict[str, Any] = field(default_factory=dict)
    msg_v: int = MSG_V

    def validate(self) -> None:
        if self.msg_v != MSG_V:
            raise SchemaError("unsupported msg_v")
        if isinstance(self.status, bool) or not isinstance(self.status, int):
            raise SchemaError("status must be an integer")
        if not 100 <= self.status <= 599:
            raise SchemaError("status out of range")
        if not isinstance(self.body, dict):
            raise SchemaError("body must be a map")

    @property
    def ok(self) -> bool:
        return self.status == 200


def _loads_map(blob: Any, max_bytes: int, label: str) -> Dict[str, Any]:
    if not isinstance(blob, (bytes, bytearray)):
        raise SchemaError(f"{label} blob must be bytes")
    if len(blob) > max_bytes:
        raise SizeLimitError(f"{label} too large")
    try:
        payload = cbor2.loads(bytes(blob))
    except (cbor2.CBORDecodeError, ValueError) as exc:
        raise SchemaError(f"{label} is not valid CBOR") from exc
    if not isinstance(payload, dict):
        raise SchemaError(f"{label} payload must be a map")
    return payload


def _msg_v(payload: Dict[str, Any]) -> int:
    value = payload.get("msg_v", -1)
    if isinstance(value, bool) or not isinstance(value, int):
        raise SchemaError("msg_v must be an integer")
    return value


def encode_request(req: ConsentRequest) -> bytes:
    req.validate()
    blob = cbor2.dumps({"msg_v": req.msg_v, "op": req.op, "body": req.body})
    if len(blob) > REQUEST_MAX_BYTES:
        raise SizeLimitError("request too large")
    return blob


def decode_request(blob: bytes) -> ConsentRequest:
    payload = _loads_map(blob, REQUEST_MAX_BYTES, "request")
    op = payload.get("op", "")
    if not isinstance(op, str):
        raise SchemaError("op must be a string")
    req = ConsentRequest(op=op, body=payload.get("body", {}), msg_v=_msg_v(payload))
    req.validate()
    return req


def encode_response(resp: ConsentResponse) -> bytes:
    resp.validate()
    blob = cbor2.dumps({"msg_v": resp.msg_v, "status": resp.status, "body": resp.body})
    if len(blob) > RESPONSE_MAX_BYTES:
        raise SizeLimitError("response too large")
    return blob


def decode_response(blob: bytes) -> ConsentResponse:
    payload = _loads_map(blob, RESPONSE_MAX_BYTES, "response")
    resp = ConsentResponse(
        status=payload.get("status", -1),
        body=payload.get("body", {}),
        msg_v=_msg_v(payload),
    )
    resp.validate()
    return resp
