"""Consent proof exchange over trio TCP streams."""

from .client import (
    ConsentClient,
    ConsentOutcome,
    ConsentTransport,
    TcpTransport,
    fetch_health,
    parse_server_address,
    request_reset,
)
from .constants import DEFAULT_HOST, DEFAULT_PORT, PROTOCOL_ID
from .errors import ProtocolError, SchemaError, SizeLimitError
from .handler import ahandle_request_bytes, handle_request_bytes
from .messages import (
    ConsentRequest,
    ConsentResponse,
    decode_request,
    decode_response,
    encode_request,
    encode_response,
)
from .protocol import handle_consent_stream, serve_consent

__all__ = [
    "ConsentClient",
    "ConsentOutcome",
    "ConsentRequest",
    "ConsentResponse",
    "ConsentTransport",
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    "PROTOCOL_ID",
    "ProtocolError",
    "SchemaError",
    "SizeLimitError",
    "TcpTransport",
    "ahandle_request_bytes",
    "decode_request",
    "decode_response",
    "encode_request",
    "encode_response",
    "fetch_health",
    "handle_consent_stream",
    "handle_request_bytes",
    "parse_server_address",
    "request_reset",
    "serve_consent",
]
