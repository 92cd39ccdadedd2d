"""Protocol constants for consent proof exchange."""

from __future__ import annotations

PROTOCOL_ID = "/zkconsent/1.0.0"
MSG_V = 1

OP_VERIFY = "verify"
OP_RESET = "reset"
OP_HEALTH = "health"
OP_PATH = "path"
OPS = frozenset({OP_VERIFY, OP_RESET, OP_HEALTH, OP_PATH})

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8100

REQUEST_MAX_BYTES = 65536
RESPONSE_MAX_BYTES = 65536

READ_TIMEOUT = 5.0
WRITE_TIMEOUT = 5.0
TOTAL_TIMEOUT = 120.0


def is_valid_op(op: str) -> bool:
    return op in OPS
