"""JSON wire format for the clock synchronization exchange.

Messages (one JSON object per WebSocket text frame):
- client -> server: {"type": "sync_req", "t1": <ms>}
- server -> client: {"type": "sync_res", "t1": <ms>, "t2": <ms>, "t3": <ms>}

Requests and responses carry no correlation id; a response is matched to
whichever probe is outstanding, so probes must never be pipelined.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from numbers import Real
from typing import Any, Dict, Optional, Union

SYNC_REQUEST = "sync_req"
SYNC_RESPONSE = "sync_res"


@dataclass(frozen=True)
class SyncResponse:
    t1: float
    t2: float
    t3: float


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def parse_message(raw: Union[str, bytes]) -> Optional[Dict[str, Any]]:
    """Parse a frame into a dict, or return None when it is not a JSON object."""
    try:
        msg = json.loads(raw)
    except (TypeError, ValueError, UnicodeDecodeError):
        return None
    if not isinstance(msg, dict):
        return None
    return msg


def encode_sync_request(t1: float) -> str:
    return json.dumps({"type": SYNC_REQUEST, "t1": t1})


def decode_sync_response(raw: Union[str, bytes]) -> Optional[SyncResponse]:
    """Decode a ``sync_res`` frame; anything else yields None."""
    msg = parse_message(raw)
    if msg is None or msg.get("type") != SYNC_RESPONSE:
        return None
    t1, t2, t3 = msg.get("t1"), msg.get("t2"), msg.get("t3")
    if not (_is_number(t1) and _is_number(t2) and _is_number(t3)):
        return None
    return SyncResponse(t1=t1, t2=t2, t3=t3)


def build_sync_response(msg: Dict[str, Any], t2: float, t3: float) -> Optional[Dict[str, Any]]:
    """Build the responder's reply to a parsed request.

    Returns None for anything that is not a well-formed ``sync_req``.
    """
    if msg.get("type") != SYNC_REQUEST:
        return None
    t1 = msg.get("t1")
    if not _is_number(t1):
        return None
    return {"type": SYNC_RESPONSE, "t1": t1, "t2": t2, "t3": t3}
