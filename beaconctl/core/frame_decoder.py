"""Eddystone service-data frame decoding.

Only UID frames carry the namespace/instance pair used for registry matching.
URL, TLM, and EID frames are recognized by their tag byte and left undecoded.
"""

from __future__ import annotations

import re

from beaconctl.core.errors import FrameDecodeError
from beaconctl.core.model import DecodedFrame, FrameKind

EDDYSTONE_SERVICE_UUID = "0000feaa-0000-1000-8000-00805f9b34fb"

_UID_FRAME_MIN_LEN = 18
_NAMESPACE_SLICE = slice(2, 12)
_INSTANCE_SLICE = slice(12, 18)
_HEX_RE = re.compile(r"^[0-9a-f]*$")

_TAGS = {
    0x10: FrameKind.URL,
    0x20: FrameKind.TLM,
    0x30: FrameKind.EID,
}

_UNKNOWN = DecodedFrame(kind=FrameKind.UNKNOWN)


def decode(payload: bytes) -> DecodedFrame:
    if not payload:
        return _UNKNOWN

    tag = payload[0]
    if tag == 0x00:
        if len(payload) < _UID_FRAME_MIN_LEN:
            return _UNKNOWN
        return DecodedFrame(
            kind=FrameKind.UID,
            namespace=payload[_NAMESPACE_SLICE].hex().upper(),
            instance=payload[_INSTANCE_SLICE].hex().upper(),
        )
    return DecodedFrame(kind=_TAGS.get(tag, FrameKind.UNKNOWN))


def decode_hex(text: str) -> DecodedFrame:
    """Decode a payload given as hex text, e.g. from the command line.

    Whitespace and ``:`` separators are ignored.
    """
    normalized = re.sub(r"[\s:]", "", text).lower()
    if len(normalized) % 2 != 0:
        raise FrameDecodeError("Payload must have even-length hex")
    if not _HEX_RE.match(normalized):
        raise FrameDecodeError("Payload must contain only [0-9a-f]")
    return decode(bytes.fromhex(normalized))
