"""
Telephony audio frame decoding.

Twilio Media Streams carry base64-wrapped G.711 mu-law audio at 8 kHz, one
channel. Speech services expect 16-bit signed little-endian linear PCM at the
same rate, so every mu-law byte expands to exactly two output bytes.
"""

import base64
import binascii
import struct
from typing import Optional

from callrelay.relay.errors import DecodeError

ULAW_BIAS = 0x84


def _expand_ulaw(value: int) -> int:
    """Expand one mu-law code word to a linear sample (ITU-T G.711)"""
    value = ~value & 0xFF
    sign = value & 0x80
    exponent = (value >> 4) & 0x07
    mantissa = value & 0x0F
    sample = (((mantissa << 3) + ULAW_BIAS) << exponent) - ULAW_BIAS
    return -sample if sign else sample


_ULAW_TO_PCM16 = tuple(struct.pack("<h", _expand_ulaw(code)) for code in range(256))


def ulaw_to_pcm16(data: bytes) -> bytes:
    """Convert raw mu-law bytes to 16-bit little-endian PCM"""
    return b"".join(map(_ULAW_TO_PCM16.__getitem__, data))


def decode_frame(payload: Optional[str]) -> bytes:
    """
    Decode one Media Streams payload into PCM16.

    Empty payloads decode to empty output. Malformed base64 raises
    DecodeError so the caller can drop just this frame.
    """
    if not payload:
        return b""

    try:
        ulaw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Invalid base64 audio payload: {e}") from e

    return ulaw_to_pcm16(ulaw)
