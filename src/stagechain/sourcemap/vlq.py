"""Base64 VLQ codec used by the Source Map v3 ``mappings`` field."""

from __future__ import annotations

from collections.abc import Iterable

from stagechain.errors import MappingError

_BASE64 = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_DECODE_TABLE = {char: index for index, char in enumerate(_BASE64)}

_SHIFT = 5
_CONTINUATION = 1 << _SHIFT
_MASK = _CONTINUATION - 1


def encode_vlq(values: Iterable[int]) -> str:
    """Encode a sequence of signed integers as one VLQ segment."""
    out: list[str] = []
    for value in values:
        vlq = (-value << 1) | 1 if value < 0 else value << 1
        while True:
            digit = vlq & _MASK
            vlq >>= _SHIFT
            if vlq:
                digit |= _CONTINUATION
            out.append(_BASE64[digit])
            if not vlq:
                break
    return "".join(out)


def decode_vlq(segment: str) -> list[int]:
    """Decode one VLQ segment into its signed integers.

    Raises:
        MappingError: If the segment has a non-base64 character or ends
            in the middle of a value
    """
    values: list[int] = []
    value = 0
    shift = 0
    pending = False

    for char in segment:
        digit = _DECODE_TABLE.get(char)
        if digit is None:
            raise MappingError(f"Invalid base64 VLQ character {char!r} in segment {segment!r}")

        value += (digit & _MASK) << shift
        if digit & _CONTINUATION:
            shift += _SHIFT
            pending = True
            continue

        values.append(-(value >> 1) if value & 1 else value >> 1)
        value = 0
        shift = 0
        pending = False

    if pending:
        raise MappingError(f"Truncated VLQ segment {segment!r}")
    return values
