"""Recover pixel dimensions from JPEG, PNG and WebP headers without decoding."""

import struct
from typing import NamedTuple

import structlog

logger = structlog.get_logger()


class Dimensions(NamedTuple):
    width: int
    height: int


DEFAULT_DIMENSIONS = Dimensions(1200, 630)

JPEG_SIGNATURE = b"\xff\xd8"
PNG_SIGNATURE = b"\x89PNG"

# SOF0..SOF15 without DHT (C4), JPG (C8) and DAC (CC)
_JPEG_SOF_MARKERS = frozenset(range(0xC0, 0xD0)) - {0xC4, 0xC8, 0xCC}
_JPEG_SOS = 0xDA
_VP8_START_CODE = b"\x9d\x01\x2a"


class _MalformedImage(ValueError):
    pass


def _jpeg_dimensions(data: bytes) -> Dimensions | None:
    offset = 2
    while offset < len(data):
        if data[offset] != 0xFF:
            raise _MalformedImage(f"expected marker at offset {offset}")
        marker = data[offset + 1]
        if marker == 0xFF:
            # fill byte
            offset += 1
            continue
        if marker in _JPEG_SOF_MARKERS:
            height, width = struct.unpack_from(">HH", data, offset + 5)
            return Dimensions(width, height)
        if marker == _JPEG_SOS:
            return None
        (length,) = struct.unpack_from(">H", data, offset + 2)
        offset += 2 + length
    return None


def _png_dimensions(data: bytes) -> Dimensions:
    width, height = struct.unpack_from(">II", data, 16)
    return Dimensions(width, height)


def _webp_dimensions(data: bytes) -> Dimensions | None:
    chunk = data[12:16]
    if chunk == b"VP8 ":
        if data[23:26] != _VP8_START_CODE:
            return None
        width, height = struct.unpack_from("<HH", data, 26)
        return Dimensions(width & 0x3FFF, height & 0x3FFF)
    if chunk == b"VP8L":
        (bits,) = struct.unpack_from("<I", data, 21)
        return Dimensions((bits & 0x3FFF) + 1, ((bits >> 14) & 0x3FFF) + 1)
    if chunk == b"VP8X":
        if len(data) < 30:
            raise _MalformedImage("truncated VP8X header")
        width = int.from_bytes(data[24:27], "little") + 1
        height = int.from_bytes(data[27:30], "little") + 1
        return Dimensions(width, height)
    return None


def detect_format(data: bytes) -> str | None:
    if data[:2] == JPEG_SIGNATURE:
        return "jpeg"
    if data[:4] == PNG_SIGNATURE:
        return "png"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    return None


_PARSERS = {
    "jpeg": _jpeg_dimensions,
    "png": _png_dimensions,
    "webp": _webp_dimensions,
}


def sniff_dimensions(data: bytes, default: Dimensions = DEFAULT_DIMENSIONS) -> Dimensions:
    """Best-effort width/height of ``data``; never raises.

    Unknown formats, truncated or malformed headers and zero sizes all fall
    back to ``default``.
    """
    fmt = detect_format(data)
    if fmt is None:
        logger.debug("dimension_sniff_unrecognized", size=len(data))
        return default
    try:
        dims = _PARSERS[fmt](data)
    except Exception as e:
        logger.debug("dimension_sniff_failed", format=fmt, error=str(e))
        return default
    if dims is None or dims.width <= 0 or dims.height <= 0:
        logger.debug("dimension_sniff_failed", format=fmt, error="no usable size")
        return default
    return dims
