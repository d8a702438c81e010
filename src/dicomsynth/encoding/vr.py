"""
Value representation encoders.

Values are turned into the exact bytes stored in an element's value field,
already padded to even length:
- text VRs pad with a trailing space (0x20)
- UI and OB pad with a trailing NUL (0x00)
- binary numeric VRs are little-endian and always even
"""

import struct
from typing import Iterable, Union

# 12-byte header (2 reserved bytes + 32-bit length) in explicit VR little endian
LONG_FORM_VRS = frozenset({"OB", "OD", "OF", "OL", "OV", "OW", "SQ", "UC", "UN", "UR", "UT"})

TEXT_VRS = frozenset({
    "AE", "AS", "CS", "DA", "DS", "DT", "IS", "LO", "LT", "PN",
    "SH", "ST", "TM", "UC", "UR", "UT",
})
NUL_PADDED_VRS = frozenset({"UI", "OB", "UN"})

SHORT_FORM_MAX_LENGTH = 0xFFFF
LONG_FORM_MAX_LENGTH = 0xFFFFFFFE

_STRUCT_FORMATS = {
    "US": "<H",
    "SS": "<h",
    "UL": "<I",
    "SL": "<i",
    "FL": "<f",
    "FD": "<d",
}

Value = Union[str, int, float, bytes, Iterable]


def header_length(vr: str) -> int:
    """Bytes taken by tag + VR + length for one element."""
    return 12 if vr in LONG_FORM_VRS else 8


def pad_value(raw: bytes, vr: str) -> bytes:
    """Pad to even length with the VR's padding byte."""
    if len(raw) % 2 == 0:
        return raw
    return raw + (b"\x00" if vr in NUL_PADDED_VRS or vr not in TEXT_VRS else b" ")


def format_ds(value: float) -> str:
    """Decimal string of at most 16 characters."""
    if float(value).is_integer():
        text = str(int(value))
    else:
        text = f"{value:.10g}"
    if len(text) > 16:
        text = f"{value:.9e}"
    return text


def _as_text(value: Value, vr: str) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return "\\".join(_as_text(v, vr) for v in value)
    if vr == "DS":
        return format_ds(value)
    if vr == "IS":
        return str(int(value))
    return str(value)


def encode_value(vr: str, value: Value) -> bytes:
    """
    Encode a Python value for ``vr`` and pad it to even length.

    Args:
        vr: Two-letter value representation
        value: str (text/UI), int/float or a sequence of them (numeric and
               multi-valued text), bytes (OB/OW/UN)

    Returns:
        The padded value field

    Raises:
        ValueError: if the padded value cannot be carried by the VR's length field
    """
    if value is None:
        raw = b""
    elif vr in _STRUCT_FORMATS:
        values = value if isinstance(value, (list, tuple)) else [value]
        fmt = _STRUCT_FORMATS[vr]
        raw = b"".join(struct.pack(fmt, v) for v in values)
    elif vr in ("OB", "OW", "UN"):
        raw = bytes(value)
    elif vr == "UI":
        raw = str(value).encode("ascii")
    elif vr in TEXT_VRS:
        raw = _as_text(value, vr).encode("latin-1")
    else:
        raise ValueError(f"Value representation {vr} is not supported")

    padded = pad_value(raw, vr)
    check_length(vr, len(padded))
    return padded


def check_length(vr: str, length: int) -> None:
    """
    Raises:
        ValueError: if ``length`` does not fit the VR's length field
    """
    if vr in LONG_FORM_VRS:
        if length > LONG_FORM_MAX_LENGTH:
            raise ValueError(f"{vr} value of {length} bytes exceeds the 32-bit length field")
    elif length > SHORT_FORM_MAX_LENGTH:
        raise ValueError(f"{vr} value of {length} bytes exceeds the 16-bit length field")
