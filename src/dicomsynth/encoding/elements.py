"""
Data elements in explicit VR little endian.

Element layout:
    short form: group(2) element(2) VR(2) length(2) value
    long form:  group(2) element(2) VR(2) 0x0000 length(4) value

Sequences are written with measured lengths: every item is
(FFFE,E000) + 32-bit item length + the item's elements, and the sequence
length is the sum of its items. Undefined length is never produced.
"""

import re
import struct
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from pydicom.datadict import dictionary_VR, tag_for_keyword

from ..errors import EncodingInvariantViolation
from .vr import LONG_FORM_VRS, check_length, encode_value, header_length

ITEM_TAG = (0xFFFE, 0xE000)
ITEM_HEADER_LENGTH = 8
UNDEFINED_LENGTH = 0xFFFFFFFF

_VR_PATTERN = re.compile(r"^[A-Z]{2}$")


def format_tag(tag: int) -> str:
    return f"({tag >> 16:04X},{tag & 0xFFFF:04X})"


def keyword_tag(keyword: str) -> int:
    """
    Raises:
        KeyError: if the keyword is not in the data dictionary
    """
    tag = tag_for_keyword(keyword)
    if tag is None:
        raise KeyError(f"Unknown DICOM keyword: {keyword}")
    return int(tag)


@dataclass(frozen=True)
class DataElement:
    """One encoded element: tag, VR and the padded value field."""
    tag: int
    vr: str
    value: bytes

    def __post_init__(self):
        if not _VR_PATTERN.match(self.vr):
            raise ValueError(f"Invalid VR {self.vr!r} for {format_tag(self.tag)}")
        if len(self.value) % 2:
            raise ValueError(f"{format_tag(self.tag)} value has odd length {len(self.value)}")
        check_length(self.vr, len(self.value))

    @classmethod
    def from_keyword(cls, keyword: str, value, vr: Optional[str] = None) -> "DataElement":
        """
        Build an element from its dictionary keyword.

        The VR comes from the pydicom data dictionary unless given explicitly;
        ambiguous dictionary VRs (e.g. "OB or OW") must be given explicitly.
        """
        tag = keyword_tag(keyword)
        if vr is None:
            vr = dictionary_VR(tag)
            if " or " in vr:
                raise ValueError(f"{keyword} has ambiguous VR {vr!r}; pass one explicitly")
        return cls(tag, vr, encode_value(vr, value))

    @classmethod
    def sequence(cls, keyword: str, items: Sequence[Iterable["DataElement"]]) -> "DataElement":
        """Build an SQ element whose items carry measured lengths."""
        encoded = b"".join(encode_item(item) for item in items)
        return cls(keyword_tag(keyword), "SQ", encoded)

    @property
    def group(self) -> int:
        return self.tag >> 16

    @property
    def element(self) -> int:
        return self.tag & 0xFFFF

    @property
    def encoded_length(self) -> int:
        """Header plus value length, i.e. bytes produced by serialize()."""
        return header_length(self.vr) + len(self.value)

    def serialize(self) -> bytes:
        vr = self.vr.encode("ascii")
        if self.vr in LONG_FORM_VRS:
            header = struct.pack("<HH2sHI", self.group, self.element, vr, 0, len(self.value))
        else:
            header = struct.pack("<HH2sH", self.group, self.element, vr, len(self.value))
        return header + self.value


def encode_item(elements: Iterable[DataElement]) -> bytes:
    body = serialize_elements(elements, "sequence item")
    return struct.pack("<HHI", ITEM_TAG[0], ITEM_TAG[1], len(body)) + body


def sort_elements(elements: Iterable[DataElement], context: str) -> List[DataElement]:
    """Order elements by ascending tag; duplicated tags are an encoder defect."""
    ordered = sorted(elements, key=lambda e: e.tag)
    verify_tag_order([e.tag for e in ordered], context)
    return ordered


def serialize_elements(elements: Iterable[DataElement], context: str = "data set") -> bytes:
    return b"".join(e.serialize() for e in sort_elements(elements, context))


def verify_tag_order(tags: Sequence[int], context: str) -> None:
    """
    Raises:
        EncodingInvariantViolation: if tags are not strictly ascending
    """
    for previous, current in zip(tags, tags[1:]):
        if current == previous:
            raise EncodingInvariantViolation(f"{context}: duplicate tag {format_tag(current)}")
        if current < previous:
            raise EncodingInvariantViolation(
                f"{context}: tag {format_tag(current)} follows {format_tag(previous)}"
            )


# ═══════════════════════════════════════════════════════════════════════════════
# SCANNER
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ScannedElement:
    """Position of one top-level element inside an encoded buffer."""
    tag: int
    vr: str
    offset: int
    value_offset: int
    length: int

    @property
    def end(self) -> int:
        return self.value_offset + self.length


def scan_elements(buffer: bytes, start: int = 0, end: Optional[int] = None) -> List[ScannedElement]:
    """
    Walk top-level explicit VR little endian elements in ``buffer[start:end]``.

    Sequence contents are skipped using the sequence's own length.

    Raises:
        EncodingInvariantViolation: on truncation, malformed VRs or undefined lengths
    """
    end = len(buffer) if end is None else end
    found = []
    pos = start
    while pos < end:
        if pos + 8 > end:
            raise EncodingInvariantViolation(f"Truncated element header at offset {pos}")
        group, element = struct.unpack_from("<HH", buffer, pos)
        vr = buffer[pos + 4:pos + 6].decode("ascii", errors="replace")
        if not _VR_PATTERN.match(vr):
            raise EncodingInvariantViolation(f"Malformed VR {vr!r} at offset {pos}")
        if vr in LONG_FORM_VRS:
            if pos + 12 > end:
                raise EncodingInvariantViolation(f"Truncated long-form header at offset {pos}")
            (length,) = struct.unpack_from("<I", buffer, pos + 8)
            value_offset = pos + 12
        else:
            (length,) = struct.unpack_from("<H", buffer, pos + 6)
            value_offset = pos + 8
        tag = (group << 16) | element
        if length == UNDEFINED_LENGTH:
            raise EncodingInvariantViolation(f"Undefined length for {format_tag(tag)}")
        if value_offset + length > end:
            raise EncodingInvariantViolation(
                f"{format_tag(tag)} declares {length} bytes, only {end - value_offset} remain"
            )
        found.append(ScannedElement(tag, vr, pos, value_offset, length))
        pos = value_offset + length
    return found
