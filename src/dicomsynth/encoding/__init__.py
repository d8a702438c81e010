"""Explicit VR little endian encoder."""

from .elements import DataElement, scan_elements
from .writer import (
    APP_VERSION,
    EncodedObject,
    encode_object,
    encode_study,
    object_path_hint,
    verify_encoded_object,
)

__all__ = [
    "APP_VERSION",
    "DataElement",
    "EncodedObject",
    "encode_object",
    "encode_study",
    "object_path_hint",
    "scan_elements",
    "verify_encoded_object",
]
