"""
Modality lookup table.

Every supported modality maps to exactly one object class (SOP Class UID),
one set of geometry defaults and one pixel-synthesis pattern. Anything outside
the enumeration is rejected with UnsupportedModality.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from pydicom.uid import UID

from .errors import UnsupportedModality


class Modality(str, Enum):
    """Supported modality codes (DICOM tag 0008,0060)."""
    CR = "CR"
    DX = "DX"
    CT = "CT"
    MR = "MR"
    US = "US"
    MG = "MG"
    NM = "NM"
    PT = "PT"
    RT = "RT"
    SR = "SR"

    @classmethod
    def parse(cls, value: object) -> "Modality":
        """Parse a modality code case-insensitively."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        raise UnsupportedModality(value)


class PatternVariant(str, Enum):
    """Procedural pixel pattern families."""
    RADIOGRAPHY = "radiography"
    CT = "ct"
    MR = "mr"
    ULTRASOUND = "ultrasound"
    MAMMOGRAPHY = "mammography"
    HOT_SPOT = "hot_spot"
    TREATMENT_FIELD = "treatment_field"
    GENERIC = "generic"
    NONE = "none"


@dataclass(frozen=True)
class GeometryDefaults:
    """Default raster size for a modality."""
    width: int
    height: int
    bits_per_pixel: int


@dataclass(frozen=True)
class ModalitySpec:
    """One row of the modality table."""
    modality: Modality
    sop_class_uid: UID
    sop_class_name: str
    geometry: Optional[GeometryDefaults]
    pattern: PatternVariant
    body_part: str

    @property
    def has_pixels(self) -> bool:
        return self.geometry is not None


MODALITY_TABLE: Dict[Modality, ModalitySpec] = {
    Modality.CR: ModalitySpec(
        Modality.CR, UID("1.2.840.10008.5.1.4.1.1.1"),
        "Computed Radiography Image Storage",
        GeometryDefaults(2048, 2048, 16), PatternVariant.RADIOGRAPHY, "CHEST",
    ),
    Modality.DX: ModalitySpec(
        Modality.DX, UID("1.2.840.10008.5.1.4.1.1.1.1"),
        "Digital X-Ray Image Storage - For Presentation",
        GeometryDefaults(2048, 2048, 16), PatternVariant.RADIOGRAPHY, "CHEST",
    ),
    Modality.CT: ModalitySpec(
        Modality.CT, UID("1.2.840.10008.5.1.4.1.1.2"),
        "CT Image Storage",
        GeometryDefaults(512, 512, 12), PatternVariant.CT, "CHEST",
    ),
    Modality.MR: ModalitySpec(
        Modality.MR, UID("1.2.840.10008.5.1.4.1.1.4"),
        "MR Image Storage",
        GeometryDefaults(256, 256, 12), PatternVariant.MR, "BRAIN",
    ),
    Modality.US: ModalitySpec(
        Modality.US, UID("1.2.840.10008.5.1.4.1.1.6.1"),
        "Ultrasound Image Storage",
        GeometryDefaults(640, 480, 8), PatternVariant.ULTRASOUND, "ABDOMEN",
    ),
    Modality.MG: ModalitySpec(
        Modality.MG, UID("1.2.840.10008.5.1.4.1.1.1.2"),
        "Digital Mammography X-Ray Image Storage - For Presentation",
        GeometryDefaults(4096, 3328, 14), PatternVariant.MAMMOGRAPHY, "BREAST",
    ),
    Modality.NM: ModalitySpec(
        Modality.NM, UID("1.2.840.10008.5.1.4.1.1.20"),
        "Nuclear Medicine Image Storage",
        GeometryDefaults(128, 128, 16), PatternVariant.HOT_SPOT, "WHOLEBODY",
    ),
    Modality.PT: ModalitySpec(
        Modality.PT, UID("1.2.840.10008.5.1.4.1.1.128"),
        "Positron Emission Tomography Image Storage",
        GeometryDefaults(128, 128, 16), PatternVariant.HOT_SPOT, "WHOLEBODY",
    ),
    Modality.RT: ModalitySpec(
        Modality.RT, UID("1.2.840.10008.5.1.4.1.1.481.1"),
        "RT Image Storage",
        GeometryDefaults(512, 512, 16), PatternVariant.TREATMENT_FIELD, "PELVIS",
    ),
    Modality.SR: ModalitySpec(
        Modality.SR, UID("1.2.840.10008.5.1.4.1.1.88.11"),
        "Basic Text SR Storage",
        None, PatternVariant.NONE, "",
    ),
}


def modality_spec(modality: object) -> ModalitySpec:
    """
    Look up the table row for a modality.

    Raises:
        UnsupportedModality: if the code is unknown or has no table row
    """
    parsed = Modality.parse(modality)
    spec = MODALITY_TABLE.get(parsed)
    if spec is None:
        raise UnsupportedModality(modality)
    return spec


def supported_modalities() -> list:
    return [m.value for m in MODALITY_TABLE]
