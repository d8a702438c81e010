"""
Identity & Metadata Generator
=============================

Typed attribute records for the Patient, Study, Series, Image and Image Pixel
modules, plus the generator that fills them with identifiers, timestamps and
defaults for one study.

Records are validated at construction and are immutable; they are converted to
a generic element list only inside the encoder.

Randomness:
- identifiers come from UIDGenerator (secure source)
- cosmetic defaults (patient number, accession digits) come from an explicitly
  passed numpy Generator, never from process-wide state
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import numpy as np

from .modality import Modality, modality_spec
from .uids import UIDGenerator

logger = logging.getLogger(__name__)

DEFAULT_BIRTH_DATE = "19500101"
DEFAULT_PATIENT_SEX = "O"
DEFAULT_REGION = "chest"

MAX_BITS_PER_PIXEL = 16
MAX_DIMENSION = 0xFFFF

_DATE_PATTERN = re.compile(r"^\d{8}$")
_TIME_PATTERN = re.compile(r"^\d{6}$")
_CS_INVALID = re.compile(r"[^A-Z0-9_ ]")

SPECIFIC_CHARACTER_SET = "ISO_IR 100"
TEXT_ENCODING = "latin-1"
PN_GROUP_LENGTH = 64


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ValueError(message)


def _check_text(field_name: str, value: str, max_length: int, allow_empty: bool = False) -> None:
    _require(isinstance(value, str), f"{field_name} must be a string")
    _require(allow_empty or bool(value.strip()), f"{field_name} must not be empty")
    _require(len(value) <= max_length, f"{field_name} exceeds {max_length} characters: {value!r}")
    _require("\\" not in value, f"{field_name} must not contain a backslash")
    _check_charset(field_name, value)


def _check_charset(field_name: str, value: str) -> None:
    # Text is written under ISO_IR 100 (Latin-1).
    try:
        value.encode(TEXT_ENCODING)
    except UnicodeEncodeError as e:
        raise ValueError(
            f"{field_name} has characters outside {SPECIFIC_CHARACTER_SET}: {value[e.start:e.end]!r}"
        ) from e


def _check_person_name(field_name: str, value: str) -> None:
    _check_text(field_name, value, PN_GROUP_LENGTH * 3)
    groups = value.split("=")
    _require(len(groups) <= 3, f"{field_name} has more than three component groups")
    for group in groups:
        _require(
            len(group) <= PN_GROUP_LENGTH,
            f"{field_name} component group exceeds {PN_GROUP_LENGTH} characters: {group!r}",
        )


def code_string(value: str, max_length: int = 16) -> str:
    """Upper-case CS value; anything outside A-Z, 0-9, space and underscore becomes '_'."""
    return _CS_INVALID.sub("_", value.strip().upper())[:max_length]


def _check_date(field_name: str, value: str) -> None:
    _require(bool(_DATE_PATTERN.match(value or "")), f"{field_name} must be YYYYMMDD, got {value!r}")


def _check_time(field_name: str, value: str) -> None:
    _require(bool(_TIME_PATTERN.match(value or "")), f"{field_name} must be HHMMSS, got {value!r}")


# ═══════════════════════════════════════════════════════════════════════════════
# ATTRIBUTE RECORDS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PatientRecord:
    """Patient module."""
    name: str
    patient_id: str
    birth_date: str = DEFAULT_BIRTH_DATE
    sex: str = DEFAULT_PATIENT_SEX

    def __post_init__(self):
        _check_person_name("Patient name", self.name)
        _check_text("Patient ID", self.patient_id, 64)
        _check_date("Patient birth date", self.birth_date)
        _require(self.sex in ("M", "F", "O"), f"Patient sex must be M, F or O, got {self.sex!r}")


@dataclass(frozen=True)
class StudyRecord:
    """General Study module."""
    study_uid: str
    study_date: str
    study_time: str
    accession_number: str
    description: str
    study_id: str = "1"
    referring_physician: str = ""

    def __post_init__(self):
        _check_text("Study UID", self.study_uid, 64)
        _check_date("Study date", self.study_date)
        _check_time("Study time", self.study_time)
        _check_text("Accession number", self.accession_number, 16)
        _check_text("Study description", self.description, 64, allow_empty=True)
        _check_text("Study ID", self.study_id, 16)
        if self.referring_physician:
            _check_person_name("Referring physician", self.referring_physician)


@dataclass(frozen=True)
class SeriesRecord:
    """General Series module."""
    series_uid: str
    series_number: int
    modality: Modality
    description: str
    body_part: str
    series_date: str
    series_time: str

    def __post_init__(self):
        # Accept plain codes; unknown ones raise UnsupportedModality.
        object.__setattr__(self, "modality", Modality.parse(self.modality))
        _check_text("Series UID", self.series_uid, 64)
        _require(self.series_number >= 1, f"Series number must be 1-based, got {self.series_number}")
        _check_text("Series description", self.description, 64, allow_empty=True)
        _check_text("Body part", self.body_part, 16, allow_empty=True)
        _require(
            not _CS_INVALID.search(self.body_part),
            f"Body part must use A-Z, 0-9, space or underscore, got {self.body_part!r}",
        )
        _check_date("Series date", self.series_date)
        _check_time("Series time", self.series_time)


@dataclass(frozen=True)
class ImageGeometry:
    """Image Pixel module descriptors for a single-frame greyscale raster."""
    rows: int
    columns: int
    bits_allocated: int
    bits_stored: int
    high_bit: int
    samples_per_pixel: int = 1
    photometric_interpretation: str = "MONOCHROME2"
    pixel_representation: int = 0

    def __post_init__(self):
        _require(1 <= self.rows <= MAX_DIMENSION, f"Rows out of range: {self.rows}")
        _require(1 <= self.columns <= MAX_DIMENSION, f"Columns out of range: {self.columns}")
        _require(
            1 <= self.bits_stored <= MAX_BITS_PER_PIXEL,
            f"Bits stored must be 1..{MAX_BITS_PER_PIXEL}, got {self.bits_stored}",
        )
        _require(
            self.bits_allocated == 8 * -(-self.bits_stored // 8),
            f"Bits allocated {self.bits_allocated} does not hold {self.bits_stored} stored bits",
        )
        _require(self.high_bit == self.bits_stored - 1, f"High bit must be {self.bits_stored - 1}")
        _require(self.samples_per_pixel == 1, "Only single-sample rasters are supported")
        _require(self.pixel_representation == 0, "Only unsigned samples are supported")

    @classmethod
    def for_raster(cls, width: int, height: int, bits_per_pixel: int) -> "ImageGeometry":
        """Derive the pixel module from raster width, height and bit depth."""
        bytes_per_sample = -(-bits_per_pixel // 8)
        return cls(
            rows=height,
            columns=width,
            bits_allocated=8 * bytes_per_sample,
            bits_stored=bits_per_pixel,
            high_bit=bits_per_pixel - 1,
        )

    @property
    def bytes_per_sample(self) -> int:
        return self.bits_allocated // 8

    @property
    def frame_length(self) -> int:
        """Exact byte length of one frame: rows * columns * ceil(bits / 8)."""
        return self.rows * self.columns * self.samples_per_pixel * self.bytes_per_sample

    @property
    def max_value(self) -> int:
        return (1 << self.bits_stored) - 1

    @property
    def window_center(self) -> float:
        return (self.max_value + 1) / 2

    @property
    def window_width(self) -> float:
        return float(self.max_value + 1)


@dataclass(frozen=True)
class ImageRecord:
    """SOP Common + General Image modules for one instance."""
    sop_instance_uid: str
    sop_class_uid: str
    instance_number: int
    content_date: str
    content_time: str
    geometry: Optional[ImageGeometry] = None
    text_content: Optional[str] = None

    def __post_init__(self):
        _check_text("SOP instance UID", self.sop_instance_uid, 64)
        _check_text("SOP class UID", self.sop_class_uid, 64)
        _require(self.instance_number >= 1, f"Instance number must be 1-based, got {self.instance_number}")
        _check_date("Content date", self.content_date)
        _check_time("Content time", self.content_time)
        if self.text_content is not None:
            _check_charset("Report text", self.text_content)

    @property
    def has_pixels(self) -> bool:
        return self.geometry is not None


# ═══════════════════════════════════════════════════════════════════════════════
# GENERATOR
# ═══════════════════════════════════════════════════════════════════════════════

class MetadataGenerator:
    """
    Builds a consistent attribute graph for one study.

    Args:
        uid_generator: Source of globally unique identifiers
        rng: Random handle for cosmetic defaults; pass one per generation call
        clock: Returns the wall-clock time stamped into dates and times
    """

    def __init__(
        self,
        uid_generator: UIDGenerator,
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.uids = uid_generator
        self.rng = rng if rng is not None else np.random.default_rng()
        self.clock = clock

    def generate_identifier(self) -> str:
        return self.uids.generate_identifier()

    def build_patient(
        self,
        name: Optional[str] = None,
        patient_id: Optional[str] = None,
        birth_date: Optional[str] = None,
        sex: Optional[str] = None,
    ) -> PatientRecord:
        """Fill unset patient fields with generated defaults."""
        if not name:
            name = f"SYNTHETIC^PATIENT^{int(self.rng.integers(0, 10000)):04d}"
        if not patient_id:
            patient_id = f"SYN{int(self.rng.integers(0, 10 ** 8)):08d}"
        return PatientRecord(
            name=name,
            patient_id=patient_id,
            birth_date=birth_date or DEFAULT_BIRTH_DATE,
            sex=(sex or DEFAULT_PATIENT_SEX).upper(),
        )

    def build_study(
        self,
        description: Optional[str] = None,
        accession: Optional[str] = None,
        study_id: str = "1",
    ) -> StudyRecord:
        """Generate a study identifier, current date/time and default accession."""
        now = self.clock()
        study_date = now.strftime("%Y%m%d")
        if not accession:
            accession = f"{study_date}-{int(self.rng.integers(0, 10000)):04d}"
        return StudyRecord(
            study_uid=self.generate_identifier(),
            study_date=study_date,
            study_time=now.strftime("%H%M%S"),
            accession_number=accession,
            description=description or "",
            study_id=study_id,
        )

    def build_series(self, modality: object, index: int, region: Optional[str] = None) -> SeriesRecord:
        """Generate a series identifier; ``index`` becomes the 1-based series number."""
        spec = modality_spec(modality)
        region = (region or DEFAULT_REGION).strip()
        now = self.clock()
        return SeriesRecord(
            series_uid=self.generate_identifier(),
            series_number=index,
            modality=spec.modality,
            description=f"{spec.modality.value} {region}"[:64],
            body_part=code_string(region.replace(" ", "")),
            series_date=now.strftime("%Y%m%d"),
            series_time=now.strftime("%H%M%S"),
        )

    def build_image(
        self,
        series: SeriesRecord,
        instance_index: int,
        object_class: Optional[str] = None,
        geometry: Optional[ImageGeometry] = None,
    ) -> ImageRecord:
        """
        Generate an image identifier; ``instance_index`` becomes the instance number.

        The object class and default geometry come from the modality table.
        Modalities without pixel content (SR) get no geometry and a short
        synthetic report text instead.

        Raises:
            UnsupportedModality: if the series modality has no table row
        """
        spec = modality_spec(series.modality)
        now = self.clock()

        text_content = None
        if spec.has_pixels:
            if geometry is None:
                defaults = spec.geometry
                geometry = ImageGeometry.for_raster(
                    defaults.width, defaults.height, defaults.bits_per_pixel
                )
        else:
            geometry = None
            text_content = (
                f"Synthetic report {instance_index} for {series.description}. "
                f"No acute findings. Generated for testing only."
            )

        return ImageRecord(
            sop_instance_uid=self.generate_identifier(),
            sop_class_uid=object_class or str(spec.sop_class_uid),
            instance_number=instance_index,
            content_date=now.strftime("%Y%m%d"),
            content_time=now.strftime("%H%M%S"),
            geometry=geometry,
            text_content=text_content,
        )
