"""
Pixel Synthesis Engine
======================

Produces a single-frame greyscale raster for a modality and packs it into the
little-endian byte layout the encoder embeds verbatim.

- ``synthesize`` draws the bare modality pattern.
- ``synthesize_image`` draws the pattern for an image record and burns the
  identifying metadata block into it.

Structured-report objects have no pixel content; both functions return None.
Unknown modality codes fall back to the generic noise pattern.
"""

import logging
import time
from typing import Callable, Dict, List, Optional

import numpy as np

from ..errors import UnsupportedModality
from ..metadata import ImageRecord, PatientRecord, SeriesRecord, StudyRecord
from ..modality import Modality, PatternVariant, modality_spec
from . import patterns
from .overlay import render_text_block

logger = logging.getLogger(__name__)

SIGNATURE_LINE = "Generated by dicomsynth"

_PATTERNS: Dict[PatternVariant, Callable[..., np.ndarray]] = {
    PatternVariant.RADIOGRAPHY: patterns.radiography,
    PatternVariant.CT: patterns.ct,
    PatternVariant.MR: patterns.mr,
    PatternVariant.ULTRASOUND: patterns.ultrasound,
    PatternVariant.MAMMOGRAPHY: patterns.mammography,
    PatternVariant.HOT_SPOT: patterns.hot_spot,
    PatternVariant.TREATMENT_FIELD: patterns.treatment_field,
    PatternVariant.GENERIC: patterns.generic,
}

_HOT_SPOT_LAYOUTS = {
    Modality.NM: patterns.NM_HOT_SPOTS,
    Modality.PT: patterns.PT_HOT_SPOTS,
}


def bytes_per_sample(bits_per_pixel: int) -> int:
    return -(-bits_per_pixel // 8)


def max_sample_value(bits_per_pixel: int) -> int:
    return (1 << bits_per_pixel) - 1


def default_rng() -> np.random.Generator:
    """Random handle seeded from the wall clock."""
    return np.random.default_rng(time.time_ns())


def _check_geometry(width: int, height: int, bits_per_pixel: int) -> None:
    if width < 1 or height < 1:
        raise ValueError(f"Raster size must be positive, got {width}x{height}")
    if not 1 <= bits_per_pixel <= 16:
        raise ValueError(f"Bits per pixel must be 1..16, got {bits_per_pixel}")


def pack_samples(raster: np.ndarray, bits_per_pixel: int) -> bytes:
    """
    Pack a raster row-major, one little-endian sample of ceil(bits/8) bytes
    per pixel, low byte first. Values are rounded and clamped to the bit range.
    """
    width = bytes_per_sample(bits_per_pixel)
    samples = np.clip(np.rint(raster), 0, max_sample_value(bits_per_pixel))
    return samples.astype(f"<u{width}").tobytes()


def unpack_samples(buffer: bytes, width: int, height: int, bits_per_pixel: int) -> np.ndarray:
    """Inverse of pack_samples: (height, width) unsigned array."""
    dtype = f"<u{bytes_per_sample(bits_per_pixel)}"
    return np.frombuffer(buffer, dtype=dtype, count=width * height).reshape(height, width)


def render_pattern(
    modality: object,
    width: int,
    height: int,
    bits_per_pixel: int,
    rng: Optional[np.random.Generator] = None,
) -> Optional[np.ndarray]:
    """
    Draw the modality pattern as a (height, width) int64 raster.

    Returns:
        The raster, or None for modalities without pixel content
    """
    _check_geometry(width, height, bits_per_pixel)
    if rng is None:
        rng = default_rng()

    try:
        spec = modality_spec(modality)
    except UnsupportedModality:
        logger.warning("No pattern for modality %r; using generic noise", modality)
        variant, parsed = PatternVariant.GENERIC, None
    else:
        if not spec.has_pixels:
            return None
        variant, parsed = spec.pattern, spec.modality

    max_value = max_sample_value(bits_per_pixel)
    draw = _PATTERNS[variant]
    logger.debug("Drawing %s pattern %dx%d at %d bits", variant.value, width, height, bits_per_pixel)

    if variant is PatternVariant.RADIOGRAPHY:
        values = draw(width, height, max_value, rng, label=parsed.value)
    elif variant is PatternVariant.HOT_SPOT:
        values = draw(width, height, max_value, rng, spots=_HOT_SPOT_LAYOUTS[parsed])
    else:
        values = draw(width, height, max_value, rng)

    return np.clip(np.rint(values), 0, max_value).astype(np.int64)


def synthesize(
    modality: object,
    width: int,
    height: int,
    bits_per_pixel: int,
    rng: Optional[np.random.Generator] = None,
) -> Optional[bytes]:
    """
    Produce a packed pixel buffer for a modality.

    Args:
        modality: Modality code or enum member
        width: Columns
        height: Rows
        bits_per_pixel: 1..16
        rng: Random handle; seeded from the wall clock when omitted

    Returns:
        Exactly width * height * ceil(bits_per_pixel / 8) bytes, or None for
        structured-report modalities

    Raises:
        ValueError: if the geometry is not positive or bits are out of range
    """
    raster = render_pattern(modality, width, height, bits_per_pixel, rng)
    if raster is None:
        return None
    return pack_samples(raster, bits_per_pixel)


def overlay_lines(
    patient: PatientRecord,
    study: StudyRecord,
    series: SeriesRecord,
    image: ImageRecord,
    series_size: int,
) -> List[str]:
    """Identifying text burned into every image."""
    return [
        f"Patient: {patient.name}",
        f"Patient ID: {patient.patient_id}",
        f"DOB: {patient.birth_date}",
        f"Accession: {study.accession_number}",
        f"Study UID: {study.study_uid}",
        f"Series UID: {series.series_uid}",
        f"Instance: {image.instance_number} of {series_size}",
        f"Modality: {series.modality.value}",
        f"Study Date: {study.study_date}",
        SIGNATURE_LINE,
    ]


def synthesize_image(
    patient: PatientRecord,
    study: StudyRecord,
    series: SeriesRecord,
    image: ImageRecord,
    series_size: int,
    rng: Optional[np.random.Generator] = None,
) -> Optional[bytes]:
    """
    Render the pixel buffer for one image record: pattern plus metadata block.

    Returns:
        Packed buffer matching ``image.geometry.frame_length``, or None when the
        record carries no geometry
    """
    geometry = image.geometry
    if geometry is None:
        return None

    raster = render_pattern(
        series.modality, geometry.columns, geometry.rows, geometry.bits_stored, rng
    )
    if raster is None:
        return None

    render_text_block(
        raster,
        overlay_lines(patient, study, series, image, series_size),
        geometry.max_value,
    )
    return pack_samples(raster, geometry.bits_stored)
