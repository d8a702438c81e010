"""
Pytest configuration and fixtures for dicomsynth tests.
"""
import sys
from datetime import datetime
from io import BytesIO
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np
import pydicom
import pytest

from dicomsynth.metadata import ImageGeometry, MetadataGenerator
from dicomsynth.uids import UIDGenerator

FIXED_NOW = datetime(2024, 3, 15, 10, 30, 45)


def fixed_clock() -> datetime:
    return FIXED_NOW


def decode(data: bytes) -> pydicom.Dataset:
    """Decode encoded bytes with pydicom as an independent reader."""
    return pydicom.dcmread(BytesIO(data))


@pytest.fixture
def uid_generator():
    return UIDGenerator()


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def metadata_generator(uid_generator, rng):
    """MetadataGenerator with a deterministic rng and a frozen clock."""
    return MetadataGenerator(uid_generator, rng, fixed_clock)


@pytest.fixture
def make_records(metadata_generator):
    """
    Factory for a consistent (patient, study, series, image) record tuple.

    Small default geometry keeps pixel work cheap; pass width/height/bits to
    override, or modality="SR" for a report without geometry.
    """
    def _make(modality="CT", width=16, height=12, bits=12, instance=1, series_number=1):
        patient = metadata_generator.build_patient()
        study = metadata_generator.build_study("Synthetic test study")
        series = metadata_generator.build_series(modality, series_number, "chest")
        geometry = None
        if modality != "SR":
            geometry = ImageGeometry.for_raster(width, height, bits)
        image = metadata_generator.build_image(series, instance, geometry=geometry)
        return patient, study, series, image

    return _make
