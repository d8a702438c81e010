"""
Decoder for persisted objects.

Uses pydicom to read encoded objects back into the typed records plus the raw
pixel buffer. The list and export collaborators work on this decoded graph,
never on the encoded bytes, and must cope with objects that carry no raster.
"""

import logging
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np
import pydicom
from pydicom.dataset import Dataset

from .metadata import ImageGeometry, ImageRecord, PatientRecord, SeriesRecord, StudyRecord
from .pixels import unpack_samples

logger = logging.getLogger(__name__)

Source = Union[bytes, bytearray, str, Path]


@dataclass
class DecodedObject:
    """One decoded object: typed records plus the optional pixel buffer."""
    patient: PatientRecord
    study: StudyRecord
    series: SeriesRecord
    image: ImageRecord
    pixel_data: Optional[bytes] = None
    transfer_syntax_uid: str = ""
    path: Optional[Path] = None

    @property
    def has_pixels(self) -> bool:
        return self.pixel_data is not None and self.image.geometry is not None

    def raster(self) -> Optional[np.ndarray]:
        """(rows, columns) unsigned sample array, or None without pixel data."""
        if not self.has_pixels:
            return None
        geometry = self.image.geometry
        return unpack_samples(self.pixel_data, geometry.columns, geometry.rows, geometry.bits_stored)


@dataclass
class DecodedSeries:
    record: SeriesRecord
    objects: List[DecodedObject] = field(default_factory=list)


@dataclass
class DecodedStudy:
    patient: PatientRecord
    record: StudyRecord
    series: List[DecodedSeries] = field(default_factory=list)

    @property
    def study_uid(self) -> str:
        return self.record.study_uid

    @property
    def image_count(self) -> int:
        return sum(len(s.objects) for s in self.series)

    @property
    def modalities(self) -> List[str]:
        return sorted({s.record.modality.value for s in self.series})


def _text(ds: Dataset, keyword: str, default: str = "") -> str:
    value = getattr(ds, keyword, None)
    if value is None or str(value) == "":
        return default
    return str(value)


def _geometry(ds: Dataset) -> Optional[ImageGeometry]:
    if "Rows" not in ds or "PixelData" not in ds:
        return None
    return ImageGeometry(
        rows=int(ds.Rows),
        columns=int(ds.Columns),
        bits_allocated=int(ds.BitsAllocated),
        bits_stored=int(ds.BitsStored),
        high_bit=int(ds.HighBit),
        samples_per_pixel=int(getattr(ds, "SamplesPerPixel", 1)),
        photometric_interpretation=_text(ds, "PhotometricInterpretation", "MONOCHROME2"),
        pixel_representation=int(getattr(ds, "PixelRepresentation", 0)),
    )


def _report_text(ds: Dataset) -> Optional[str]:
    for item in getattr(ds, "ContentSequence", []) or []:
        if getattr(item, "ValueType", "") == "TEXT":
            return str(item.TextValue)
    return None


def dataset_to_object(ds: Dataset, path: Optional[Path] = None) -> DecodedObject:
    """
    Convert a pydicom Dataset into typed records.

    Raises:
        UnsupportedModality: if the object's modality is outside the supported set
        ValueError: if required attributes are malformed
    """
    study_date = _text(ds, "StudyDate")
    study_time = _text(ds, "StudyTime", "000000")[:6]

    patient = PatientRecord(
        name=_text(ds, "PatientName", "UNKNOWN"),
        patient_id=_text(ds, "PatientID", "UNKNOWN"),
        birth_date=_text(ds, "PatientBirthDate", "19500101"),
        sex=_text(ds, "PatientSex", "O"),
    )
    study = StudyRecord(
        study_uid=_text(ds, "StudyInstanceUID"),
        study_date=study_date,
        study_time=study_time,
        accession_number=_text(ds, "AccessionNumber", "UNKNOWN"),
        description=_text(ds, "StudyDescription"),
        study_id=_text(ds, "StudyID", "1"),
        referring_physician=_text(ds, "ReferringPhysicianName"),
    )
    series = SeriesRecord(
        series_uid=_text(ds, "SeriesInstanceUID"),
        series_number=int(getattr(ds, "SeriesNumber", 1) or 1),
        modality=_text(ds, "Modality"),
        description=_text(ds, "SeriesDescription"),
        body_part=_text(ds, "BodyPartExamined"),
        series_date=_text(ds, "SeriesDate", study_date),
        series_time=_text(ds, "SeriesTime", study_time)[:6],
    )
    geometry = _geometry(ds)
    image = ImageRecord(
        sop_instance_uid=_text(ds, "SOPInstanceUID"),
        sop_class_uid=_text(ds, "SOPClassUID"),
        instance_number=int(getattr(ds, "InstanceNumber", 1) or 1),
        content_date=_text(ds, "ContentDate", study_date),
        content_time=_text(ds, "ContentTime", study_time)[:6],
        geometry=geometry,
        text_content=_report_text(ds),
    )

    pixel_data = None
    if geometry is not None:
        # Odd-length frames carry one trailing pad byte.
        pixel_data = bytes(ds.PixelData)[:geometry.frame_length]

    file_meta = getattr(ds, "file_meta", None)
    transfer_syntax = str(getattr(file_meta, "TransferSyntaxUID", "")) if file_meta else ""
    return DecodedObject(patient, study, series, image, pixel_data, transfer_syntax, path)


def read_object(source: Source) -> DecodedObject:
    """Decode one object from bytes or a file path."""
    if isinstance(source, (bytes, bytearray)):
        ds = pydicom.dcmread(BytesIO(bytes(source)))
        return dataset_to_object(ds)
    path = Path(source)
    ds = pydicom.dcmread(str(path))
    return dataset_to_object(ds, path)


def find_object_files(study_dir: Union[str, Path]) -> List[Path]:
    """Object files of one study directory, in series then image order."""
    return sorted(Path(study_dir).glob("series_*/*.dcm"))


def read_study(study_dir: Union[str, Path]) -> DecodedStudy:
    """
    Decode every object under a study directory.

    Objects are grouped by series number and ordered by instance number.

    Raises:
        FileNotFoundError: if the directory holds no objects
    """
    study_dir = Path(study_dir)
    files = find_object_files(study_dir)
    if not files:
        raise FileNotFoundError(f"No objects found under {study_dir}")

    objects = [read_object(path) for path in files]
    grouped: Dict[int, DecodedSeries] = {}
    for obj in objects:
        number = obj.series.series_number
        if number not in grouped:
            grouped[number] = DecodedSeries(obj.series)
        grouped[number].objects.append(obj)

    series = [grouped[n] for n in sorted(grouped)]
    for s in series:
        s.objects.sort(key=lambda o: o.image.instance_number)

    first = objects[0]
    logger.debug("Read %d objects from %s", len(objects), study_dir)
    return DecodedStudy(first.patient, first.study, series)
