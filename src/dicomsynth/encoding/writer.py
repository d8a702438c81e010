"""
Binary Container Encoder
========================

Serializes one image (or report) into a standards-conformant byte stream:

    128-byte zero preamble
    "DICM"
    file meta group (0002,xxxx), prefixed by its group length (0002,0000)
    data set, tags strictly ascending

The group length is computed from the already-serialized meta elements before
anything is emitted; nothing is written and patched afterwards. Once the bytes
are assembled they are scanned again and any disagreement between the declared
and measured meta length, or any out-of-order or duplicated tag, raises
EncodingInvariantViolation instead of returning bytes.

encode_object() is pure: the same records and buffer always give the same bytes.
"""

import logging
import struct
from typing import List, NamedTuple, Optional

from pydicom.uid import ExplicitVRLittleEndian

from ..errors import EncodingInvariantViolation, GeometryMismatch
from ..metadata import SPECIFIC_CHARACTER_SET, ImageRecord, PatientRecord, SeriesRecord, StudyRecord
from ..model import Study
from ..modality import modality_spec
from ..uids import DEFAULT_ORG_ROOT
from .elements import DataElement, format_tag, scan_elements, serialize_elements, verify_tag_order

logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"

PREAMBLE = b"\x00" * 128
MAGIC = b"DICM"
META_GROUP = 0x0002
META_GROUP_LENGTH_TAG = 0x00020000
META_START = len(PREAMBLE) + len(MAGIC)

TRANSFER_SYNTAX_UID = str(ExplicitVRLittleEndian)
IMPLEMENTATION_CLASS_UID = f"{DEFAULT_ORG_ROOT}.0.1"
IMPLEMENTATION_VERSION_NAME = f"DICOMSYNTH_{APP_VERSION}"[:16]

MANUFACTURER = "dicomsynth"

REPORT_CONCEPT = ("18748-4", "LN", "Diagnostic Imaging Report")
FINDING_CONCEPT = ("121071", "DCM", "Finding")


class EncodedObject(NamedTuple):
    """Encoded bytes plus the relative path they are stored under."""
    path_hint: str
    data: bytes


def object_path_hint(study_uid: str, series_number: int, instance_number: int) -> str:
    """``<study_uid>/series_NNN/image_NNN.dcm``"""
    return f"{study_uid}/series_{series_number:03d}/image_{instance_number:03d}.dcm"


# ═══════════════════════════════════════════════════════════════════════════════
# FILE META GROUP
# ═══════════════════════════════════════════════════════════════════════════════

def build_meta_elements(
    sop_class_uid: str,
    sop_instance_uid: str,
    implementation_class_uid: str = IMPLEMENTATION_CLASS_UID,
) -> List[DataElement]:
    """Meta elements following the group length, in any order."""
    return [
        DataElement.from_keyword("FileMetaInformationVersion", b"\x00\x01"),
        DataElement.from_keyword("MediaStorageSOPClassUID", sop_class_uid),
        DataElement.from_keyword("MediaStorageSOPInstanceUID", sop_instance_uid),
        DataElement.from_keyword("TransferSyntaxUID", TRANSFER_SYNTAX_UID),
        DataElement.from_keyword("ImplementationClassUID", implementation_class_uid),
        DataElement.from_keyword("ImplementationVersionName", IMPLEMENTATION_VERSION_NAME),
    ]


def encode_meta_group(elements: List[DataElement]) -> bytes:
    """
    Serialize the meta group with its group length computed up front.

    The length counts every byte after the group length element up to the
    first data set element: headers, values and padding.
    """
    body = serialize_elements(elements, "file meta group")
    group_length = DataElement.from_keyword("FileMetaInformationGroupLength", len(body))
    return group_length.serialize() + body


# ═══════════════════════════════════════════════════════════════════════════════
# DATA SET
# ═══════════════════════════════════════════════════════════════════════════════

def _patient_elements(patient: PatientRecord) -> List[DataElement]:
    return [
        DataElement.from_keyword("PatientName", patient.name),
        DataElement.from_keyword("PatientID", patient.patient_id),
        DataElement.from_keyword("PatientBirthDate", patient.birth_date),
        DataElement.from_keyword("PatientSex", patient.sex),
    ]


def _study_elements(study: StudyRecord) -> List[DataElement]:
    return [
        DataElement.from_keyword("StudyInstanceUID", study.study_uid),
        DataElement.from_keyword("StudyDate", study.study_date),
        DataElement.from_keyword("StudyTime", study.study_time),
        DataElement.from_keyword("AccessionNumber", study.accession_number),
        DataElement.from_keyword("StudyDescription", study.description),
        DataElement.from_keyword("StudyID", study.study_id),
        DataElement.from_keyword("ReferringPhysicianName", study.referring_physician),
    ]


def _series_elements(series: SeriesRecord) -> List[DataElement]:
    elements = [
        DataElement.from_keyword("SeriesInstanceUID", series.series_uid),
        DataElement.from_keyword("SeriesNumber", series.series_number),
        DataElement.from_keyword("SeriesDate", series.series_date),
        DataElement.from_keyword("SeriesTime", series.series_time),
        DataElement.from_keyword("Modality", series.modality.value),
        DataElement.from_keyword("SeriesDescription", series.description),
        DataElement.from_keyword("Manufacturer", MANUFACTURER),
        DataElement.from_keyword("ManufacturerModelName", f"Synthetic {series.modality.value}"),
        DataElement.from_keyword("SoftwareVersions", APP_VERSION),
    ]
    if series.body_part:
        elements.append(DataElement.from_keyword("BodyPartExamined", series.body_part))
    return elements


def _instance_elements(image: ImageRecord) -> List[DataElement]:
    return [
        DataElement.from_keyword("SpecificCharacterSet", SPECIFIC_CHARACTER_SET),
        DataElement.from_keyword("SOPClassUID", image.sop_class_uid),
        DataElement.from_keyword("SOPInstanceUID", image.sop_instance_uid),
        DataElement.from_keyword("InstanceCreationDate", image.content_date),
        DataElement.from_keyword("InstanceCreationTime", image.content_time),
        DataElement.from_keyword("ContentDate", image.content_date),
        DataElement.from_keyword("ContentTime", image.content_time),
        DataElement.from_keyword("InstanceNumber", image.instance_number),
    ]


def _pixel_elements(image: ImageRecord, pixel_buffer: bytes) -> List[DataElement]:
    geometry = image.geometry
    pixel_vr = "OB" if geometry.bits_allocated == 8 else "OW"
    return [
        DataElement.from_keyword("ImageType", ["ORIGINAL", "PRIMARY"]),
        DataElement.from_keyword("PatientOrientation", ""),
        DataElement.from_keyword("SamplesPerPixel", geometry.samples_per_pixel),
        DataElement.from_keyword("PhotometricInterpretation", geometry.photometric_interpretation),
        DataElement.from_keyword("Rows", geometry.rows),
        DataElement.from_keyword("Columns", geometry.columns),
        DataElement.from_keyword("BitsAllocated", geometry.bits_allocated),
        DataElement.from_keyword("BitsStored", geometry.bits_stored),
        DataElement.from_keyword("HighBit", geometry.high_bit),
        DataElement.from_keyword("PixelRepresentation", geometry.pixel_representation),
        DataElement.from_keyword("WindowCenter", geometry.window_center),
        DataElement.from_keyword("WindowWidth", geometry.window_width),
        DataElement.from_keyword("PixelData", pixel_buffer, vr=pixel_vr),
    ]


def _code_item(concept) -> List[DataElement]:
    value, scheme, meaning = concept
    return [
        DataElement.from_keyword("CodeValue", value),
        DataElement.from_keyword("CodingSchemeDesignator", scheme),
        DataElement.from_keyword("CodeMeaning", meaning),
    ]


def _report_elements(image: ImageRecord) -> List[DataElement]:
    finding = [
        DataElement.from_keyword("RelationshipType", "CONTAINS"),
        DataElement.from_keyword("ValueType", "TEXT"),
        DataElement.sequence("ConceptNameCodeSequence", [_code_item(FINDING_CONCEPT)]),
        DataElement.from_keyword("TextValue", image.text_content or ""),
    ]
    return [
        DataElement.from_keyword("ValueType", "CONTAINER"),
        DataElement.sequence("ConceptNameCodeSequence", [_code_item(REPORT_CONCEPT)]),
        DataElement.from_keyword("ContinuityOfContent", "SEPARATE"),
        DataElement.from_keyword("CompletionFlag", "COMPLETE"),
        DataElement.from_keyword("VerificationFlag", "UNVERIFIED"),
        DataElement.sequence("ContentSequence", [finding]),
    ]


def build_dataset_elements(
    patient: PatientRecord,
    study: StudyRecord,
    series: SeriesRecord,
    image: ImageRecord,
    pixel_buffer: Optional[bytes] = None,
) -> List[DataElement]:
    """Convert the typed records into the generic element list, unordered."""
    elements = (
        _instance_elements(image)
        + _patient_elements(patient)
        + _study_elements(study)
        + _series_elements(series)
    )
    if image.geometry is not None:
        elements += _pixel_elements(image, pixel_buffer)
    else:
        elements += _report_elements(image)
    return elements


# ═══════════════════════════════════════════════════════════════════════════════
# OBJECT
# ═══════════════════════════════════════════════════════════════════════════════

def _check_pixel_buffer(image: ImageRecord, pixel_buffer: Optional[bytes]) -> None:
    geometry = image.geometry
    if geometry is None:
        if pixel_buffer is not None:
            raise GeometryMismatch(0, len(pixel_buffer), "object carries no image geometry")
        return
    if pixel_buffer is None:
        raise GeometryMismatch(geometry.frame_length, None, "pixel buffer missing")
    if len(pixel_buffer) != geometry.frame_length:
        raise GeometryMismatch(
            geometry.frame_length,
            len(pixel_buffer),
            f"{geometry.columns}x{geometry.rows} at {geometry.bits_allocated} bits allocated",
        )


def encode_object(
    patient: PatientRecord,
    study: StudyRecord,
    series: SeriesRecord,
    image: ImageRecord,
    pixel_buffer: Optional[bytes] = None,
) -> bytes:
    """
    Encode one object as explicit VR little endian bytes.

    Args:
        patient, study, series, image: Attribute records for the object
        pixel_buffer: Packed samples; required when the image has geometry,
                      forbidden otherwise

    Returns:
        The complete byte stream, ready to be written verbatim

    Raises:
        UnsupportedModality: if the series modality has no table row
        GeometryMismatch: if the buffer disagrees with the declared geometry
        EncodingInvariantViolation: if the produced bytes fail self-verification
    """
    modality_spec(series.modality)
    _check_pixel_buffer(image, pixel_buffer)

    meta = encode_meta_group(build_meta_elements(image.sop_class_uid, image.sop_instance_uid))
    dataset = serialize_elements(
        build_dataset_elements(patient, study, series, image, pixel_buffer), "data set"
    )
    data = PREAMBLE + MAGIC + meta + dataset

    verify_encoded_object(data)
    return data


def verify_encoded_object(data: bytes) -> None:
    """
    Re-scan an encoded object and check its structural invariants.

    Raises:
        EncodingInvariantViolation: if the preamble or magic is wrong, the
            declared meta group length differs from the measured one, or tags
            are out of order or duplicated
    """
    if len(data) < META_START + 12 or data[:128] != PREAMBLE or data[128:META_START] != MAGIC:
        raise EncodingInvariantViolation("Missing preamble or DICM magic")

    elements = scan_elements(data, META_START)
    first = elements[0]
    if first.tag != META_GROUP_LENGTH_TAG or first.vr != "UL" or first.length != 4:
        raise EncodingInvariantViolation(
            f"First element is {format_tag(first.tag)} {first.vr}, expected group length UL"
        )
    (declared,) = struct.unpack_from("<I", data, first.value_offset)

    meta_count = 1
    while meta_count < len(elements) and elements[meta_count].tag >> 16 == META_GROUP:
        meta_count += 1
    measured = elements[meta_count - 1].end - first.end
    if declared != measured:
        raise EncodingInvariantViolation(
            f"Meta group length declares {declared} bytes, measured {measured}"
        )

    tags = [e.tag for e in elements]
    verify_tag_order(tags, "encoded object")


def encode_study(study: Study) -> List[EncodedObject]:
    """
    Encode every image of a study graph.

    Returns:
        One EncodedObject per image, in series then instance order
    """
    encoded = []
    for series, image in study.iter_images():
        data = encode_object(
            study.patient, study.record, series.record, image.record, image.pixel_data
        )
        hint = object_path_hint(study.study_uid, series.series_number, image.instance_number)
        encoded.append(EncodedObject(hint, data))
    logger.debug("Encoded %d objects for study %s", len(encoded), study.study_uid)
    return encoded
