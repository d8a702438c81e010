"""
Tests for the explicit VR little endian encoder.

The encoder is checked byte-for-byte where the layout is fixed (headers,
padding, meta group length) and through pydicom as an independent decoder
everywhere else.
"""
import struct

import pytest
from pydicom.uid import ExplicitVRLittleEndian

from dicomsynth.encoding import encode_object, encode_study, scan_elements, verify_encoded_object
from dicomsynth.encoding.elements import DataElement, keyword_tag, serialize_elements, verify_tag_order
from dicomsynth.encoding.vr import encode_value, format_ds
from dicomsynth.encoding.writer import (
    IMPLEMENTATION_CLASS_UID,
    MAGIC,
    META_START,
    PREAMBLE,
    build_meta_elements,
    encode_meta_group,
    object_path_hint,
)
from dicomsynth.errors import EncodingInvariantViolation, GeometryMismatch
from dicomsynth.metadata import ImageRecord
from dicomsynth.modality import Modality
from dicomsynth.model import Image, Series, Study
from dicomsynth.pixels import synthesize_image
from dicomsynth.reader import read_object

from conftest import decode

PIXEL_MODALITIES = [m.value for m in Modality if m is not Modality.SR]


def encoded_with_pixels(make_records, rng, modality="CT", width=16, height=12, bits=12):
    patient, study, series, image = make_records(modality, width=width, height=height, bits=bits)
    pixels = synthesize_image(patient, study, series, image, 1, rng)
    return (patient, study, series, image, pixels), encode_object(patient, study, series, image, pixels)


def measured_meta_length(data: bytes) -> int:
    elements = scan_elements(data, META_START)
    meta = [e for e in elements if e.tag >> 16 == 0x0002]
    return meta[-1].end - elements[0].end


# ═══════════════════════════════════════════════════════════════════════════════
# VALUES AND ELEMENTS
# ═══════════════════════════════════════════════════════════════════════════════

class TestValueEncoding:

    @pytest.mark.parametrize("vr,value,expected", [
        ("UI", "1.2.3", b"1.2.3\x00"),
        ("UI", "1.23", b"1.23"),
        ("LO", "ABC", b"ABC "),
        ("CS", "", b""),
        ("CS", ["ORIGINAL", "PRIMARY"], b"ORIGINAL\\PRIMARY"),
        ("IS", 7, b"7 "),
        ("DS", 2048.0, b"2048"),
        ("DS", 0.5, b"0.5 "),
        ("US", 512, b"\x00\x02"),
        ("UL", 10, b"\x0a\x00\x00\x00"),
        ("OB", b"\x01", b"\x01\x00"),
        ("OW", b"\x01\x02", b"\x01\x02"),
    ])
    def test_padded_values(self, vr, value, expected):
        assert encode_value(vr, value) == expected

    def test_short_form_overflow(self):
        with pytest.raises(ValueError, match="16-bit"):
            encode_value("LO", "x" * 0x10000)

    def test_long_form_accepts_large_values(self):
        assert len(encode_value("OW", b"\x00" * 0x20000)) == 0x20000

    def test_unsupported_vr(self):
        with pytest.raises(ValueError):
            encode_value("AT", 0)

    def test_decimal_string_stays_within_sixteen_characters(self):
        assert len(format_ds(1 / 3)) <= 16
        assert len(format_ds(1.0e20 / 3)) <= 16


class TestDataElement:

    def test_short_form_header(self):
        element = DataElement.from_keyword("PatientName", "DOE^J")
        assert element.serialize() == struct.pack("<HH2sH", 0x0010, 0x0010, b"PN", 6) + b"DOE^J "
        assert element.encoded_length == 14

    def test_long_form_header(self):
        element = DataElement.from_keyword("PixelData", b"\x01\x02\x03", vr="OB")
        data = element.serialize()
        assert data[:12] == struct.pack("<HH2sHI", 0x7FE0, 0x0010, b"OB", 0, 4)
        assert data[12:] == b"\x01\x02\x03\x00"

    def test_ambiguous_vr_must_be_explicit(self):
        with pytest.raises(ValueError, match="ambiguous"):
            DataElement.from_keyword("PixelData", b"\x00\x00")

    def test_unknown_keyword(self):
        with pytest.raises(KeyError):
            keyword_tag("NotADicomKeyword")

    def test_odd_value_rejected(self):
        with pytest.raises(ValueError, match="odd length"):
            DataElement(0x00100010, "PN", b"ABC")

    def test_sequence_items_have_measured_lengths(self):
        item = [DataElement.from_keyword("CodeValue", "121071")]
        sq = DataElement.sequence("ConceptNameCodeSequence", [item, item])
        value = sq.value
        item_tag, item_length = struct.unpack_from("<II", value, 0)
        assert item_tag == 0xE000FFFE
        assert item_length == item[0].encoded_length
        assert len(value) == 2 * (8 + item_length)

    def test_serialize_sorts_by_tag(self):
        elements = [
            DataElement.from_keyword("PatientID", "P1"),
            DataElement.from_keyword("PatientName", "DOE"),
        ]
        tags = [e.tag for e in scan_elements(serialize_elements(elements))]
        assert tags == [0x00100010, 0x00100020]

    def test_duplicate_tags_rejected(self):
        elements = [DataElement.from_keyword("PatientID", "P1")] * 2
        with pytest.raises(EncodingInvariantViolation, match="duplicate"):
            serialize_elements(elements)

    def test_descending_tags_rejected(self):
        with pytest.raises(EncodingInvariantViolation):
            verify_tag_order([0x00100020, 0x00100010], "test")


class TestScanner:

    def test_offsets(self):
        first = DataElement.from_keyword("PatientName", "DOE")
        second = DataElement.from_keyword("PixelData", b"\x00" * 4, vr="OW")
        buffer = first.serialize() + second.serialize()
        scanned = scan_elements(buffer)
        assert [(e.tag, e.vr) for e in scanned] == [(0x00100010, "PN"), (0x7FE00010, "OW")]
        assert scanned[1].offset == first.encoded_length
        assert scanned[1].end == len(buffer)

    def test_truncated_value(self):
        data = DataElement.from_keyword("PatientName", "DOE^JANE").serialize()
        with pytest.raises(EncodingInvariantViolation, match="declares"):
            scan_elements(data[:-2])

    def test_undefined_length(self):
        data = struct.pack("<HH2sHI", 0x0040, 0xA730, b"SQ", 0, 0xFFFFFFFF)
        with pytest.raises(EncodingInvariantViolation, match="Undefined length"):
            scan_elements(data)


# ═══════════════════════════════════════════════════════════════════════════════
# FILE META GROUP
# ═══════════════════════════════════════════════════════════════════════════════

class TestMetaGroup:

    @pytest.mark.parametrize("instance_uid", ["1.2.3", "1.2.34", "1.2.840.10008.99999"])
    def test_declared_length_matches_measured(self, instance_uid, make_records):
        patient, study, series, image = make_records("SR")
        image = ImageRecord(
            instance_uid, image.sop_class_uid, 1, image.content_date, image.content_time,
            text_content="Report",
        )
        data = encode_object(patient, study, series, image)
        (declared,) = struct.unpack_from("<I", data, META_START + 8)
        assert declared == measured_meta_length(data)

    def test_group_length_counts_padding(self):
        body_odd = encode_meta_group(build_meta_elements("1.2.3", "1.2.345"))
        body_even = encode_meta_group(build_meta_elements("1.2.3", "1.2.34"))
        (odd_length,) = struct.unpack_from("<I", body_odd, 8)
        (even_length,) = struct.unpack_from("<I", body_even, 8)
        # "1.2.345" pads to 8 bytes, "1.2.34" stays at 6
        assert odd_length == even_length + 2
        assert odd_length == len(body_odd) - 12
        assert even_length == len(body_even) - 12

    def test_preamble_and_magic(self, make_records, rng):
        _, data = encoded_with_pixels(make_records, rng)
        assert data[:128] == PREAMBLE
        assert data[128:132] == MAGIC
        assert data[132:136] == b"\x02\x00\x00\x00"
        assert data[136:138] == b"UL"

    def test_meta_contents(self, make_records, rng):
        (_, _, _, image, _), data = encoded_with_pixels(make_records, rng)
        ds = decode(data)
        assert ds.file_meta.TransferSyntaxUID == ExplicitVRLittleEndian
        assert ds.file_meta.MediaStorageSOPInstanceUID == image.sop_instance_uid
        assert ds.file_meta.MediaStorageSOPClassUID == image.sop_class_uid
        assert ds.file_meta.ImplementationClassUID == IMPLEMENTATION_CLASS_UID
        assert ds.file_meta.FileMetaInformationGroupLength == measured_meta_length(data)


# ═══════════════════════════════════════════════════════════════════════════════
# OBJECTS
# ═══════════════════════════════════════════════════════════════════════════════

class TestEncodeObject:

    @pytest.mark.parametrize("modality", PIXEL_MODALITIES)
    @pytest.mark.parametrize("bits", [1, 8, 12, 16])
    def test_round_trip_through_pydicom(self, modality, bits, make_records, rng):
        (patient, study, series, image, pixels), data = encoded_with_pixels(
            make_records, rng, modality, width=7, height=5, bits=bits
        )
        ds = decode(data)
        assert str(ds.PatientName) == patient.name
        assert ds.PatientID == patient.patient_id
        assert ds.StudyInstanceUID == study.study_uid
        assert ds.SeriesInstanceUID == series.series_uid
        assert ds.SOPInstanceUID == image.sop_instance_uid
        assert ds.Modality == modality
        assert ds.Rows == 5 and ds.Columns == 7
        assert ds.BitsStored == bits
        assert bytes(ds.PixelData)[:image.geometry.frame_length] == pixels

        decoded = read_object(data)
        assert decoded.patient == patient
        assert decoded.study == study
        assert decoded.series == series
        assert decoded.image == image
        assert decoded.pixel_data == pixels

    def test_tags_strictly_ascending(self, make_records, rng):
        _, data = encoded_with_pixels(make_records, rng)
        tags = [e.tag for e in scan_elements(data, META_START)]
        assert tags == sorted(set(tags))

    @pytest.mark.parametrize("bits,vr", [(8, "OB"), (12, "OW"), (16, "OW")])
    def test_pixel_data_vr(self, bits, vr, make_records, rng):
        _, data = encoded_with_pixels(make_records, rng, bits=bits)
        last = scan_elements(data, META_START)[-1]
        assert last.tag == 0x7FE00010
        assert last.vr == vr

    def test_odd_frame_padded(self, make_records, rng):
        (_, _, _, image, pixels), data = encoded_with_pixels(make_records, rng, width=7, height=5, bits=8)
        last = scan_elements(data, META_START)[-1]
        assert last.length == 36
        assert data[last.end - 1:last.end] == b"\x00"

    def test_deterministic(self, make_records, rng):
        (patient, study, series, image, pixels), data = encoded_with_pixels(make_records, rng)
        assert encode_object(patient, study, series, image, pixels) == data

    def test_report_has_no_pixel_data(self, make_records):
        patient, study, series, image = make_records("SR")
        ds = decode(encode_object(patient, study, series, image))
        assert "PixelData" not in ds
        assert "Rows" not in ds
        assert ds.Modality == "SR"
        assert ds.ContentSequence[0].TextValue.rstrip() == image.text_content
        assert read_object(encode_object(patient, study, series, image)).image.text_content.rstrip() \
            == image.text_content

    def test_short_buffer(self, make_records, rng):
        (patient, study, series, image, pixels), _ = encoded_with_pixels(make_records, rng)
        with pytest.raises(GeometryMismatch) as exc_info:
            encode_object(patient, study, series, image, pixels[:-1])
        assert exc_info.value.expected == image.geometry.frame_length

    def test_missing_buffer(self, make_records):
        patient, study, series, image = make_records("CT")
        with pytest.raises(GeometryMismatch, match="missing"):
            encode_object(patient, study, series, image)

    def test_buffer_without_geometry(self, make_records):
        patient, study, series, image = make_records("SR")
        with pytest.raises(GeometryMismatch):
            encode_object(patient, study, series, image, b"\x00\x00")


class TestSelfVerification:

    def test_tampered_meta_length(self, make_records, rng):
        _, data = encoded_with_pixels(make_records, rng)
        tampered = bytearray(data)
        (declared,) = struct.unpack_from("<I", tampered, META_START + 8)
        struct.pack_into("<I", tampered, META_START + 8, declared + 2)
        with pytest.raises(EncodingInvariantViolation, match="Meta group length"):
            verify_encoded_object(bytes(tampered))

    def test_missing_magic(self, make_records, rng):
        _, data = encoded_with_pixels(make_records, rng)
        with pytest.raises(EncodingInvariantViolation, match="DICM"):
            verify_encoded_object(data[:128] + b"XXXX" + data[132:])

    def test_out_of_order_data_set(self):
        meta = encode_meta_group(build_meta_elements("1.2.3", "1.2.4"))
        dataset = (
            DataElement.from_keyword("PatientID", "P1").serialize()
            + DataElement.from_keyword("PatientName", "DOE").serialize()
        )
        with pytest.raises(EncodingInvariantViolation, match="follows"):
            verify_encoded_object(PREAMBLE + MAGIC + meta + dataset)


class TestEncodeStudy:

    def test_path_hints_in_order(self, metadata_generator):
        study = Study(metadata_generator.build_patient(), metadata_generator.build_study())
        for number in (1, 2):
            series = study.add_series(Series(metadata_generator.build_series("SR", number)))
            for instance in (1, 2):
                series.add_image(Image(metadata_generator.build_image(series.record, instance)))
        objects = encode_study(study)
        assert [o.path_hint for o in objects] == [
            object_path_hint(study.study_uid, s, i) for s in (1, 2) for i in (1, 2)
        ]
        assert objects[0].path_hint == f"{study.study_uid}/series_001/image_001.dcm"
