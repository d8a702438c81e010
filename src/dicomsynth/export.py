"""
Export collaborator: human-facing artifacts from decoded studies.

Formats:
- PNG / JPEG: one 8-bit greyscale file per image, samples scaled linearly
  from the stored bit range
- PDF: study summary, series table, one page per image and a text page per
  structured report

Works on the decoded graph from dicomsynth.reader. Objects without a raster
(structured reports) produce no image files.

Dependencies:
- Pillow for raster files
- fpdf2 for the PDF report
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

import numpy as np
from fpdf import FPDF
from PIL import Image

from .reader import DecodedObject, DecodedStudy, read_study

logger = logging.getLogger(__name__)

IMAGE_FORMATS = {"png": "PNG", "jpeg": "JPEG", "jpg": "JPEG"}
EXPORT_FORMATS = ("png", "jpeg", "pdf")


def to_display_array(obj: DecodedObject) -> Optional[np.ndarray]:
    """Scale stored samples to uint8, or None when the object has no raster."""
    raster = obj.raster()
    if raster is None:
        return None
    max_value = obj.image.geometry.max_value
    scaled = raster.astype(np.float64) * (255.0 / max_value)
    return np.clip(np.rint(scaled), 0, 255).astype(np.uint8)


def to_pil_image(obj: DecodedObject) -> Optional[Image.Image]:
    array = to_display_array(obj)
    if array is None:
        return None
    return Image.fromarray(array)


class StudyReportPDF(FPDF):
    """PDF with a title band and page footer."""

    def __init__(self, title: str = "Synthetic Study Report"):
        super().__init__()
        self.title = title
        self.set_auto_page_break(auto=True, margin=20)

    def header(self):
        self.set_fill_color(40, 70, 120)
        self.rect(0, 0, 210, 12, 'F')
        self.set_font('Helvetica', 'B', 14)
        self.set_text_color(255, 255, 255)
        self.set_xy(10, 3)
        self.cell(0, 6, f'dicomsynth | {self.title}', align='L')
        self.set_text_color(0, 0, 0)
        self.ln(15)

    def footer(self):
        self.set_y(-15)
        self.set_font('Helvetica', 'I', 8)
        self.set_text_color(128, 128, 128)
        self.cell(0, 10, f'Page {self.page_no()}/{{nb}} | SYNTHETIC DATA - NOT FOR CLINICAL USE', align='C')


class StudyExporter:
    """
    Writes export artifacts for decoded studies under one output directory.

    Layout for raster files mirrors the storage layout:
        <output_dir>/<study_uid>/series_NNN/image_NNN.<ext>
    """

    def __init__(self, output_dir: Union[str, Path]):
        self.output_dir = Path(output_dir)

    def image_path(self, study: DecodedStudy, obj: DecodedObject, ext: str) -> Path:
        return (
            self.output_dir
            / study.study_uid
            / f"series_{obj.series.series_number:03d}"
            / f"image_{obj.image.instance_number:03d}.{ext}"
        )

    def export_images(self, study: DecodedStudy, fmt: str = "png") -> List[Path]:
        """
        Write one raster file per pixel-bearing object.

        Raises:
            ValueError: for an unsupported raster format
        """
        fmt = fmt.lower()
        if fmt not in IMAGE_FORMATS:
            raise ValueError(f"Unsupported image format {fmt!r}; use png or jpeg")
        ext = "jpg" if IMAGE_FORMATS[fmt] == "JPEG" else "png"

        written = []
        for series in study.series:
            for obj in series.objects:
                image = to_pil_image(obj)
                if image is None:
                    logger.info(
                        "Skipping series %d image %d: no pixel data",
                        obj.series.series_number, obj.image.instance_number,
                    )
                    continue
                path = self.image_path(study, obj, ext)
                path.parent.mkdir(parents=True, exist_ok=True)
                image.save(path, format=IMAGE_FORMATS[fmt])
                written.append(path)
        logger.info("Exported %d %s files for study %s", len(written), fmt.upper(), study.study_uid)
        return written

    def export_pdf(self, study: DecodedStudy, output_path: Optional[Union[str, Path]] = None) -> Path:
        """Write a PDF report for the study and return its path."""
        path = Path(output_path) if output_path else self.output_dir / f"{study.study_uid}.pdf"
        path.parent.mkdir(parents=True, exist_ok=True)

        pdf = StudyReportPDF()
        pdf.alias_nb_pages()
        self._summary_page(pdf, study)
        for series in study.series:
            for obj in series.objects:
                if obj.has_pixels:
                    self._image_page(pdf, obj)
                else:
                    self._report_page(pdf, obj)

        pdf.output(str(path))
        logger.info("Exported PDF report %s", path)
        return path

    # ═══════════════════════════════════════════════════════════════════════════
    # PDF PAGES
    # ═══════════════════════════════════════════════════════════════════════════

    def _summary_page(self, pdf: StudyReportPDF, study: DecodedStudy) -> None:
        pdf.add_page()
        pdf.set_font('Helvetica', 'B', 16)
        pdf.cell(0, 10, 'Study Summary', ln=True)

        pdf.set_font('Helvetica', '', 10)
        rows = [
            ('Patient', study.patient.name),
            ('Patient ID', study.patient.patient_id),
            ('Birth Date', study.patient.birth_date),
            ('Study UID', study.study_uid),
            ('Study Date', study.record.study_date),
            ('Accession', study.record.accession_number),
            ('Description', study.record.description),
            ('Modalities', ', '.join(study.modalities)),
            ('Images', str(study.image_count)),
            ('Exported', datetime.now().strftime('%Y-%m-%d %H:%M:%S')),
        ]
        for label, value in rows:
            pdf.set_font('Helvetica', 'B', 10)
            pdf.cell(35, 7, f'{label}:')
            pdf.set_font('Helvetica', '', 10)
            pdf.cell(0, 7, value, ln=True)

        pdf.ln(5)
        pdf.set_font('Helvetica', 'B', 12)
        pdf.cell(0, 8, 'Series', ln=True)
        pdf.set_fill_color(230, 230, 230)
        pdf.set_font('Helvetica', 'B', 9)
        for header, width in (('#', 12), ('Modality', 22), ('Description', 70), ('Images', 20), ('Series UID', 0)):
            pdf.cell(width, 7, header, border=1, fill=True, ln=(width == 0))
        pdf.set_font('Helvetica', '', 8)
        for series in study.series:
            record = series.record
            pdf.cell(12, 6, str(record.series_number), border=1)
            pdf.cell(22, 6, record.modality.value, border=1)
            pdf.cell(70, 6, record.description[:40], border=1)
            pdf.cell(20, 6, str(len(series.objects)), border=1)
            pdf.cell(0, 6, record.series_uid, border=1, ln=True)

    def _image_page(self, pdf: StudyReportPDF, obj: DecodedObject) -> None:
        pdf.add_page()
        geometry = obj.image.geometry
        pdf.set_font('Helvetica', 'B', 12)
        pdf.cell(
            0, 8,
            f'Series {obj.series.series_number} - Image {obj.image.instance_number} '
            f'({obj.series.modality.value})',
            ln=True,
        )
        pdf.set_font('Helvetica', '', 9)
        pdf.cell(
            0, 6,
            f'{geometry.columns} x {geometry.rows}, {geometry.bits_stored} bits stored',
            ln=True,
        )
        width = 190.0
        height = width * geometry.rows / geometry.columns
        if height > 230.0:
            width, height = width * 230.0 / height, 230.0
        pdf.image(to_pil_image(obj), x=10, y=pdf.get_y() + 2, w=width, h=height)

    def _report_page(self, pdf: StudyReportPDF, obj: DecodedObject) -> None:
        pdf.add_page()
        pdf.set_font('Helvetica', 'B', 12)
        pdf.cell(
            0, 8,
            f'Series {obj.series.series_number} - Report {obj.image.instance_number}',
            ln=True,
        )
        pdf.set_font('Helvetica', '', 10)
        pdf.multi_cell(0, 6, obj.image.text_content or '(no report text)')


def export_study(
    study_dir: Union[str, Path],
    fmt: str,
    output_dir: Union[str, Path],
    output_file: Optional[Union[str, Path]] = None,
) -> List[Path]:
    """
    Export one persisted study.

    Raises:
        ValueError: for an unknown format
        FileNotFoundError: if the study directory holds no objects
    """
    fmt = fmt.lower()
    if fmt not in EXPORT_FORMATS and fmt not in IMAGE_FORMATS:
        raise ValueError(f"Invalid format {fmt!r}. Valid formats: {', '.join(EXPORT_FORMATS)}")
    study = read_study(study_dir)
    exporter = StudyExporter(output_dir)
    if fmt == "pdf":
        return [exporter.export_pdf(study, output_file)]
    return exporter.export_images(study, fmt)
