"""
Listing of persisted studies.

Scans an output root for study directories (named by study UID), reads a
summary of each and renders it as a table, JSON or CSV. A study that cannot be
read is still listed, with its UID only, and a warning is logged.
"""

import csv
import io
import json
import logging
import re
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import List, Union

from pydicom.errors import InvalidDicomError

from .errors import DicomSynthError
from .reader import read_study

logger = logging.getLogger(__name__)

FORMATS = ("table", "json", "csv")

_UID_DIR_PATTERN = re.compile(r"^[0-9]+(\.[0-9]+)+$")

BASIC_COLUMNS = ["study_uid", "patient_name", "patient_id", "study_date", "series_count", "image_count"]
VERBOSE_COLUMNS = BASIC_COLUMNS[:4] + ["study_description"] + BASIC_COLUMNS[4:] + ["modality", "accession_number"]


@dataclass
class StudySummary:
    study_uid: str
    patient_name: str = ""
    patient_id: str = ""
    study_date: str = ""
    study_description: str = ""
    series_count: int = 0
    image_count: int = 0
    modality: str = ""
    accession_number: str = ""
    readable: bool = True


def is_study_directory(path: Path) -> bool:
    return path.is_dir() and len(path.name) >= 10 and bool(_UID_DIR_PATTERN.match(path.name))


def summarize_study(study_dir: Union[str, Path]) -> StudySummary:
    study_dir = Path(study_dir)
    try:
        study = read_study(study_dir)
    except (DicomSynthError, InvalidDicomError, ValueError, OSError) as e:
        logger.warning("Failed to read study info for %s: %s", study_dir.name, e)
        return StudySummary(study_uid=study_dir.name, readable=False)
    return StudySummary(
        study_uid=study.study_uid,
        patient_name=study.patient.name,
        patient_id=study.patient.patient_id,
        study_date=study.record.study_date,
        study_description=study.record.description,
        series_count=len(study.series),
        image_count=study.image_count,
        modality="/".join(study.modalities),
        accession_number=study.record.accession_number,
    )


def list_studies(output_root: Union[str, Path]) -> List[StudySummary]:
    """
    Summaries of every study directory directly under ``output_root``, by UID.

    Raises:
        FileNotFoundError: if the root does not exist
    """
    root = Path(output_root)
    if not root.is_dir():
        raise FileNotFoundError(f"Studies directory does not exist: {root}")
    return [summarize_study(p) for p in sorted(root.iterdir()) if is_study_directory(p)]


def format_table(studies: List[StudySummary], verbose: bool = False) -> str:
    columns = VERBOSE_COLUMNS if verbose else BASIC_COLUMNS
    widths = {
        "study_uid": 64, "patient_name": 24, "patient_id": 12, "study_date": 10,
        "study_description": 28, "series_count": 6, "image_count": 6,
        "modality": 8, "accession_number": 16,
    }
    headers = {
        "study_uid": "Study UID", "patient_name": "Patient Name", "patient_id": "Patient ID",
        "study_date": "Study Date", "study_description": "Description", "series_count": "Series",
        "image_count": "Images", "modality": "Modality", "accession_number": "Accession",
    }
    line = " ".join(f"{headers[c]:<{widths[c]}}" for c in columns)
    rows = [line, "-" * len(line)]
    for study in studies:
        values = asdict(study)
        rows.append(" ".join(f"{str(values[c]):<{widths[c]}}" for c in columns))
    return "\n".join(row.rstrip() for row in rows)


def format_json(studies: List[StudySummary], verbose: bool = False) -> str:
    columns = VERBOSE_COLUMNS if verbose else BASIC_COLUMNS
    return json.dumps([{c: asdict(s)[c] for c in columns} for s in studies], indent=2)


def format_csv(studies: List[StudySummary], verbose: bool = False) -> str:
    columns = VERBOSE_COLUMNS if verbose else BASIC_COLUMNS
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=columns, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for study in studies:
        writer.writerow(asdict(study))
    return buffer.getvalue()


def render(studies: List[StudySummary], fmt: str = "table", verbose: bool = False) -> str:
    """
    Raises:
        ValueError: for an unknown format
    """
    if fmt not in FORMATS:
        raise ValueError(f"Invalid format {fmt!r}. Valid formats: {', '.join(FORMATS)}")
    renderer = {"table": format_table, "json": format_json, "csv": format_csv}[fmt]
    return renderer(studies, verbose)
