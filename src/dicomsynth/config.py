"""
Configuration for dicomsynth.

- GeneratorConfig: organization root, output directory, logging and user
  templates; loaded from / saved to JSON, with an environment override for
  the organization root.
- StudyTemplate: a named preset for a generation request.
- GenerationParams: one generation request (counts, modality, patient fields,
  optional geometry override).
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from dateutil import parser as date_parser

from .metadata import MAX_BITS_PER_PIXEL, MAX_DIMENSION
from .uids import DEFAULT_ORG_ROOT, validate_org_root

logger = logging.getLogger(__name__)

ORG_ROOT_ENV = "DICOMSYNTH_ORG_ROOT"
DEFAULT_OUTPUT_DIR = "studies"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def normalize_dicom_date(value: Optional[str]) -> Optional[str]:
    """
    Parse a user-supplied date in any common format into YYYYMMDD.

    Raises:
        ValueError: if the value cannot be parsed as a date
    """
    if value is None or not str(value).strip():
        return None
    try:
        parsed = date_parser.parse(str(value).strip(), yearfirst=True, dayfirst=False)
    except (ValueError, OverflowError) as exc:
        raise ValueError(f"Unrecognized date: {value!r}") from exc
    return parsed.strftime("%Y%m%d")


# ═══════════════════════════════════════════════════════════════════════════════
# TEMPLATES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class StudyTemplate:
    """Named generation preset."""
    modality: str
    series_count: int = 1
    image_count: int = 1
    anatomical_region: str = "chest"
    study_description: str = ""
    patient_name: Optional[str] = None
    patient_id: Optional[str] = None
    accession_number: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StudyTemplate":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


BUILT_IN_TEMPLATES: Dict[str, StudyTemplate] = {
    "chest-xray": StudyTemplate("CR", 1, 2, "chest", "Chest X-Ray"),
    "ct-chest": StudyTemplate("CT", 2, 50, "chest", "CT Chest"),
    "ultrasound-abdomen": StudyTemplate("US", 1, 10, "abdomen", "Ultrasound Abdomen"),
    "mammography": StudyTemplate("MG", 1, 4, "breast", "Mammography"),
    "digital-xray": StudyTemplate("DX", 1, 1, "chest", "Digital X-Ray"),
    "mri-brain": StudyTemplate("MR", 3, 30, "brain", "MRI Brain"),
    "nm-bone-scan": StudyTemplate("NM", 1, 2, "whole body", "NM Bone Scan"),
    "pet-whole-body": StudyTemplate("PT", 1, 20, "whole body", "PET Whole Body"),
    "rt-plan-verification": StudyTemplate("RT", 1, 2, "pelvis", "RT Portal Verification"),
    "sr-report": StudyTemplate("SR", 1, 1, "chest", "Structured Report"),
}


# ═══════════════════════════════════════════════════════════════════════════════
# GENERATOR CONFIG
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class GeneratorConfig:
    """Application configuration."""

    # Identifier root (must leave room for a 62-bit suffix)
    org_root: str = DEFAULT_ORG_ROOT

    # Where `create` writes and `list` / `export` read
    output_dir: str = DEFAULT_OUTPUT_DIR

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"

    # User templates; override built-ins by name
    templates: Dict[str, StudyTemplate] = field(default_factory=dict)

    def validate(self) -> "GeneratorConfig":
        """
        Raises:
            ValueError: on a malformed organization root or unknown log level
        """
        validate_org_root(self.org_root)
        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.log_level!r}")
        if not self.output_dir:
            raise ValueError("Output directory must not be empty")
        return self

    def all_templates(self) -> Dict[str, StudyTemplate]:
        merged = dict(BUILT_IN_TEMPLATES)
        merged.update(self.templates)
        return merged

    def get_template(self, name: str) -> StudyTemplate:
        """
        Raises:
            KeyError: if no built-in or user template has this name
        """
        templates = self.all_templates()
        if name not in templates:
            raise KeyError(f"Unknown template {name!r}; available: {', '.join(sorted(templates))}")
        return templates[name]

    def list_templates(self) -> List[str]:
        return sorted(self.all_templates())

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["templates"] = {name: t.to_dict() for name, t in self.templates.items()}
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GeneratorConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", ", ".join(sorted(unknown)))
        values = {k: v for k, v in data.items() if k in known}
        values["templates"] = {
            name: StudyTemplate.from_dict(t) for name, t in (data.get("templates") or {}).items()
        }
        return cls(**values)


def apply_environment(config: GeneratorConfig) -> GeneratorConfig:
    """Apply the organization-root environment override."""
    org_root = os.environ.get(ORG_ROOT_ENV)
    if org_root:
        logger.debug("Organization root overridden by %s", ORG_ROOT_ENV)
        config = replace(config, org_root=org_root.strip())
    return config


def load_config(path: Optional[Union[str, Path]] = None) -> GeneratorConfig:
    """
    Load configuration from JSON, falling back to defaults when no path is given.

    Raises:
        FileNotFoundError: if ``path`` does not exist
        ValueError: if the file is not valid JSON or fails validation
    """
    if path is None:
        config = GeneratorConfig()
    else:
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as exc:
                raise ValueError(f"Invalid config file {path}: {exc}") from exc
        config = GeneratorConfig.from_dict(data)
        logger.info("Loaded config from %s", path)
    return apply_environment(config).validate()


def save_config(config: GeneratorConfig, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config.to_dict(), f, indent=2)
    return path


# ═══════════════════════════════════════════════════════════════════════════════
# GENERATION REQUEST
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class GenerationParams:
    """One generation request."""
    study_count: int = 1
    series_count: int = 1
    image_count: int = 1
    modality: str = "CR"
    anatomical_region: str = "chest"

    # Patient / study fields; generated when unset
    patient_name: Optional[str] = None
    patient_id: Optional[str] = None
    patient_birth_date: Optional[str] = None
    patient_sex: Optional[str] = None
    accession_number: Optional[str] = None
    study_description: Optional[str] = None

    # Geometry override; modality defaults when unset
    width: Optional[int] = None
    height: Optional[int] = None
    bits_per_pixel: Optional[int] = None

    def __post_init__(self):
        self.patient_birth_date = normalize_dicom_date(self.patient_birth_date)

    def validate(self) -> "GenerationParams":
        """
        Check counts and geometry. The modality itself is resolved per study so
        that an unsupported code fails that study rather than the request.

        Raises:
            ValueError: on non-positive counts or out-of-range geometry
        """
        for name in ("study_count", "series_count", "image_count"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name.replace('_', ' ').capitalize()} must be at least 1")
        if self.series_count > 999 or self.image_count > 999:
            raise ValueError("Series and image counts are limited to 999 per study")
        for name in ("width", "height"):
            value = getattr(self, name)
            if value is not None and not 1 <= value <= MAX_DIMENSION:
                raise ValueError(f"{name.capitalize()} must be 1..{MAX_DIMENSION}, got {value}")
        if self.bits_per_pixel is not None and not 1 <= self.bits_per_pixel <= MAX_BITS_PER_PIXEL:
            raise ValueError(f"Bits per pixel must be 1..{MAX_BITS_PER_PIXEL}, got {self.bits_per_pixel}")
        if self.patient_sex and self.patient_sex.upper() not in ("M", "F", "O"):
            raise ValueError(f"Patient sex must be M, F or O, got {self.patient_sex!r}")
        return self

    def with_template(self, template: StudyTemplate, keep: Iterable[str] = ()) -> "GenerationParams":
        """
        Copy with the template's values applied.

        Args:
            template: Template to apply
            keep: Field names the caller set explicitly; these keep their value

        Returns:
            A new GenerationParams; fields the template leaves unset are unchanged
        """
        overrides = {
            "modality": template.modality,
            "series_count": template.series_count,
            "image_count": template.image_count,
            "anatomical_region": template.anatomical_region,
            "study_description": template.study_description,
            "patient_name": template.patient_name,
            "patient_id": template.patient_id,
            "accession_number": template.accession_number,
        }
        keep = set(keep)
        return replace(self, **{
            name: value for name, value in overrides.items()
            if value and name not in keep
        })
