# src/dicomsynth/__init__.py
"""
dicomsynth: synthetic DICOM study generator.

Three core components, all pure and filesystem-free:
- Identity & metadata generation (uids, metadata)
- Pixel synthesis with burned-in text overlays (pixels)
- Explicit VR little endian encoding with a precomputed meta group length (encoding)

Collaborators around the core:
- generator / pipeline: build and encode whole requests
- storage / reader / listing / export: persisted layout, decoding and reports
- config / cli: configuration, templates and the command line
"""

from .config import GenerationParams, GeneratorConfig, StudyTemplate, load_config
from .encoding import APP_VERSION, EncodedObject, encode_object, encode_study
from .errors import (
    DicomSynthError,
    EncodingInvariantViolation,
    GeometryMismatch,
    InsecureRandomFallback,
    UnsupportedModality,
)
from .generator import StudyGenerator
from .metadata import (
    ImageGeometry,
    ImageRecord,
    MetadataGenerator,
    PatientRecord,
    SeriesRecord,
    StudyRecord,
)
from .modality import Modality, modality_spec
from .model import Image, Series, Study
from .pipeline import GenerationReport, run_generation
from .pixels import synthesize, synthesize_image
from .reader import read_object, read_study
from .storage import StudyWriter
from .uids import UIDGenerator, generate_identifier

__version__ = APP_VERSION

__all__ = [
    # Errors
    'DicomSynthError',
    'EncodingInvariantViolation',
    'GeometryMismatch',
    'InsecureRandomFallback',
    'UnsupportedModality',
    # Identity & metadata
    'Modality',
    'modality_spec',
    'UIDGenerator',
    'generate_identifier',
    'MetadataGenerator',
    'PatientRecord',
    'StudyRecord',
    'SeriesRecord',
    'ImageRecord',
    'ImageGeometry',
    'Study',
    'Series',
    'Image',
    # Pixels
    'synthesize',
    'synthesize_image',
    # Encoding
    'EncodedObject',
    'encode_object',
    'encode_study',
    # Collaborators
    'GenerationParams',
    'GeneratorConfig',
    'StudyTemplate',
    'load_config',
    'StudyGenerator',
    'GenerationReport',
    'run_generation',
    'StudyWriter',
    'read_object',
    'read_study',
]
