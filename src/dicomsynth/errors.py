"""
Error taxonomy for dicomsynth.

Validation failures derive from ValueError, invariant violations derive from
RuntimeError (hard fail, never written to output), and degraded randomness is
a warning rather than an error.
"""

from typing import Optional


class DicomSynthError(Exception):
    """Base class for all dicomsynth errors."""


class UnsupportedModality(DicomSynthError, ValueError):
    """No object-class or geometry mapping exists for the requested modality."""

    def __init__(self, modality: object):
        self.modality = modality
        super().__init__(f"Unsupported modality: {modality!r}")


class GeometryMismatch(DicomSynthError, ValueError):
    """Pixel buffer size disagrees with the declared image geometry."""

    def __init__(self, expected: int, actual: Optional[int], detail: str = ""):
        self.expected = expected
        self.actual = actual
        message = f"Pixel buffer is {actual} bytes, geometry declares {expected}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class EncodingInvariantViolation(DicomSynthError, RuntimeError):
    """
    The encoder produced bytes that break its own contract.

    Raised when the declared meta-information group length differs from the
    measured length, or when tags are out of order or duplicated. This is a
    programming defect: the offending bytes are discarded, never returned.
    """


class InsecureRandomFallback(UserWarning):
    """
    The secure random source failed and identifiers fell back to a timestamp.

    Emitted through ``warnings.warn`` and logged; it does not stop generation,
    but the run's uniqueness guarantee is reported as degraded.
    """
