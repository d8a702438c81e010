"""
Globally unique identifier generation.

Identifiers are ``<org_root>.<n>`` where ``n`` is a 62-bit non-negative
integer drawn from the operating system's secure random source. If that source
fails, a timestamp-derived value is used instead; the fallback is logged,
raised as an InsecureRandomFallback warning and recorded on the generator so
the run's uniqueness guarantee is visibly degraded.
"""

import logging
import re
import secrets
import threading
import time
import warnings

from .errors import InsecureRandomFallback

logger = logging.getLogger(__name__)

DEFAULT_ORG_ROOT = "1.2.826.0.1.3680043.8.498.1"

# 2**62 has 19 decimal digits; with the separating dot the root may use 44.
UID_MAX_LENGTH = 64
SUFFIX_BITS = 62
MAX_ORG_ROOT_LENGTH = UID_MAX_LENGTH - len(str(2 ** SUFFIX_BITS)) - 1

_ROOT_PATTERN = re.compile(r"^(0|[1-9][0-9]*)(\.(0|[1-9][0-9]*))*$")


def validate_org_root(org_root: str) -> str:
    """
    Check that an organization root can prefix a valid DICOM UID.

    Raises:
        ValueError: if the root is empty, malformed or too long
    """
    if not org_root or not _ROOT_PATTERN.match(org_root):
        raise ValueError(
            f"Organization root must be dotted numeric components without "
            f"leading zeros, got {org_root!r}"
        )
    if len(org_root) > MAX_ORG_ROOT_LENGTH:
        raise ValueError(
            f"Organization root is {len(org_root)} characters; at most "
            f"{MAX_ORG_ROOT_LENGTH} leave room for a 62-bit suffix"
        )
    return org_root


class UIDGenerator:
    """
    Produces identifiers under one organization root.

    Safe to share between threads: the secure source is process-wide and
    thread-safe, and the degraded flag is guarded by a lock.
    """

    def __init__(self, org_root: str = DEFAULT_ORG_ROOT):
        self.org_root = validate_org_root(org_root)
        self._lock = threading.Lock()
        self._fallback_count = 0

    @property
    def degraded(self) -> bool:
        """True once any identifier came from the timestamp fallback."""
        with self._lock:
            return self._fallback_count > 0

    @property
    def fallback_count(self) -> int:
        with self._lock:
            return self._fallback_count

    def generate_identifier(self) -> str:
        """Return a new ``<org_root>.<random 62-bit integer>`` identifier."""
        try:
            suffix = secrets.randbelow(2 ** SUFFIX_BITS)
        except (NotImplementedError, OSError) as exc:
            suffix = self._fallback_suffix(exc)
        return f"{self.org_root}.{suffix}"

    def _fallback_suffix(self, exc: Exception) -> int:
        with self._lock:
            self._fallback_count += 1
        logger.warning(
            "Secure random source unavailable (%s); identifier under %s "
            "falls back to a timestamp and uniqueness is degraded",
            exc, self.org_root,
        )
        warnings.warn(
            f"Identifier fell back to timestamp under {self.org_root}: {exc}",
            InsecureRandomFallback,
            stacklevel=3,
        )
        return time.time_ns() % (2 ** SUFFIX_BITS)


def generate_identifier(org_root: str = DEFAULT_ORG_ROOT) -> str:
    """Convenience wrapper for one-off identifiers."""
    return UIDGenerator(org_root).generate_identifier()
