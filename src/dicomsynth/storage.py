"""
Storage writer collaborator.

Persists encoded objects verbatim under an output root using the layout

    <root>/<study_uid>/series_NNN/image_NNN.dcm

The encoder never touches the filesystem; this is the only place that does on
the generation path.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Union

from .encoding import EncodedObject, encode_study
from .model import Study

logger = logging.getLogger(__name__)


class StudyWriter:
    """Writes encoded bytes under one output root."""

    def __init__(self, output_root: Union[str, Path]):
        self.output_root = Path(output_root)

    def path_for(self, path_hint: str) -> Path:
        """
        Resolve a relative path hint under the output root.

        Raises:
            ValueError: if the hint is absolute or escapes the root
        """
        parts = [p for p in path_hint.split("/") if p]
        if path_hint.startswith("/") or any(p == ".." for p in parts):
            raise ValueError(f"Path hint must stay under the output root: {path_hint!r}")
        return self.output_root.joinpath(*parts)

    def write(self, path_hint: str, data: bytes) -> Path:
        path = self.path_for(path_hint)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
        logger.debug("Wrote %d bytes to %s", len(data), path)
        return path

    def write_all(self, objects: Iterable[EncodedObject]) -> List[Path]:
        return [self.write(obj.path_hint, obj.data) for obj in objects]

    def write_study(self, study: Study) -> List[Path]:
        """Encode and persist every image of a study graph."""
        paths = self.write_all(encode_study(study))
        logger.info("Saved study %s (%d files) under %s", study.study_uid, len(paths), self.output_root)
        return paths
