# src/dicomsynth/model.py
"""
In-memory study graph.

Study -> ordered Series -> ordered Images. Each image holds its attribute
record and, for pixel-bearing modalities, the packed pixel buffer.

The graph is append-only: series and images are added in number order and are
not mutated once pixel synthesis for them has completed.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

from .metadata import ImageRecord, PatientRecord, SeriesRecord, StudyRecord


@dataclass(frozen=True)
class Image:
    """One instance: attributes plus an optional packed pixel buffer."""
    record: ImageRecord
    pixel_data: Optional[bytes] = None

    @property
    def instance_number(self) -> int:
        return self.record.instance_number


@dataclass
class Series:
    record: SeriesRecord
    images: List[Image] = field(default_factory=list)

    @property
    def series_number(self) -> int:
        return self.record.series_number

    def add_image(self, image: Image) -> Image:
        """
        Append the next instance.

        Raises:
            ValueError: if the instance number is not the next in sequence
        """
        expected = len(self.images) + 1
        if image.instance_number != expected:
            raise ValueError(
                f"Series {self.series_number}: expected instance {expected}, "
                f"got {image.instance_number}"
            )
        self.images.append(image)
        return image


@dataclass
class Study:
    patient: PatientRecord
    record: StudyRecord
    series: List[Series] = field(default_factory=list)

    @property
    def study_uid(self) -> str:
        return self.record.study_uid

    @property
    def image_count(self) -> int:
        return sum(len(s.images) for s in self.series)

    def add_series(self, series: Series) -> Series:
        expected = len(self.series) + 1
        if series.series_number != expected:
            raise ValueError(
                f"Study {self.study_uid}: expected series {expected}, "
                f"got {series.series_number}"
            )
        self.series.append(series)
        return series

    def iter_images(self) -> Iterator[Tuple[Series, Image]]:
        """Yield (series, image) pairs in series then instance order."""
        for series in self.series:
            for image in series.images:
                yield series, image
