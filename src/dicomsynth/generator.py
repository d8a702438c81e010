# src/dicomsynth/generator.py
"""
Builds complete study graphs from a generation request.

Flow for one study:
    patient -> study -> series (1..N) -> images (1..M) -> pixels

Metadata is built first, serially, so identifiers and numbering are settled
before any pixel work. Each image then gets its own random stream spawned from
the study's SeedSequence, which keeps pixel content reproducible for a fixed
seed no matter which worker renders it.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

import numpy as np

from .config import GenerationParams
from .metadata import ImageGeometry, MetadataGenerator
from .model import Image, Series, Study
from .modality import modality_spec
from .pixels import synthesize_image
from .uids import UIDGenerator

logger = logging.getLogger(__name__)


def new_seed_sequence(seed: Optional[int] = None) -> np.random.SeedSequence:
    """SeedSequence for a request; wall-clock entropy when no seed is given."""
    return np.random.SeedSequence(seed if seed is not None else time.time_ns())


@dataclass
class StudyPlan:
    """Metadata graph for one study plus one seed per image, in image order."""
    study: Study
    image_seeds: List[np.random.SeedSequence] = field(default_factory=list)


class StudyGenerator:
    """
    Generates studies under one UID generator.

    Args:
        uid_generator: Shared identifier source
        clock: Wall-clock source for dates and times
    """

    def __init__(self, uid_generator: UIDGenerator, clock: Callable[[], datetime] = datetime.now):
        self.uid_generator = uid_generator
        self.clock = clock

    def _geometry(self, params: GenerationParams, modality) -> Optional[ImageGeometry]:
        spec = modality_spec(modality)
        if not spec.has_pixels:
            return None
        if params.width is None and params.height is None and params.bits_per_pixel is None:
            return None
        defaults = spec.geometry
        return ImageGeometry.for_raster(
            params.width or defaults.width,
            params.height or defaults.height,
            params.bits_per_pixel or defaults.bits_per_pixel,
        )

    def plan_study(
        self,
        params: GenerationParams,
        study_index: int = 1,
        seed_sequence: Optional[np.random.SeedSequence] = None,
    ) -> StudyPlan:
        """
        Build the metadata graph for one study; images carry no pixels yet.

        Raises:
            UnsupportedModality: if the requested modality has no table row
        """
        if seed_sequence is None:
            seed_sequence = new_seed_sequence()
        metadata_seed, pixel_seed = seed_sequence.spawn(2)
        spec = modality_spec(params.modality)
        builder = MetadataGenerator(
            self.uid_generator, np.random.default_rng(metadata_seed), self.clock
        )

        patient = builder.build_patient(
            params.patient_name,
            params.patient_id,
            params.patient_birth_date,
            params.patient_sex,
        )
        record = builder.build_study(
            params.study_description or f"Synthetic {spec.modality.value} study",
            params.accession_number,
            study_id=str(study_index),
        )
        study = Study(patient, record)
        geometry = self._geometry(params, spec.modality)

        for series_number in range(1, params.series_count + 1):
            series = study.add_series(
                Series(builder.build_series(spec.modality, series_number, params.anatomical_region))
            )
            for instance_number in range(1, params.image_count + 1):
                image_record = builder.build_image(series.record, instance_number, geometry=geometry)
                series.add_image(Image(image_record))

        logger.debug(
            "Planned study %s: %d series x %d images of %s",
            study.study_uid, params.series_count, params.image_count, spec.modality.value,
        )
        return StudyPlan(study, pixel_seed.spawn(study.image_count))

    def render_pixels(
        self,
        study: Study,
        series: Series,
        image: Image,
        seed: Optional[np.random.SeedSequence] = None,
    ) -> Optional[bytes]:
        """Pixel buffer for one planned image, or None when it has no geometry."""
        rng = np.random.default_rng(seed if seed is not None else new_seed_sequence())
        return synthesize_image(
            study.patient, study.record, series.record, image.record, len(series.images), rng
        )

    def generate_study(
        self,
        params: GenerationParams,
        study_index: int = 1,
        seed_sequence: Optional[np.random.SeedSequence] = None,
    ) -> Study:
        """Build one study graph with pixel data filled in for every image."""
        plan = self.plan_study(params, study_index, seed_sequence)
        complete = Study(plan.study.patient, plan.study.record)
        seeds = iter(plan.image_seeds)
        for series in plan.study.series:
            filled = complete.add_series(Series(series.record))
            for image in series.images:
                pixels = self.render_pixels(plan.study, series, image, next(seeds))
                filled.add_image(Image(image.record, pixels))
        return complete
