# src/dicomsynth/pipeline.py
"""
Generation pipeline orchestration.

This module coordinates a multi-study request:
- Study planning (metadata graph, serial)
- Per-image pixel synthesis and encoding (serial or on a thread pool)
- Optional hand-off of the encoded bytes to a writer collaborator
- Result aggregation

Failures are isolated per item: a study that cannot be planned records one
failed item, an image that cannot be rendered, encoded or written records one
failed item, and the run continues with the remaining items. No bytes that
failed encoding are ever handed to the writer.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Tuple

import numpy as np

from .config import GenerationParams, GeneratorConfig
from .encoding import encode_object, object_path_hint
from .errors import DicomSynthError, EncodingInvariantViolation
from .generator import StudyGenerator, new_seed_sequence
from .model import Image, Series, Study
from .storage import StudyWriter
from .uids import UIDGenerator

logger = logging.getLogger(__name__)


@dataclass
class ItemResult:
    """Outcome for one image, or for a whole study that failed to plan."""
    study_index: int
    series_number: Optional[int] = None
    instance_number: Optional[int] = None
    study_uid: Optional[str] = None
    path_hint: Optional[str] = None
    output_path: Optional[str] = None
    byte_size: int = 0
    success: bool = False
    error_type: Optional[str] = None
    error: Optional[str] = None

    @property
    def position(self) -> str:
        parts = [f"study {self.study_index}"]
        if self.series_number is not None:
            parts.append(f"series {self.series_number}")
        if self.instance_number is not None:
            parts.append(f"image {self.instance_number}")
        return ", ".join(parts)


@dataclass
class GenerationReport:
    """
    Aggregate result of a generation request.

    ``uniqueness_degraded`` is True when any identifier in the run came from
    the timestamp fallback instead of the secure random source.
    """
    succeeded: List[ItemResult] = field(default_factory=list)
    failed: List[ItemResult] = field(default_factory=list)
    study_uids: List[str] = field(default_factory=list)
    uniqueness_degraded: bool = False
    elapsed_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return not self.failed

    @property
    def total_bytes(self) -> int:
        return sum(item.byte_size for item in self.succeeded)

    @property
    def failed_studies(self) -> List[ItemResult]:
        """Studies that failed before any image was planned."""
        return [item for item in self.failed if item.series_number is None]

    @property
    def failed_images(self) -> List[ItemResult]:
        return [item for item in self.failed if item.series_number is not None]

    def summary(self) -> str:
        lines = [
            f"Studies: {len(self.study_uids)}",
            f"Studies failed: {len(self.failed_studies)}",
            f"Images succeeded: {len(self.succeeded)}",
            f"Images failed: {len(self.failed_images)}",
            f"Bytes encoded: {self.total_bytes}",
            f"Elapsed: {self.elapsed_seconds:.2f}s",
        ]
        if self.uniqueness_degraded:
            lines.append("WARNING: identifier uniqueness degraded (secure random source unavailable)")
        return "\n".join(lines)


ImageTask = Tuple[int, Study, Series, Image, np.random.SeedSequence]


def _failure(item: ItemResult, exc: BaseException) -> ItemResult:
    item.success = False
    item.error_type = type(exc).__name__
    item.error = str(exc)
    return item


def run_generation(
    params: GenerationParams,
    config: Optional[GeneratorConfig] = None,
    seed: Optional[int] = None,
    workers: int = 1,
    writer: Optional[StudyWriter] = None,
    *,
    clock: Callable[[], datetime] = datetime.now,
    progress_callback: Optional[Callable[[int, int, str], None]] = None,
) -> GenerationReport:
    """
    Run a complete generation request.

    Args:
        params: What to generate
        config: Organization root and other settings; defaults when omitted
        seed: Seed for pixel and default-value randomness; wall clock when omitted
        workers: Thread count for per-image work (1 = serial)
        writer: Storage collaborator; when omitted, bytes are encoded and counted only
        clock: Wall-clock source for dates and times
        progress_callback: Optional callback(done, total, path_hint)

    Returns:
        GenerationReport separating succeeded from failed items

    Raises:
        ValueError: if the request itself is invalid (counts, geometry)
    """
    params.validate()
    config = config or GeneratorConfig()
    start_time = time.time()

    uid_generator = UIDGenerator(config.org_root)
    generator = StudyGenerator(uid_generator, clock)
    report = GenerationReport()

    study_seeds = new_seed_sequence(seed).spawn(params.study_count)
    tasks: List[ImageTask] = []

    for study_index, study_seed in enumerate(study_seeds, start=1):
        try:
            plan = generator.plan_study(params, study_index, study_seed)
        except (DicomSynthError, ValueError) as e:
            logger.error("Study %d could not be planned: %s", study_index, e)
            report.failed.append(_failure(ItemResult(study_index), e))
            continue
        report.study_uids.append(plan.study.study_uid)
        for (series, image), image_seed in zip(plan.study.iter_images(), plan.image_seeds):
            tasks.append((study_index, plan.study, series, image, image_seed))

    logger.info(
        "Generating %d images across %d studies with %d worker(s)",
        len(tasks), len(report.study_uids), workers,
    )

    def process(task: ImageTask) -> ItemResult:
        study_index, study, series, image, image_seed = task
        item = ItemResult(
            study_index,
            series.series_number,
            image.instance_number,
            study.study_uid,
            object_path_hint(study.study_uid, series.series_number, image.instance_number),
        )
        try:
            pixels = generator.render_pixels(study, series, image, image_seed)
            data = encode_object(study.patient, study.record, series.record, image.record, pixels)
            if writer is not None:
                item.output_path = str(writer.write(item.path_hint, data))
        except EncodingInvariantViolation as e:
            logger.critical("Encoder defect at %s: %s", item.position, e)
            return _failure(item, e)
        except (DicomSynthError, ValueError, OSError) as e:
            logger.error("Failed %s: %s", item.position, e)
            return _failure(item, e)
        item.byte_size = len(data)
        item.success = True
        return item

    pool = ThreadPoolExecutor(max_workers=workers) if workers > 1 else None
    try:
        outcomes = pool.map(process, tasks) if pool else map(process, tasks)
        for done, item in enumerate(outcomes, start=1):
            (report.succeeded if item.success else report.failed).append(item)
            if progress_callback:
                progress_callback(done, len(tasks), item.path_hint)
    finally:
        if pool:
            pool.shutdown()

    report.uniqueness_degraded = uid_generator.degraded
    report.elapsed_seconds = time.time() - start_time
    logger.info(
        "Generation finished: %d succeeded, %d failed in %.2fs",
        len(report.succeeded), len(report.failed), report.elapsed_seconds,
    )
    return report
