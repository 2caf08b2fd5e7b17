"""Batch runs over the raw image tree: per post, per file, and run statistics."""
import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from image_optimizer.config import PipelineSettings
from image_optimizer.processing.models import SourceReport
from image_optimizer.processing.service import ImagePipeline

logger = logging.getLogger("optimizer.batch")

SUPPORTED_IMAGE = re.compile(r"\.(jpg|jpeg|png|webp|avif|gif|tiff)$", re.I)
COVER_IMAGE = re.compile(r"^portada\.(jpg|jpeg|png|webp)$", re.I)
POST_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def is_supported_image(filename: str) -> bool:
    return bool(SUPPORTED_IMAGE.search(filename))


def is_cover_image(filename: str) -> bool:
    return bool(COVER_IMAGE.match(filename))


def validate_post_id(post_id: str) -> str:
    """Reject ids that could escape the raw/public directories."""
    post_id = (post_id or "").strip()
    if not POST_ID.match(post_id) or ".." in post_id:
        raise ValueError(f"Invalid post id: {post_id!r}")
    return post_id


@dataclass
class PostImages:
    directory: Path
    cover_images: list[str] = field(default_factory=list)
    other_images: list[str] = field(default_factory=list)


def get_post_directories(raw_dir: Path) -> list[str]:
    if not raw_dir.is_dir():
        return []
    return sorted(p.name for p in raw_dir.iterdir() if p.is_dir())


def get_post_images(raw_dir: Path, post_id: str) -> PostImages:
    directory = raw_dir / post_id
    if not directory.is_dir():
        return PostImages(directory=directory)
    files = sorted(p.name for p in directory.iterdir() if p.is_file() and is_supported_image(p.name))
    return PostImages(
        directory=directory,
        cover_images=[f for f in files if is_cover_image(f)],
        other_images=[f for f in files if not is_cover_image(f)],
    )


@dataclass
class RunStats:
    total: int = 0
    processed: int = 0
    skipped: int = 0
    errors: int = 0
    lqip_errors: int = 0
    failed_sources: list[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.monotonic)
    finished_at: Optional[float] = None

    def record(self, report: SourceReport) -> None:
        self.total += len(report.results)
        self.processed += report.processed
        self.skipped += report.skipped
        self.errors += report.failed
        if report.lqip is not None and not report.lqip.success:
            self.lqip_errors += 1
        if not report.ok:
            self.failed_sources.append(report.source)

    def finish(self) -> None:
        self.finished_at = time.monotonic()

    @property
    def duration(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at

    @property
    def ok(self) -> bool:
        return self.errors == 0 and self.lqip_errors == 0

    def summary_line(self) -> str:
        return (
            f"{self.total} artifacts: {self.processed} processed, {self.skipped} skipped, "
            f"{self.errors} errors ({self.lqip_errors} LQIP errors) in {self.duration:.1f}s"
        )


class BatchOptimizer:
    """Drives the pipeline over posts and files, cover images getting the full preset family."""

    def __init__(self, pipeline: ImagePipeline, settings: Optional[PipelineSettings] = None):
        self.pipeline = pipeline
        self.settings = settings or pipeline.settings
        self.stats = RunStats()

    def output_dir_for(self, post_id: str) -> Path:
        return self.settings.public_dir / validate_post_id(post_id)

    def plan_post(self, post_id: str) -> list[tuple[str, tuple[str, ...]]]:
        """(file name, preset names) pairs a run of this post would attempt."""
        images = get_post_images(self.settings.raw_dir, validate_post_id(post_id))
        registry = self.pipeline.registry
        plan = [(f, registry.presets_for(cover=True)) for f in images.cover_images]
        plan += [(f, registry.presets_for(cover=False)) for f in images.other_images]
        return plan

    async def optimize_post(self, post_id: str, force: bool = False) -> list[SourceReport]:
        post_id = validate_post_id(post_id)
        images = get_post_images(self.settings.raw_dir, post_id)
        if not images.cover_images and not images.other_images:
            logger.warning("No images found for post: %s", post_id)
            return []
        output_dir = self.output_dir_for(post_id)
        logger.info(
            "Processing post %s: %s cover, %s other image(s)",
            post_id, len(images.cover_images), len(images.other_images),
        )
        reports = []
        for name in images.cover_images + images.other_images:
            cover = is_cover_image(name)
            report = await self.pipeline.process(
                images.directory / name,
                presets=self.pipeline.registry.presets_for(cover=cover),
                output_dir=output_dir,
                base_name=Path(name).stem,
                force=force,
                lqip=cover,
            )
            self.stats.record(report)
            reports.append(report)
        return reports

    async def optimize_all(self, force: bool = False) -> list[SourceReport]:
        post_ids = get_post_directories(self.settings.raw_dir)
        if not post_ids:
            logger.warning("No post directories found in %s", self.settings.raw_dir)
            return []
        logger.info("Found %s post directories", len(post_ids))
        reports = []
        for post_id in post_ids:
            try:
                reports.extend(await self.optimize_post(post_id, force=force))
            except ValueError as e:
                logger.warning("Skipping directory %s: %s", post_id, e)
        return reports

    async def optimize_file(
        self,
        source_ref: str,
        preset: Optional[str] = None,
        force: bool = False,
        base_name: Optional[str] = None,
        post_id: Optional[str] = None,
    ) -> SourceReport:
        """
        Process one explicit file or URL. Without a preset, cover images get the
        full family and everything else the default preset.
        """
        output_dir = self._file_output_dir(source_ref, post_id)
        name = Path(str(source_ref)).name
        cover = is_cover_image(name)
        presets = [preset] if preset else self.pipeline.registry.presets_for(cover=cover)
        report = await self.pipeline.process(
            source_ref,
            presets=presets,
            output_dir=output_dir,
            base_name=base_name,
            force=force,
            lqip=cover and preset is None,
        )
        self.stats.record(report)
        return report

    def _file_output_dir(self, source_ref: str, post_id: Optional[str]) -> Path:
        if post_id:
            return self.output_dir_for(post_id)
        path = Path(str(source_ref)).resolve()
        raw_dir = self.settings.raw_dir.resolve()
        try:
            relative = path.parent.relative_to(raw_dir)
        except ValueError:
            return self.settings.public_dir
        return self.settings.public_dir / relative
