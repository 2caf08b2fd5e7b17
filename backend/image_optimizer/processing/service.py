"""Image derivation pipeline: resolve, download, transform per preset, LQIP, clean up."""
import asyncio
import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlparse

from image_optimizer.config import PipelineSettings, get_settings
from image_optimizer.processing.cache import all_current, should_regenerate
from image_optimizer.processing.cleanup import temp_source
from image_optimizer.processing.downloader import ImageDownloader
from image_optimizer.processing.errors import InvalidSourceError
from image_optimizer.processing.lqip import LQIPGenerator, lqip_paths, read_data_uri
from image_optimizer.processing.models import (
    ErrorKind,
    LQIPResult,
    Preset,
    ProcessingResult,
    SourceImage,
    SourceReport,
)
from image_optimizer.processing.presets import (
    LQIP_PRESET,
    PresetRegistry,
    default_registry,
    output_file_name,
    validate_base_name,
)
from image_optimizer.processing.sources import SourceResolver
from image_optimizer.processing.transformer import ImageTransformer, validate_image

logger = logging.getLogger("optimizer.service")

PresetSelection = Union[str, Iterable[str], None]


def default_base_name(source: SourceImage) -> str:
    if source.is_remote:
        return Path(urlparse(source.url).path).stem or "image"
    return source.path.stem


class ImagePipeline:
    """Derives the preset family and LQIP for one source at a time."""

    def __init__(
        self,
        settings: Optional[PipelineSettings] = None,
        registry: Optional[PresetRegistry] = None,
        resolver: Optional[SourceResolver] = None,
        downloader: Optional[ImageDownloader] = None,
        transformer: Optional[ImageTransformer] = None,
        lqip_generator: Optional[LQIPGenerator] = None,
    ):
        self.settings = settings or get_settings()
        s = self.settings
        self.registry = registry or default_registry()
        self.resolver = resolver or SourceResolver(s.allowed_domains, s.image_service_domains)
        self.downloader = downloader or ImageDownloader(
            s.temp_dir,
            timeout=s.download_timeout,
            max_retries=s.download_max_retries,
            retry_delay=s.download_retry_delay,
            max_bytes=s.download_max_bytes,
        )
        self.transformer = transformer or ImageTransformer(webp_effort=s.webp_effort)
        self.lqip_generator = lqip_generator or LQIPGenerator.from_preset(
            self.registry.lookup(LQIP_PRESET), blur_radius=s.lqip_blur
        )
        self._executor = ThreadPoolExecutor(max_workers=s.max_workers)
        logger.debug("ImagePipeline initialized with max_workers=%s parallel=%s", s.max_workers, s.parallel_presets)

    async def __aenter__(self) -> "ImagePipeline":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self.downloader.close()
        self._executor.shutdown(wait=True)

    async def process(
        self,
        source_ref: Union[str, Path],
        presets: PresetSelection = None,
        output_dir: Optional[Path] = None,
        base_name: Optional[str] = None,
        force: bool = False,
        lqip: bool = True,
    ) -> SourceReport:
        """
        Generate every requested preset (default: the essential family) for one source.

        Unknown or reserved preset names and unsafe base names raise ConfigError
        before anything else happens. Sources are checked for readability, minimum
        dimensions and file size before any preset runs.
        Every other failure is reported in the returned SourceReport.
        """
        preset_list = self.registry.resolve(presets)
        if base_name is not None:
            base_name = validate_base_name(base_name)
        output_dir = Path(output_dir) if output_dir else self.settings.public_dir
        report = SourceReport(source=str(source_ref))

        try:
            source = self.resolver.classify(source_ref)
        except InvalidSourceError as e:
            return self._fail_all(report, preset_list, output_dir, base_name or "image", lqip,
                                  ErrorKind.INVALID_SOURCE, f"Invalid source: {e}")
        report.kind = source.kind
        base_name = base_name or default_base_name(source)

        if not source.is_remote and not source.path.is_file():
            return self._fail_all(report, preset_list, output_dir, base_name, lqip,
                                  ErrorKind.INVALID_SOURCE, f"Invalid source: file not found: {source.path}")

        # Remote sources have no local mtime until downloaded; existing outputs count as current.
        mtime_source = None if source.is_remote else source.path
        planned: dict[str, ProcessingResult] = {}
        pending: list[Preset] = []
        for preset in preset_list:
            file_name = output_file_name(base_name, preset)
            output_path = output_dir / file_name
            if should_regenerate(mtime_source, output_path, force):
                pending.append(preset)
            else:
                logger.debug("Skipping %s (up to date)", file_name)
                planned[preset.name] = ProcessingResult(
                    success=True,
                    output_path=output_path,
                    output_file_name=file_name,
                    preset=preset.name,
                    format=preset.format,
                    size_bytes=output_path.stat().st_size,
                    skipped=True,
                )

        lqip_pending = False
        if lqip:
            report.lqip = self._current_lqip(mtime_source, output_dir, base_name, force)
            lqip_pending = report.lqip is None

        if pending or lqip_pending:
            if source.is_remote:
                download = await self.downloader.download(source.url)
                report.download = download
                if not download.success:
                    self._fail_pending(report, planned, pending, lqip_pending, output_dir, base_name,
                                       ErrorKind.DOWNLOAD_FAILURE, f"Download failed: {download.error}")
                else:
                    async with temp_source(download) as temp_path:
                        await self._validate_and_run(report, planned, temp_path, pending, lqip_pending,
                                                     output_dir, base_name)
            else:
                await self._validate_and_run(report, planned, source.path, pending, lqip_pending,
                                             output_dir, base_name)

        report.results = [planned[p.name] for p in preset_list]
        if report.error_kind is None:
            if report.failed:
                report.error_kind = ErrorKind.TRANSFORM_FAILURE
            elif report.lqip is not None and not report.lqip.success:
                report.error_kind = ErrorKind.LQIP_FAILURE
        self._log_report(report)
        return report

    async def _validate_and_run(
        self,
        report: SourceReport,
        planned: dict[str, ProcessingResult],
        source_path: Path,
        pending: list[Preset],
        with_lqip: bool,
        output_dir: Path,
        base_name: str,
    ) -> None:
        s = self.settings
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                self._executor,
                partial(validate_image, source_path, s.min_image_width, s.min_image_height, s.max_source_bytes),
            )
        except InvalidSourceError as e:
            self._fail_pending(report, planned, pending, with_lqip, output_dir, base_name,
                               ErrorKind.INVALID_SOURCE, f"Invalid source: {e}")
            return
        results, lqip_result = await self._run(source_path, pending, with_lqip, output_dir, base_name)
        planned.update(results)
        if with_lqip:
            report.lqip = lqip_result

    async def _run(
        self,
        source_path: Path,
        pending: list[Preset],
        with_lqip: bool,
        output_dir: Path,
        base_name: str,
    ) -> tuple[dict[str, ProcessingResult], Optional[LQIPResult]]:
        """Run pending transforms (and the LQIP) against a source that is fully on disk."""
        loop = asyncio.get_running_loop()

        def call(fn, *args):
            return loop.run_in_executor(self._executor, fn, *args)

        lqip_result = None
        if self.settings.parallel_presets:
            jobs = [call(self.transformer.transform, source_path, p, output_dir, base_name) for p in pending]
            if with_lqip:
                jobs.append(call(self.lqip_generator.generate, source_path, output_dir, base_name))
            done = await asyncio.gather(*jobs)
            results = list(done[:len(pending)])
            if with_lqip:
                lqip_result = done[-1]
        else:
            results = []
            for preset in pending:
                results.append(await call(self.transformer.transform, source_path, preset, output_dir, base_name))
            if with_lqip:
                lqip_result = await call(self.lqip_generator.generate, source_path, output_dir, base_name)
        return {r.preset: r for r in results}, lqip_result

    def _current_lqip(self, mtime_source: Optional[Path], output_dir: Path, base_name: str, force: bool) -> Optional[LQIPResult]:
        """Skipped LQIPResult if both LQIP files are current, else None."""
        lqip_path, base64_path = lqip_paths(output_dir, base_name)
        if not all_current(mtime_source, (lqip_path, base64_path), force):
            return None
        try:
            data_uri = read_data_uri(base64_path)
            size = lqip_path.stat().st_size
        except OSError as e:
            logger.debug("Existing LQIP for %s unreadable (%s), regenerating", base_name, e)
            return None
        return LQIPResult(
            success=True,
            lqip_path=lqip_path,
            base64_path=base64_path,
            data_uri=data_uri,
            size_bytes=size,
            skipped=True,
        )

    @staticmethod
    def _failed(preset: Preset, output_dir: Path, base_name: str, error: str) -> ProcessingResult:
        file_name = output_file_name(base_name, preset)
        return ProcessingResult(
            success=False,
            output_path=output_dir / file_name,
            output_file_name=file_name,
            preset=preset.name,
            format=preset.format,
            error=error,
        )

    @staticmethod
    def _failed_lqip(output_dir: Path, base_name: str, error: str) -> LQIPResult:
        lqip_path, base64_path = lqip_paths(output_dir, base_name)
        return LQIPResult(success=False, lqip_path=lqip_path, base64_path=base64_path, error=error)

    def _fail_pending(
        self,
        report: SourceReport,
        planned: dict[str, ProcessingResult],
        pending: list[Preset],
        with_lqip: bool,
        output_dir: Path,
        base_name: str,
        kind: ErrorKind,
        error: str,
    ) -> None:
        """Mark the artifacts that could not be attempted; up-to-date ones keep their skipped result."""
        report.error, report.error_kind = error, kind
        for preset in pending:
            planned[preset.name] = self._failed(preset, output_dir, base_name, error)
        if with_lqip:
            report.lqip = self._failed_lqip(output_dir, base_name, error)

    def _fail_all(
        self,
        report: SourceReport,
        presets: list[Preset],
        output_dir: Path,
        base_name: str,
        lqip: bool,
        kind: ErrorKind,
        error: str,
    ) -> SourceReport:
        report.error, report.error_kind = error, kind
        report.results = [self._failed(p, output_dir, base_name, error) for p in presets]
        if lqip:
            report.lqip = self._failed_lqip(output_dir, base_name, error)
        logger.error("%s", error)
        return report

    @staticmethod
    def _log_report(report: SourceReport) -> None:
        for r in report.results:
            if r.skipped:
                continue
            if r.success:
                logger.info("Generated %s [%s] (%sKB)", r.output_file_name, r.preset, r.size_bytes // 1024)
            else:
                logger.error("Failed %s [%s]: %s", report.source, r.preset, r.error)
        if report.lqip is not None and not report.lqip.skipped:
            if report.lqip.success:
                logger.info("Generated LQIP %s", report.lqip.lqip_path.name)
            else:
                logger.error("LQIP failed for %s: %s", report.source, report.lqip.error)
        logger.info(
            "Source %s: %s processed, %s skipped, %s failed",
            report.source, report.processed, report.skipped, report.failed,
        )
