import asyncio

import pytest

from conftest import make_image
from image_optimizer.batch import (
    BatchOptimizer,
    RunStats,
    get_post_directories,
    get_post_images,
    is_cover_image,
    is_supported_image,
    validate_post_id,
)
from image_optimizer.processing.models import LQIPResult, ProcessingResult, SourceReport
from image_optimizer.processing.service import ImagePipeline


def _run_batch(settings, registry, fn):
    async def go():
        async with ImagePipeline(settings, registry=registry) as pipeline:
            optimizer = BatchOptimizer(pipeline)
            result = await fn(optimizer)
            return optimizer, result

    return asyncio.run(go())


@pytest.mark.parametrize(
    "name, expected",
    [("portada.jpg", True), ("PORTADA.PNG", True), ("portada.webp", True), ("portada.gif", False), ("cover.jpg", False)],
)
def test_is_cover_image(name, expected):
    assert is_cover_image(name) is expected


def test_is_supported_image():
    assert is_supported_image("photo.JPEG")
    assert is_supported_image("diagram.avif")
    assert not is_supported_image("notes.md")


@pytest.mark.parametrize("post_id", ["../secrets", "", "a/b", ".hidden", "x..y"])
def test_validate_post_id_rejects_unsafe_ids(post_id):
    with pytest.raises(ValueError):
        validate_post_id(post_id)


def test_validate_post_id_accepts_slugs():
    assert validate_post_id(" my-post_2024.v2 ") == "my-post_2024.v2"


def test_post_discovery(settings):
    make_image(settings.raw_dir / "p1" / "portada.jpg")
    make_image(settings.raw_dir / "p1" / "diagram.png", fmt="PNG")
    (settings.raw_dir / "p1" / "README.md").write_text("notes")
    (settings.raw_dir / "p2").mkdir()

    assert get_post_directories(settings.raw_dir) == ["p1", "p2"]
    images = get_post_images(settings.raw_dir, "p1")
    assert images.cover_images == ["portada.jpg"]
    assert images.other_images == ["diagram.png"]
    assert get_post_images(settings.raw_dir, "missing").cover_images == []


def test_missing_raw_dir_has_no_posts(tmp_path):
    assert get_post_directories(tmp_path / "nowhere") == []


def test_optimize_post_gives_cover_full_family_and_others_default(settings, webp_registry):
    make_image(settings.raw_dir / "p1" / "portada.jpg")
    make_image(settings.raw_dir / "p1" / "diagram.png", size=(900, 600), fmt="PNG")

    optimizer, reports = _run_batch(settings, webp_registry, lambda o: o.optimize_post("p1"))

    out_dir = settings.public_dir / "p1"
    assert sorted(p.name for p in out_dir.iterdir()) == [
        "diagram.webp",
        "portada-lqip.txt",
        "portada-lqip.webp",
        "portada-og.webp",
        "portada-thumb.webp",
        "portada.webp",
    ]
    assert [len(r.results) for r in reports] == [3, 1]
    assert reports[1].lqip is None
    assert optimizer.stats.processed == 4
    assert optimizer.stats.ok


def test_optimize_all_skips_nothing_on_second_run(settings, webp_registry):
    make_image(settings.raw_dir / "p1" / "portada.jpg")
    make_image(settings.raw_dir / "p2" / "portada.png", fmt="PNG")
    _run_batch(settings, webp_registry, lambda o: o.optimize_all())

    optimizer, reports = _run_batch(settings, webp_registry, lambda o: o.optimize_all())

    assert len(reports) == 2
    assert optimizer.stats.processed == 0
    assert optimizer.stats.skipped == 6


def test_optimize_file_mirrors_raw_layout(settings, webp_registry):
    src = make_image(settings.raw_dir / "p3" / "chart.jpg")

    _, report = _run_batch(settings, webp_registry, lambda o: o.optimize_file(str(src), preset="thumb"))

    assert report.results[0].output_path == settings.public_dir / "p3" / "chart-thumb.webp"
    assert report.results[0].output_path.is_file()
    assert report.lqip is None


def test_optimize_file_outside_raw_dir_goes_to_public_root(settings, webp_registry, tmp_path):
    src = make_image(tmp_path / "elsewhere" / "shot.png", fmt="PNG")

    _, report = _run_batch(settings, webp_registry, lambda o: o.optimize_file(str(src), base_name="hero"))

    assert report.results[0].output_path == settings.public_dir / "hero.webp"


def test_plan_post_lists_presets_without_writing(settings, webp_registry):
    make_image(settings.raw_dir / "p1" / "portada.jpg")
    make_image(settings.raw_dir / "p1" / "inline.jpg")

    async def plan(optimizer):
        return optimizer.plan_post("p1")

    _, planned = _run_batch(settings, webp_registry, plan)

    assert planned == [("portada.jpg", ("default", "og", "thumb")), ("inline.jpg", ("default",))]
    assert not settings.public_dir.exists()


def test_run_stats_aggregates_reports(tmp_path):
    ok = ProcessingResult(True, tmp_path / "a.webp", "a.webp", "default", "webp", size_bytes=10)
    skipped = ProcessingResult(True, tmp_path / "b.webp", "b.webp", "og", "webp", skipped=True)
    failed = ProcessingResult(False, tmp_path / "c.webp", "c.webp", "thumb", "webp", error="boom")
    bad_lqip = LQIPResult(False, tmp_path / "a-lqip.webp", tmp_path / "a-lqip.txt", error="nope")

    stats = RunStats()
    stats.record(SourceReport(source="a.jpg", results=[ok, skipped]))
    stats.record(SourceReport(source="b.jpg", results=[failed], lqip=bad_lqip))
    stats.finish()

    assert (stats.total, stats.processed, stats.skipped, stats.errors, stats.lqip_errors) == (3, 1, 1, 1, 1)
    assert stats.failed_sources == ["b.jpg"]
    assert not stats.ok
    assert stats.summary_line().startswith("3 artifacts: 1 processed, 1 skipped, 1 errors (1 LQIP errors)")
