"""Command line entry point: optimize all posts, one post, or a single file/URL."""
import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Optional

from image_optimizer.batch import BatchOptimizer, RunStats, get_post_directories
from image_optimizer.config import PipelineSettings, get_settings
from image_optimizer.processing.presets import default_registry, validate_base_name
from image_optimizer.processing.service import ImagePipeline

logger = logging.getLogger("optimizer.cli")


def build_parser() -> argparse.ArgumentParser:
    registry = default_registry()
    parser = argparse.ArgumentParser(
        prog="image-optimizer",
        description="Generate optimized image variants and LQIP placeholders for blog posts.",
    )
    parser.add_argument("-p", "--postId", dest="post_id", help="Post ID to process")
    parser.add_argument("-f", "--force", action="store_true", help="Regenerate even if outputs are up to date")
    parser.add_argument("-i", "--file", help="Single image path or allow-listed URL to process")
    parser.add_argument(
        "--preset",
        choices=registry.transform_names(),
        help="Preset to apply with --file (default: full family for covers, 'default' otherwise)",
    )
    parser.add_argument("--name", help="Output base name for --file (default: source file name)")
    parser.add_argument("-d", "--debug", action="store_true", help="Verbose per-artifact logging")
    parser.add_argument("-s", "--stats", action="store_true", help="Print a detailed summary at the end")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be processed without writing")
    parser.add_argument("--strict", action="store_true", help="Exit non-zero if any artifact failed")
    return parser


def _print_stats(stats: RunStats) -> None:
    print("=" * 50)
    print("Processing Summary")
    print(f"  Total artifacts: {stats.total}")
    print(f"  Processed: {stats.processed}")
    print(f"  Skipped: {stats.skipped}")
    print(f"  Errors: {stats.errors}")
    print(f"  LQIP errors: {stats.lqip_errors}")
    print(f"  Duration: {stats.duration:.1f}s")
    for source in stats.failed_sources:
        print(f"  Failed source: {source}")
    print("=" * 50)


def _dry_run(optimizer: BatchOptimizer, args: argparse.Namespace) -> None:
    settings = optimizer.settings
    if args.file:
        print(f"Would process {args.file} with preset {args.preset or 'auto'}")
        return
    post_ids = [args.post_id] if args.post_id else get_post_directories(settings.raw_dir)
    for post_id in post_ids:
        for name, presets in optimizer.plan_post(post_id):
            print(f"{post_id}/{name}: {', '.join(presets)}")


async def run(args: argparse.Namespace, settings: PipelineSettings) -> int:
    if args.name is not None:
        args.name = validate_base_name(args.name)
    async with ImagePipeline(settings) as pipeline:
        optimizer = BatchOptimizer(pipeline, settings)
        if args.dry_run:
            _dry_run(optimizer, args)
            return 0

        if args.file:
            is_url = args.file.startswith(("http://", "https://"))
            if not is_url and not Path(args.file).is_file():
                logger.error("File not found: %s", args.file)
                return 1
            await optimizer.optimize_file(
                args.file,
                preset=args.preset,
                force=args.force,
                base_name=args.name,
                post_id=args.post_id,
            )
        elif args.post_id:
            await optimizer.optimize_post(args.post_id, force=args.force)
        else:
            await optimizer.optimize_all(force=args.force)

    stats = optimizer.stats
    stats.finish()
    logger.info(stats.summary_line())
    if args.stats:
        _print_stats(stats)
    if args.strict and not stats.ok:
        logger.error("Strict mode: %s artifact(s) failed", stats.errors + stats.lqip_errors)
        return 1
    return 0


def main(argv: Optional[Sequence[str]] = None, settings: Optional[PipelineSettings] = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    if args.debug:
        logging.getLogger("optimizer").setLevel(logging.DEBUG)
    try:
        return asyncio.run(run(args, settings or get_settings()))
    except ValueError as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main(sys.argv[1:]))
