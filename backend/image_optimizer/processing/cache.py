"""Modification-time check deciding whether an artifact must be regenerated."""
import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger("optimizer.cache")


def should_regenerate(source_path: Optional[Path], output_path: Path, force: bool = False) -> bool:
    """
    True if output_path is missing or older than source_path, or if force is set.
    A source_path of None (remote source, no local mtime) treats an existing output as current.
    """
    if force:
        return True
    output_path = Path(output_path)
    if not output_path.exists():
        return True
    if source_path is None:
        return False
    try:
        source_mtime = Path(source_path).stat().st_mtime
        output_mtime = output_path.stat().st_mtime
    except OSError as e:
        logger.debug("Could not stat %s or %s (%s), regenerating", source_path, output_path, e)
        return True
    return source_mtime > output_mtime


def all_current(source_path: Optional[Path], output_paths, force: bool = False) -> bool:
    return not any(should_regenerate(source_path, p, force) for p in output_paths)
