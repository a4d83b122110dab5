"""File persistence for harvest output.

Every write overwrites. Filenames do not depend on content, so repeated runs
replace the previous run's files instead of accumulating.
"""

from pathlib import Path
from typing import List
from urllib.parse import urlparse

from loguru import logger

from services.harvest.errors import OutputWriteError


def image_filename(url: str) -> str:
    """Filename for an image: the final segment of the URL path.

    Raises:
        OutputWriteError: if the path has no final segment (e.g. ends with '/')
    """
    name = urlparse(url).path.rsplit("/", 1)[-1]
    if not name or name in (".", ".."):
        raise OutputWriteError(f"Cannot derive a filename from {url}", path=None)
    return name


def write_names(path: Path, names: List[str], separator: str = "\r\n") -> Path:
    """Write names joined by `separator` as UTF-8, replacing any existing file."""
    # Bytes, so the separator is written as-is on every platform
    data = separator.join(names).encode("utf-8")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    except OSError as e:
        raise OutputWriteError(f"Could not write {path}: {e}", path=str(path)) from e

    logger.debug(f"Wrote {len(names)} names to {path}")
    return path


def write_image(output_dir: Path, url: str, body: bytes) -> Path:
    """Save image bytes under the URL's final path segment.

    Two URLs sharing a final segment write the same file; the last one wins.
    """
    path = output_dir / image_filename(url)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        path.write_bytes(body)
    except OSError as e:
        raise OutputWriteError(f"Could not write {path}: {e}", path=str(path)) from e

    logger.debug(f"Saved {url} -> {path} ({len(body)} bytes)")
    return path
