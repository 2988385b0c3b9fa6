"""Helpers for serving staged media files with HTTP byte ranges."""

from __future__ import annotations

import re
from collections.abc import Iterator
from pathlib import Path

CHUNK_SIZE = 256 * 1024
PARTIAL_SUFFIX = ".part"

CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".ogg": "video/ogg",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"

_RANGE_RE = re.compile(r"^bytes=(\d+)-(\d*)$")


class RangeNotSatisfiable(ValueError):
    """Range header is malformed or falls outside the file."""


def content_type_for(name: str) -> str:
    return CONTENT_TYPES.get(Path(name).suffix.lower(), DEFAULT_CONTENT_TYPE)


def resolve_media_path(media_dir: Path, name: str) -> Path | None:
    """
    Map a request name to a file inside media_dir.

    Returns None for anything missing, unfinished (".part"), or resolving
    outside the directory.
    """
    if not name or name.endswith(PARTIAL_SUFFIX):
        return None
    root = Path(media_dir).resolve()
    candidate = (root / name).resolve()
    if candidate.parent != root or not candidate.is_file():
        return None
    return candidate


def parse_range(header: str, file_size: int) -> tuple[int, int]:
    """
    Parse a single "bytes=start-end" range into inclusive (start, end).

    A missing end means the last byte; an end past the file is clamped.
    Suffix ranges, multiple ranges, inverted ranges and starts past the end
    raise RangeNotSatisfiable.
    """
    match = _RANGE_RE.match(header.strip().replace(" ", ""))
    if not match:
        raise RangeNotSatisfiable(f"Unsupported range: {header!r}")
    start = int(match.group(1))
    end = int(match.group(2)) if match.group(2) else file_size - 1
    if start >= file_size or end < start:
        raise RangeNotSatisfiable(f"Range {header!r} not satisfiable for size {file_size}")
    return start, min(end, file_size - 1)


def iter_file_range(path: Path, start: int, end: int, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Yield bytes start..end (inclusive) from path."""
    remaining = end - start + 1
    with open(path, "rb") as f:
        f.seek(start)
        while remaining > 0:
            chunk = f.read(min(chunk_size, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk
