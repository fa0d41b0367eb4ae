"""Normalize locally exported SonicWall syslog files (plain or gzip)."""

from __future__ import annotations

import gzip
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiofiles
from aiofiles.threadpool import wrap

from .engine import LogNormalizer
from .models import CanonicalEvent, Dialect


@asynccontextmanager
async def _open_text(path: Path, *, encoding: str, decode_errors: str):
    """Open a log file for async text reading (plain or gzip)."""
    if path.suffix.lower() == ".gz":
        f = gzip.open(path, mode="rt", encoding=encoding, errors=decode_errors)
        af = wrap(f)
        try:
            yield af
        finally:
            await af.close()
    else:
        async with aiofiles.open(path, encoding=encoding, errors=decode_errors) as f:
            yield f


async def iter_lines(
    log_path: str | Path,
    *,
    encoding: str = "utf-8",
    decode_errors: str = "replace",
) -> AsyncIterator[str]:
    """Yield non-blank lines without their line terminator."""
    path = Path(log_path)
    if not path.is_file():
        raise FileNotFoundError(f"Log file not found: {path}")
    async with _open_text(path, encoding=encoding, decode_errors=decode_errors) as f:
        async for line in f:
            line = line.rstrip("\r\n")
            if line.strip():
                yield line


async def normalize_log_file(
    log_path: str | Path,
    dialect: Dialect | str,
    *,
    normalizer: LogNormalizer | None = None,
    max_lines: int | None = None,
    encoding: str = "utf-8",
) -> list[CanonicalEvent]:
    """Read an export and normalize it as one batch, newest first."""
    if max_lines is not None and max_lines <= 0:
        raise ValueError("max_lines must be > 0")
    normalizer = normalizer or LogNormalizer(dialect)
    lines: list[str] = []
    async for line in iter_lines(log_path, encoding=encoding):
        lines.append(line)
        if max_lines is not None and len(lines) >= max_lines:
            break
    return normalizer.normalize_batch(lines)
