"""Utility helpers for pdfrebuildx."""
from __future__ import annotations

import base64
import binascii
import logging
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Tuple, Union
from urllib.parse import unquote_to_bytes

PathLike = Union[str, os.PathLike[str]]


def configure_logging(verbose: bool = False) -> None:
    """Configure package-wide logging."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def to_path(path: PathLike) -> Path:
    """Normalize an input path to :class:`Path`."""
    return Path(path).expanduser().resolve()


@contextmanager
def time_block(logger: logging.Logger, message: str) -> Iterator[None]:
    """Context manager that logs the execution time of a code block."""
    start = datetime.now(tz=timezone.utc)
    logger.debug("Starting %s", message)
    try:
        yield
    finally:
        end = datetime.now(tz=timezone.utc)
        elapsed = (end - start).total_seconds()
        logger.info("%s completed in %.2fs", message, elapsed)


def decode_data_uri(uri: str) -> Tuple[str, bytes]:
    """Split a ``data:`` URI into its media type and decoded payload.

    Raises:
        ValueError: If ``uri`` is not a well-formed data URI.
    """
    if not uri.startswith("data:"):
        raise ValueError("Not a data URI")
    header, separator, payload = uri[len("data:"):].partition(",")
    if not separator:
        raise ValueError("Data URI has no payload separator")

    parameters = [part.strip() for part in header.split(";")]
    media_type = parameters[0].lower() or "text/plain"
    if parameters[-1].lower() == "base64":
        try:
            return media_type, base64.b64decode("".join(payload.split()), validate=False)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"Invalid base64 payload: {exc}") from exc
    return media_type, unquote_to_bytes(payload)


def is_url(value: str) -> bool:
    """Return ``True`` for absolute ``http(s)``/``file`` URLs."""
    return value.split(":", 1)[0].lower() in {"http", "https", "file"} and "://" in value


def format_file_size(size_bytes: float) -> str:
    """
    Format file size in human-readable format.

    Args:
        size_bytes: File size in bytes

    Returns:
        Formatted string (e.g., "1.5 MB", "500 KB")
    """
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size_bytes < 1024.0:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.1f} PB"
