"""Decide which blobs are worth exporting as text."""

from __future__ import annotations

import base64
import fnmatch
from enum import StrEnum, auto
from pathlib import PurePosixPath

from flatten_github.config import (
    LOCKFILE_NAMES,
    LOCKFILE_PATTERNS,
    NON_PRINTABLE_RATIO,
    SAMPLE_BYTES,
    SKIP_EXTENSIONS,
    TEXT_EXTENSIONS,
)

_ALLOWED_CONTROL_BYTES = frozenset({0x09, 0x0A, 0x0D})


class Classification(StrEnum):
    """Verdict of the classifier for one blob."""

    TEXT = auto()
    SKIP = auto()


def extract_extension(path: str) -> str | None:
    """Return the lower-cased last extension of `path` (with its dot), if any.

    Args:
        path (str): a repository-relative POSIX path

    Returns:
        str | None: e.g. ".gz" for "archive.tar.gz", or None when the name has no dot
    """
    name = PurePosixPath(path).name.lower()
    dot = name.rfind(".")
    return name[dot:] if dot >= 0 else None


def is_lockfile(path: str) -> bool:
    """Check whether `path` names a dependency lock or manifest snapshot.

    Args:
        path (str): a repository-relative POSIX path

    Returns:
        bool: True for well-known lockfile names and `*.lock`, `*.lockfile`, `*-lock.*` names
    """
    name = PurePosixPath(path).name.lower()
    if name in LOCKFILE_NAMES:
        return True
    return any(fnmatch.fnmatchcase(name, pattern) for pattern in LOCKFILE_PATTERNS)


def has_skipped_extension(path: str) -> bool:
    """Check whether `path` is excluded before download (lockfile or binary extension).

    Args:
        path (str): a repository-relative POSIX path

    Returns:
        bool: True when the blob should never be fetched
    """
    if is_lockfile(path):
        return True
    ext = extract_extension(path)
    return bool(ext and ext in SKIP_EXTENSIONS)


def sample_is_text(data: bytes) -> bool:
    """Heuristic text check on the first bytes of a blob.

    Args:
        data (bytes): blob content (only the first 2048 bytes are inspected)

    Returns:
        bool: True when fewer than 10% of the sampled bytes are control characters
            other than tab, newline and carriage return
    """
    sample = data[:SAMPLE_BYTES]
    if not sample:
        return True
    non_printable = sum(1 for byte in sample if byte < 0x20 and byte not in _ALLOWED_CONTROL_BYTES)  # noqa: PLR2004
    return non_printable / len(sample) < NON_PRINTABLE_RATIO


def classify(path: str, data: bytes) -> Classification:
    """Classify a blob from its path and a sample of its bytes.

    Lockfiles and skip-listed extensions are rejected whatever the content, known
    text extensions are accepted without sampling, everything else goes through
    `sample_is_text`.

    Args:
        path (str): a repository-relative POSIX path
        data (bytes): the blob bytes, or at least their first 2048 bytes

    Returns:
        Classification: TEXT or SKIP
    """
    if has_skipped_extension(path):
        return Classification.SKIP
    ext = extract_extension(path)
    if ext and ext in TEXT_EXTENSIONS:
        return Classification.TEXT
    return Classification.TEXT if sample_is_text(data) else Classification.SKIP


def looks_texty(path: str, data: bytes) -> bool:
    """Boolean form of `classify`."""
    return classify(path, data) is Classification.TEXT


def decode_base64_to_bytes(content: str) -> bytes:
    """Decode base64 blob content, ignoring the line breaks GitHub inserts."""
    return base64.b64decode("".join(content.split()))
