from __future__ import annotations

import io
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from flatten_github.models import ExportResult, ExportSummary, FileExport, RepositoryOutline

SEPARATOR = "=" * 80


def header_for(path: str) -> str:
    """Build the delimiter block that opens one file section."""
    return f"\n{SEPARATOR}\nFILE: {path}\n{SEPARATOR}\n"


def ensure_trailing_newline(value: str) -> str:
    return value if value.endswith("\n") else f"{value}\n"


def build_header(outline: RepositoryOutline) -> str:
    """Build the artifact header.

    Args:
        outline (RepositoryOutline): the exported repository

    Returns:
        str: repository coordinates, branch, size ceiling, an optional truncation
            warning, and a blank line
    """
    out = io.StringIO()
    out.write(f"# Repository: {outline.coordinates.owner}/{outline.repo_name}\n")
    out.write(f"# Default branch: {outline.branch}\n")
    ceiling_mb = round(outline.max_blob_bytes / 1024 / 1024)
    out.write(f"# Files included: text-like files up to {ceiling_mb} MB each.\n")
    if outline.tree_truncated:
        out.write("# Warning: tree listing truncated by GitHub.\n")
    out.write("\n")
    return out.getvalue()


def build_footer(summary: ExportSummary) -> str:
    line = (
        f"# Summary: included={summary.included}, "
        f"skippedBinary={summary.skipped_binary}, "
        f"skippedLarge={summary.skipped_large}, "
        f"skippedExtension={summary.skipped_extension}, "
        f"total={summary.total}"
    )
    if summary.truncated_tree:
        line += ", treeTruncated=true"
    return f"\n\n{line}\n"


def iter_export_pieces(
    outline: RepositoryOutline,
    files: Sequence[FileExport],
    summary: ExportSummary,
) -> Iterator[str]:
    """Yield the artifact text piece by piece: header, framed files in order, footer."""
    yield build_header(outline)
    for file in files:
        yield header_for(file.path)
        yield ensure_trailing_newline(file.content)
    yield build_footer(summary)


def build_export_text(
    outline: RepositoryOutline,
    files: Sequence[FileExport],
    summary: ExportSummary,
) -> str:
    """Concatenate every piece of the artifact into one string."""
    out = io.StringIO()
    for piece in iter_export_pieces(outline, files, summary):
        out.write(piece)
    return out.getvalue()


def chunk_bytes(data: bytes, chunk_size: int) -> Iterator[bytes]:
    """Split `data` into consecutive chunks of at most `chunk_size` bytes.

    Args:
        data (bytes): the payload to split
        chunk_size (int): the maximum chunk length

    Yields:
        Iterator[bytes]: the chunks in order; nothing for an empty payload
    """
    for offset in range(0, len(data), chunk_size):
        yield data[offset : offset + chunk_size]


def describe_output(result: ExportResult) -> str:
    summary = result.summary
    return (
        f"Wrote {result.output_path.name} (included {summary.included} files, "
        f"skipped {summary.skipped_binary} likely-binary files, "
        f"{summary.skipped_large} oversized files, "
        f"{summary.skipped_extension} extension-filtered files)"
    )
