"""
flatten_github — Export a GitHub repository into a single file for an LLM.

Overview
--------
The tool lists the full tree of a repository through the GitHub REST API,
drops binary, oversized and lock files, downloads the remaining blobs with
bounded concurrency and writes them into one artifact:

1) **Text (`--format text`, default)** — a header, one framed section per
   file (`FILE: <path>` between two 80-character rules) and a summary footer.

2) **PDF (`--format pdf` or `--pdf`)** — the same text rendered into a
   minimal paginated PDF.

Downloaded files are checkpointed under `<out-dir>/.work/` so an interrupted
run resumes without downloading them again; the checkpoint is removed once the
artifact is written. `GITHUB_TOKEN` is read from the environment or from the
nearest `.env` file.

Usage
-----
Run `flatten-github --help` for full options. Common examples:
    - Default branch as text:
        flatten-github https://github.com/octocat/Hello-World
    - A feature branch as PDF, without confirmation prompt:
        flatten-github --pdf -b feature/new-ui --yes https://github.com/acme/app
    - Log to a file:
        flatten-github --log-file export.log https://github.com/acme/app
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from flatten_github import __version__
from flatten_github.checkpoint import CheckpointStore
from flatten_github.config import MAX_CONCURRENCY, MAX_TEXT_BLOB_BYTES, OUT_DIR, OutputFormat
from flatten_github.exceptions import FlattenGithubError, UnsupportedFormatError
from flatten_github.exporter import export_repository_to_single_file, load_repository_outline
from flatten_github.github import GitHubClient
from flatten_github.logging import logger, setup_logging
from flatten_github.output_construction import describe_output
from flatten_github.pdf_progress import PdfProgressReporter
from flatten_github.planning import (
    PREFETCH_REQUESTS,
    calculate_planned_request_total,
    estimate_duration_seconds,
    format_seconds,
)
from flatten_github.progress import ProgressPrinter
from flatten_github.settings import Settings, resolve_github_token

if TYPE_CHECKING:
    from collections.abc import Sequence

    from flatten_github.models import RateLimit, RepositoryOutline


def parse_format(value: str) -> OutputFormat:
    """Parse an output format name.

    Args:
        value (str): "text" or "pdf", case-insensitive

    Raises:
        UnsupportedFormatError: for any other value

    Returns:
        OutputFormat: the parsed format
    """
    try:
        return OutputFormat(value.strip().lower())
    except ValueError:
        raise UnsupportedFormatError(value=value) from None


def _format_arg(value: str) -> OutputFormat:
    try:
        return parse_format(value)
    except UnsupportedFormatError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="flatten-github",
        description="Export a GitHub repository into a single text or PDF file.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("repo_url", help="Repository URL, e.g. https://github.com/owner/repo.")
    fmt = p.add_mutually_exclusive_group()
    fmt.add_argument(
        "--format",
        type=_format_arg,
        default=OutputFormat.TEXT,
        help="Output format: text (default) or pdf.",
    )
    fmt.add_argument(
        "--pdf",
        dest="format",
        action="store_const",
        const=OutputFormat.PDF,
        help="Shorthand for --format pdf.",
    )
    p.add_argument("-b", "--branch", type=str, default=None, help="Branch to export (default branch otherwise).")
    p.add_argument("--out-dir", type=Path, default=Path(OUT_DIR), help="Output directory.")
    p.add_argument(
        "--concurrency",
        type=int,
        default=MAX_CONCURRENCY,
        help="Number of blob downloads in flight.",
    )
    p.add_argument(
        "--max-bytes",
        type=int,
        default=MAX_TEXT_BLOB_BYTES,
        help="Blobs larger than this are skipped.",
    )
    p.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation.")
    p.add_argument("--log-file", type=str, default="", help="Log file path.")
    return p


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    args = build_parser().parse_args(argv)
    return Settings(**vars(args))


def describe_outline(outline: RepositoryOutline) -> list[str]:
    lines = [
        f"Repository: {outline.coordinates.owner}/{outline.repo_name}",
        f"Branch: {outline.branch} (default: {outline.default_branch})",
        (
            f"Discovered {len(outline.blobs)} blobs ({len(outline.eligible_blobs)} candidates, "
            f"{outline.skipped_large} skipped for size, {outline.skipped_extension} skipped by extension)."
        ),
    ]
    if outline.tree_truncated:
        lines.append("Warning: GitHub returned a truncated tree; some files might be missing.")
    return lines


def describe_plan(to_download: int, cached: int, concurrency: int, rate_limit: RateLimit) -> list[str]:
    """Describe the planned requests, the expected duration and the quota impact."""
    planned = calculate_planned_request_total(to_download)
    duration = estimate_duration_seconds(to_download, concurrency)
    core = rate_limit.core
    reset_iso = datetime.fromtimestamp(core.reset, tz=UTC).isoformat()
    lines = [
        (
            f"Planned API requests: total={planned} (prefetch={PREFETCH_REQUESTS}, "
            f"blob downloads={to_download}, cached={cached})."
        ),
        f"Estimated completion time: {format_seconds(duration)} with concurrency {concurrency}.",
        (
            f"GitHub core quota: current {core.remaining}/{core.limit}; "
            f"after {core.remaining - planned}/{core.limit} (resets {reset_iso})"
        ),
    ]
    if to_download > core.remaining:
        lines.append(
            f"Warning: run requires {to_download} additional requests, "
            f"but only {core.remaining} remain in the quota.",
        )
    return lines


def confirm(question: str, *, assume_yes: bool = False) -> bool:
    if assume_yes:
        return True
    if not sys.stdin.isatty():
        logger.warning("confirmation_skipped", reason="non-interactive terminal")
        return True
    answer = input(f"{question} ").strip().lower()
    return answer in {"y", "yes"}


async def run(settings: Settings) -> int:
    """Export one repository according to `settings`.

    Returns:
        int: the process exit code
    """
    token = resolve_github_token()
    async with GitHubClient(token) as client:
        print("Preparing repository outline...")
        outline = await load_repository_outline(
            client,
            settings.repo_url,
            branch=settings.branch,
            max_blob_bytes=settings.max_bytes,
        )
        rate_limit = await client.get_rate_limit()

        store = CheckpointStore.for_outline(outline, out_dir=settings.out_dir)
        cached = store.count_existing(blob.path for blob in outline.eligible_blobs)
        to_download = len(outline.eligible_blobs) - cached
        for line in [*describe_outline(outline), *describe_plan(to_download, cached, settings.concurrency, rate_limit)]:
            print(line)

        if not confirm("Proceed with download? [y/N]", assume_yes=settings.yes):
            print("Aborted by user.")
            return 0

        progress = ProgressPrinter(label="Downloading")
        progress.start(len(outline.eligible_blobs))
        pdf_progress = PdfProgressReporter(ProgressPrinter()) if settings.format is OutputFormat.PDF else None
        try:
            result = await export_repository_to_single_file(
                client,
                outline,
                fmt=settings.format,
                out_dir=settings.out_dir,
                concurrency=settings.concurrency,
                on_progress=progress.update,
                on_collected=progress.finish,
                pdf_progress=pdf_progress,
            )
        finally:
            progress.finish()

    print(describe_output(result))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    try:
        settings = parse_args(argv)
    except (FlattenGithubError, ValidationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    if settings.log_file:
        setup_logging(settings.log_file)

    try:
        return asyncio.run(run(settings))
    except (FlattenGithubError, httpx.HTTPError, ValidationError, OSError) as exc:
        logger.error("export_failed", error=str(exc), error_type=type(exc).__name__)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
