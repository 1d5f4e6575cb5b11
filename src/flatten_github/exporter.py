"""Fetch, filter and assemble a GitHub repository into one artifact."""

from __future__ import annotations

import asyncio
import contextlib
import math
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from flatten_github.checkpoint import CheckpointStore
from flatten_github.classifier import decode_base64_to_bytes, has_skipped_extension, looks_texty
from flatten_github.concurrency import map_with_concurrency
from flatten_github.config import (
    MAX_CONCURRENCY,
    MAX_TEXT_BLOB_BYTES,
    OUT_DIR,
    WRITE_CHUNK_SIZE,
    WRITE_YIELD_EVERY,
    OutputFormat,
)
from flatten_github.exceptions import (
    BranchLoadError,
    GitHubApiError,
    InvalidBranchError,
    InvalidRepositoryUrlError,
    RateLimitExceededError,
)
from flatten_github.logging import logger
from flatten_github.models import (
    CachedOutcome,
    CollectOutcome,
    CollectResult,
    ExportResult,
    ExportSummary,
    FileExport,
    IncludedOutcome,
    ProgressState,
    ProgressUpdate,
    RepoCoordinates,
    RepositoryOutline,
    SkippedOutcome,
    TreeEntry,
)
from flatten_github.output_construction import build_export_text, chunk_bytes, iter_export_pieces
from flatten_github.pdf import estimate_pdf_page_count, render_pdf_from_text
from flatten_github.pdf_progress import PdfProgressReporter, PdfProgressStage, PdfStageReport

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from flatten_github.github import GitHubClient

    ProgressCallback = Callable[[ProgressUpdate], None]

PDF_SIZE_FACTOR = 1.5


def parse_repo_url(url: str) -> RepoCoordinates:
    """Extract owner and repository name from a github.com URL.

    Args:
        url (str): e.g. "https://github.com/octocat/Hello-World.git"

    Raises:
        InvalidRepositoryUrlError: if the URL is not an https github.com owner/repo URL

    Returns:
        RepoCoordinates: the owner and the repository name without ".git"
    """
    parts = urlsplit(url.strip())
    if parts.scheme not in {"http", "https"} or not parts.hostname:
        raise InvalidRepositoryUrlError(url=url, reason="Expected URL in the form https://github.com/owner/repo")
    if parts.hostname.lower() != "github.com":
        raise InvalidRepositoryUrlError(url=url, reason="Repository must be hosted on github.com")

    segments = [segment for segment in parts.path.strip("/").split("/") if segment]
    if len(segments) < 2:  # noqa: PLR2004
        raise InvalidRepositoryUrlError(url=url, reason="Expected URL in the form https://github.com/owner/repo")
    owner, raw_repo = segments[0], segments[1]
    repo = raw_repo[:-4] if raw_repo.lower().endswith(".git") else raw_repo
    if not owner or not repo:
        raise InvalidRepositoryUrlError(url=url, reason="Repository owner and name must both be present")
    return RepoCoordinates(owner=owner, repo=repo)


def partition_blobs(
    blobs: Sequence[TreeEntry],
    max_blob_bytes: int = MAX_TEXT_BLOB_BYTES,
) -> tuple[list[TreeEntry], int, int]:
    """Apply the extension filter, then the size filter.

    Args:
        blobs (Sequence[TreeEntry]): the blob entries of the tree
        max_blob_bytes (int): size ceiling; blobs without a size are kept

    Returns:
        tuple[list[TreeEntry], int, int]: eligible blobs, skipped-for-size count,
            skipped-by-extension count
    """
    by_extension = [blob for blob in blobs if not has_skipped_extension(blob.path)]
    eligible = [blob for blob in by_extension if blob.size is None or blob.size <= max_blob_bytes]
    return eligible, len(by_extension) - len(eligible), len(blobs) - len(by_extension)


async def load_repository_outline(
    client: GitHubClient,
    repo_url: str,
    *,
    branch: str | None = None,
    max_blob_bytes: int = MAX_TEXT_BLOB_BYTES,
) -> RepositoryOutline:
    """Resolve the branch, list its tree and plan which blobs to download.

    Args:
        client (GitHubClient): the GitHub client
        repo_url (str): a github.com repository URL
        branch (str | None): branch to export; the default branch when None
        max_blob_bytes (int): blobs above this size are not downloaded

    Raises:
        InvalidRepositoryUrlError: if `repo_url` is malformed
        InvalidBranchError: if `branch` is blank
        BranchLoadError: if the tree of an explicitly requested branch cannot be listed

    Returns:
        RepositoryOutline: the download plan
    """
    coordinates = parse_repo_url(repo_url)
    requested = None
    if branch is not None:
        requested = branch.strip()
        if not requested:
            raise InvalidBranchError(branch=branch)

    repository = await client.get_repository(coordinates.owner, coordinates.repo)
    target = requested or repository.default_branch
    try:
        tree = await client.get_tree(coordinates.owner, coordinates.repo, target)
    except RateLimitExceededError:
        raise
    except GitHubApiError as exc:
        if requested is None:
            raise
        raise BranchLoadError(
            owner=coordinates.owner,
            repo=coordinates.repo,
            branch=requested,
            reason=str(exc),
        ) from exc

    blobs = [entry for entry in tree.entries if entry.is_blob]
    eligible, skipped_large, skipped_extension = partition_blobs(blobs, max_blob_bytes)
    outline = RepositoryOutline(
        coordinates=coordinates,
        repo_name=repository.name,
        branch=target,
        default_branch=repository.default_branch,
        blobs=blobs,
        eligible_blobs=eligible,
        skipped_large=skipped_large,
        skipped_extension=skipped_extension,
        tree_truncated=tree.truncated,
        max_blob_bytes=max_blob_bytes,
    )
    logger.info(
        "repository_outline_loaded",
        repo=f"{coordinates.owner}/{repository.name}",
        branch=target,
        blobs=len(blobs),
        eligible=len(eligible),
        skipped_large=skipped_large,
        skipped_extension=skipped_extension,
        truncated=tree.truncated,
    )
    return outline


async def collect_text_files(
    client: GitHubClient,
    outline: RepositoryOutline,
    store: CheckpointStore,
    *,
    concurrency: int = MAX_CONCURRENCY,
    on_progress: ProgressCallback | None = None,
) -> CollectResult:
    """Download, classify and cache every eligible blob.

    Blobs are processed in path order under the concurrency limit; the cache is
    consulted before any download and every decoded text file is written to it,
    so a failed run can be resumed. Exactly one progress event is emitted per
    blob, with a strictly increasing `processed` counter.

    Args:
        client (GitHubClient): the GitHub client
        outline (RepositoryOutline): the download plan
        store (CheckpointStore): the checkpoint cache of this repository and branch
        concurrency (int): maximum number of blobs in flight
        on_progress (ProgressCallback | None): receives one event per blob

    Returns:
        CollectResult: text files in path order and the number of rejected blobs
    """
    ordered = sorted(outline.eligible_blobs, key=lambda blob: blob.path)
    total = len(ordered)
    processed = 0
    owner, repo = outline.coordinates.owner, outline.coordinates.repo

    await asyncio.to_thread(store.ensure)

    def record(outcome: CollectOutcome, state: ProgressState) -> CollectOutcome:
        nonlocal processed
        processed += 1
        if on_progress is not None:
            on_progress(ProgressUpdate(processed=processed, total=total, path=outcome.path, state=state))
        return outcome

    async def fetch(item: TreeEntry, _index: int) -> CollectOutcome:
        cached = await asyncio.to_thread(store.read, item.path)
        if cached is not None:
            logger.debug("checkpoint_hit", path=item.path)
            return record(CachedOutcome(path=item.path, content=cached), ProgressState.CACHED)

        blob = await client.get_blob(owner, repo, item.sha)
        if blob.encoding != "base64":
            logger.info("blob_skipped", path=item.path, reason="encoding", encoding=blob.encoding)
            return record(SkippedOutcome(path=item.path), ProgressState.SKIPPED)

        data = decode_base64_to_bytes(blob.content)
        if not looks_texty(item.path, data):
            logger.info("blob_skipped", path=item.path, reason="binary")
            return record(SkippedOutcome(path=item.path), ProgressState.SKIPPED)

        text = data.decode("utf-8", errors="replace")
        await asyncio.to_thread(store.write, item.path, text)
        return record(IncludedOutcome(path=item.path, content=text), ProgressState.INCLUDED)

    outcomes = await map_with_concurrency(ordered, concurrency, fetch)

    files: list[FileExport] = []
    skipped_binary = 0
    for outcome in outcomes:
        if isinstance(outcome, SkippedOutcome):
            skipped_binary += 1
        else:
            files.append(FileExport(path=outcome.path, content=outcome.content))
    return CollectResult(files=files, skipped_binary=skipped_binary)


def build_summary(outline: RepositoryOutline, collected: CollectResult) -> ExportSummary:
    return ExportSummary(
        included=len(collected.files),
        skipped_binary=collected.skipped_binary,
        skipped_large=outline.skipped_large,
        skipped_extension=outline.skipped_extension,
        total=len(outline.blobs),
        truncated_tree=outline.tree_truncated,
    )


def output_path_for(outline: RepositoryOutline, fmt: OutputFormat, out_dir: str | Path = OUT_DIR) -> Path:
    """Artifact location: `<out_dir>/<repo>-<branch>.<ext>`, branch slashes turned into dashes."""
    branch = outline.branch.replace("/", "-")
    return Path(out_dir) / f"{outline.repo_name}-{branch}.{fmt.extension}"


def prepare_output_file(path: Path) -> Path:
    """Create the output directory, drop any previous artifact and return the partial-file path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.is_file():
        path.unlink()
    partial = path.with_name(path.name + ".part")
    partial.unlink(missing_ok=True)
    return partial


def _write_text_pieces(target: Path, pieces: Iterable[str]) -> None:
    with target.open("w", encoding="utf-8", newline="") as fh:
        for piece in pieces:
            fh.write(piece)


async def export_to_text(
    target: Path,
    outline: RepositoryOutline,
    files: Sequence[FileExport],
    summary: ExportSummary,
) -> None:
    await asyncio.to_thread(_write_text_pieces, target, iter_export_pieces(outline, files, summary))


async def export_to_pdf(
    target: Path,
    outline: RepositoryOutline,
    files: Sequence[FileExport],
    summary: ExportSummary,
    pdf_progress: PdfProgressReporter | None = None,
) -> int:
    """Render the assembled text as a PDF and write it in chunks.

    Rendering and writing are reported as two stages: the page and chunk totals
    start as estimates and are replaced by exact counts once known.

    Returns:
        int: the number of pages written
    """
    combined = build_export_text(outline, files, summary)
    estimated_pages = max(estimate_pdf_page_count(combined), 1)
    estimated_chunks = max(math.ceil(len(combined) * PDF_SIZE_FACTOR / WRITE_CHUNK_SIZE), 1)

    def report(stage: PdfProgressStage, processed: int, total: int) -> None:
        if pdf_progress is not None:
            pdf_progress.report(PdfStageReport(stage=stage, processed=processed, total=total))

    if pdf_progress is not None:
        pdf_progress.initialise(render_total=estimated_pages, write_total=estimated_chunks)

    rendered = await render_pdf_from_text(
        combined,
        on_progress=(lambda done, total: report(PdfProgressStage.RENDER, done, total)) if pdf_progress else None,
    )
    report(PdfProgressStage.RENDER, rendered.page_count, rendered.page_count)

    chunks = list(chunk_bytes(rendered.data, WRITE_CHUNK_SIZE))
    actual_chunks = max(len(chunks), 1)
    report(PdfProgressStage.WRITE, 0, actual_chunks)

    with target.open("wb") as fh:
        for written, chunk in enumerate(chunks, start=1):
            fh.write(chunk)
            report(PdfProgressStage.WRITE, written, actual_chunks)
            if written % WRITE_YIELD_EVERY == 0:
                await asyncio.sleep(0)

    if pdf_progress is not None:
        pdf_progress.complete()
    return rendered.page_count


async def export_repository_to_single_file(
    client: GitHubClient,
    outline: RepositoryOutline,
    *,
    fmt: OutputFormat = OutputFormat.TEXT,
    out_dir: str | Path = OUT_DIR,
    concurrency: int = MAX_CONCURRENCY,
    on_progress: ProgressCallback | None = None,
    on_collected: Callable[[], None] | None = None,
    pdf_progress: PdfProgressReporter | None = None,
) -> ExportResult:
    """Run the whole export: collect, assemble, write, then purge the checkpoint.

    The artifact is written next to its final location and moved into place only
    once complete. On any failure no artifact is left behind and the checkpoint
    directory is kept so that the next run can reuse what was already fetched.

    Args:
        client (GitHubClient): the GitHub client
        outline (RepositoryOutline): the download plan
        fmt (OutputFormat): text or pdf
        out_dir (str | Path): directory receiving the artifact and the checkpoint
        concurrency (int): maximum number of blobs in flight
        on_progress (ProgressCallback | None): download progress callback
        on_collected (Callable[[], None] | None): called once every blob is collected,
            before the artifact is written
        pdf_progress (PdfProgressReporter | None): render/write progress for pdf output

    Returns:
        ExportResult: the artifact path and the export summary
    """
    fmt = OutputFormat(fmt)
    store = CheckpointStore.for_outline(outline, out_dir=out_dir)
    collected = await collect_text_files(
        client,
        outline,
        store,
        concurrency=concurrency,
        on_progress=on_progress,
    )
    if on_collected is not None:
        on_collected()
    summary = build_summary(outline, collected)

    output_path = output_path_for(outline, fmt, out_dir)
    partial = prepare_output_file(output_path)
    try:
        if fmt is OutputFormat.PDF:
            await export_to_pdf(partial, outline, collected.files, summary, pdf_progress)
        else:
            await export_to_text(partial, outline, collected.files, summary)
        partial.replace(output_path)
    except BaseException:
        with contextlib.suppress(OSError):
            partial.unlink(missing_ok=True)
        raise

    logger.info(
        "export_written",
        path=str(output_path),
        format=fmt.value,
        included=summary.included,
        skipped_binary=summary.skipped_binary,
        skipped_large=summary.skipped_large,
        skipped_extension=summary.skipped_extension,
        total=summary.total,
    )
    await asyncio.to_thread(store.purge)
    return ExportResult(output_path=output_path, summary=summary)
