from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from flatten_github.checkpoint import CheckpointStore
from flatten_github.config import OutputFormat
from flatten_github.exceptions import (
    BranchLoadError,
    GitHubApiError,
    InvalidBranchError,
    InvalidRepositoryUrlError,
)
from flatten_github.exporter import (
    collect_text_files,
    export_repository_to_single_file,
    load_repository_outline,
    output_path_for,
    parse_repo_url,
    partition_blobs,
    prepare_output_file,
)
from flatten_github.models import ProgressState, ProgressUpdate, TreeEntry

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(64)


def _blob(path: str, size: int | None = 10) -> TreeEntry:
    return TreeEntry(path=path, type="blob", sha=f"sha-{path}", size=size)


def _outline(fake_github, **kwargs):
    async def go():
        async with fake_github.client() as client:
            return await load_repository_outline(client, fake_github.url, **kwargs)

    return asyncio.run(go())


def _export(fake_github, out_dir: Path, fmt: OutputFormat = OutputFormat.TEXT, **kwargs):
    async def go():
        async with fake_github.client() as client:
            outline = await load_repository_outline(client, fake_github.url)
            return await export_repository_to_single_file(client, outline, fmt=fmt, out_dir=out_dir, **kwargs)

    return asyncio.run(go())


@pytest.mark.unit
@pytest.mark.parametrize(
    ("url", "owner", "repo"),
    [
        ("https://github.com/octocat/Hello-World", "octocat", "Hello-World"),
        ("https://github.com/octocat/Hello-World.git", "octocat", "Hello-World"),
        ("https://github.com/octocat/Hello-World/tree/main/src", "octocat", "Hello-World"),
        ("http://GitHub.com/acme/app/", "acme", "app"),
        ("  https://github.com/acme/app  ", "acme", "app"),
    ],
)
def test_parse_repo_url(url: str, owner: str, repo: str) -> None:
    coordinates = parse_repo_url(url)

    assert (coordinates.owner, coordinates.repo) == (owner, repo)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("url", "reason"),
    [
        ("github.com/acme/app", "https://github.com/owner/repo"),
        ("ftp://github.com/acme/app", "https://github.com/owner/repo"),
        ("https://gitlab.com/acme/app", "github.com"),
        ("https://github.com/acme", "https://github.com/owner/repo"),
        ("https://github.com/acme/.git", "owner and name"),
    ],
)
def test_parse_repo_url_rejects(url: str, reason: str) -> None:
    with pytest.raises(InvalidRepositoryUrlError) as excinfo:
        parse_repo_url(url)

    assert reason in str(excinfo.value)
    assert str(excinfo.value).startswith("Invalid GitHub URL: ")


@pytest.mark.unit
def test_partition_applies_extension_filter_before_size_filter() -> None:
    blobs = [
        _blob("README.md", 100),
        _blob("big.txt", 10_000),
        _blob("big.png", 10_000),
        _blob("yarn.lock", 5),
        _blob("unknown-size.py", None),
    ]

    eligible, skipped_large, skipped_extension = partition_blobs(blobs, max_blob_bytes=1_000)

    assert [b.path for b in eligible] == ["README.md", "unknown-size.py"]
    assert skipped_large == 1
    assert skipped_extension == 2
    assert len(eligible) + skipped_large + skipped_extension == len(blobs)


@pytest.mark.unit
def test_size_ceiling_is_inclusive() -> None:
    eligible, skipped_large, _ = partition_blobs([_blob("a.txt", 1_000), _blob("b.txt", 1_001)], 1_000)

    assert [b.path for b in eligible] == ["a.txt"]
    assert skipped_large == 1


@pytest.mark.unit
def test_outline_uses_default_branch(fake_github) -> None:
    fake_github.files = {"README.md": b"# hi\n", "logo.png": PNG_BYTES, "src/app.py": b"print(1)\n"}
    fake_github.sizes = {"src/app.py": 10 * 1024 * 1024}

    outline = _outline(fake_github)

    assert outline.branch == "main"
    assert outline.default_branch == "main"
    assert fake_github.tree_requests == ["main"]
    assert len(outline.blobs) == 3
    assert [b.path for b in outline.eligible_blobs] == ["README.md"]
    assert outline.skipped_large == 1
    assert outline.skipped_extension == 1


@pytest.mark.unit
def test_outline_uses_explicit_branch(fake_github) -> None:
    outline = _outline(fake_github, branch="  feature/new-ui ")

    assert outline.branch == "feature/new-ui"
    assert outline.default_branch == "main"
    assert fake_github.tree_requests == ["feature/new-ui"]


@pytest.mark.unit
def test_outline_rejects_blank_branch(fake_github) -> None:
    with pytest.raises(InvalidBranchError):
        _outline(fake_github, branch="   ")


@pytest.mark.unit
def test_outline_wraps_missing_explicit_branch(fake_github) -> None:
    fake_github.missing_branches = {"ghost"}

    with pytest.raises(BranchLoadError) as excinfo:
        _outline(fake_github, branch="ghost")

    assert str(excinfo.value).startswith('Failed to load branch "ghost" for acme/sample-repo: GitHub API error 404')


@pytest.mark.unit
def test_outline_propagates_default_branch_failure(fake_github) -> None:
    fake_github.missing_branches = {"main"}

    with pytest.raises(GitHubApiError) as excinfo:
        _outline(fake_github)

    assert excinfo.value.status_code == 404


@pytest.mark.unit
def test_outline_reports_truncated_tree(fake_github) -> None:
    fake_github.truncated = True

    assert _outline(fake_github).tree_truncated


@pytest.mark.unit
def test_collect_uses_cache_and_reports_each_blob(fake_github, tmp_path: Path) -> None:
    fake_github.files = {
        "b.py": b"print('b')\n",
        "a.md": b"cached on disk\n",
        "data.bin2": bytes(range(32)) * 4,
    }
    events: list[ProgressUpdate] = []

    async def go():
        async with fake_github.client() as client:
            outline = await load_repository_outline(client, fake_github.url)
            store = CheckpointStore.for_outline(outline, out_dir=tmp_path)
            store.write("a.md", "from checkpoint\n")
            result = await collect_text_files(client, outline, store, concurrency=2, on_progress=events.append)
            return store, result

    store, result = asyncio.run(go())

    assert [f.path for f in result.files] == ["a.md", "b.py"]
    assert result.files[0].content == "from checkpoint\n"
    assert result.skipped_binary == 1
    assert "a.md" not in fake_github.blob_requests
    assert sorted(fake_github.blob_requests) == ["b.py", "data.bin2"]
    assert store.read("b.py") == "print('b')\n"
    assert store.read("data.bin2") is None

    assert [e.processed for e in events] == [1, 2, 3]
    assert all(e.total == 3 for e in events)
    states = {e.path: e.state for e in events}
    assert states == {"a.md": ProgressState.CACHED, "b.py": ProgressState.INCLUDED, "data.bin2": ProgressState.SKIPPED}


@pytest.mark.unit
def test_collect_skips_non_base64_blobs(fake_github, tmp_path: Path) -> None:
    fake_github.files = {"notes.txt": b"hello"}
    fake_github.encodings = {"notes.txt": "utf-8"}

    async def go():
        async with fake_github.client() as client:
            outline = await load_repository_outline(client, fake_github.url)
            return await collect_text_files(client, outline, CheckpointStore.for_outline(outline, out_dir=tmp_path))

    result = asyncio.run(go())

    assert result.files == []
    assert result.skipped_binary == 1


@pytest.mark.unit
def test_collect_replaces_invalid_utf8(fake_github, tmp_path: Path) -> None:
    fake_github.files = {"latin1.txt": "café\n".encode("latin-1")}

    async def go():
        async with fake_github.client() as client:
            outline = await load_repository_outline(client, fake_github.url)
            return await collect_text_files(client, outline, CheckpointStore.for_outline(outline, out_dir=tmp_path))

    result = asyncio.run(go())

    assert result.files[0].content == "caf\ufffd\n"


@pytest.mark.unit
def test_output_path_replaces_branch_slashes(make_outline, tmp_path: Path) -> None:
    outline = make_outline([], repo="app", branch="feature/new-ui")

    assert output_path_for(outline, OutputFormat.PDF, tmp_path) == tmp_path / "app-feature-new-ui.pdf"
    assert output_path_for(outline, OutputFormat.TEXT, tmp_path) == tmp_path / "app-feature-new-ui.txt"


@pytest.mark.unit
def test_prepare_output_file_drops_previous_artifact(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "app-main.txt"
    target.parent.mkdir()
    target.write_text("stale")

    partial = prepare_output_file(target)

    assert not target.exists()
    assert partial == target.with_name("app-main.txt.part")
    assert target.parent.is_dir()


@pytest.mark.unit
def test_text_export_end_to_end(fake_github, tmp_path: Path) -> None:
    fake_github.files = {
        "src/b.py": b"print('b')\n",
        "a.txt": b"alpha",
        "logo.png": PNG_BYTES,
        "blob.bin2": bytes(range(16)) * 8,
    }

    result = _export(fake_github, tmp_path)

    assert result.output_path == tmp_path / "sample-repo-main.txt"
    text = result.output_path.read_text(encoding="utf-8")
    assert text.startswith("# Repository: acme/sample-repo\n# Default branch: main\n")
    assert text.count("\nFILE: ") == 2
    assert text.index("FILE: a.txt") < text.index("FILE: src/b.py")
    assert "alpha\n" in text
    assert text.endswith(
        "# Summary: included=2, skippedBinary=1, skippedLarge=0, skippedExtension=1, total=4\n",
    )
    assert result.summary.is_consistent
    assert not (tmp_path / ".work" / "acme--sample-repo--main").exists()
    assert not list(tmp_path.glob("*.part"))


@pytest.mark.unit
def test_empty_repository_exports_header_and_footer(fake_github, tmp_path: Path) -> None:
    text_result = _export(fake_github, tmp_path)
    pdf_result = _export(fake_github, tmp_path, OutputFormat.PDF)

    text = text_result.output_path.read_text(encoding="utf-8")
    assert "FILE: " not in text
    assert text.endswith("# Summary: included=0, skippedBinary=0, skippedLarge=0, skippedExtension=0, total=0\n")
    data = pdf_result.output_path.read_bytes()
    assert data.startswith(b"%PDF-1.4\n")
    assert b"/Type /Pages /Count 1 " in data


@pytest.mark.unit
def test_failed_run_keeps_checkpoint_and_resumes(fake_github, tmp_path: Path) -> None:
    fake_github.files = {"a.txt": b"alpha\n", "b.txt": b"beta\n", "c.txt": b"gamma\n"}
    fake_github.failing_paths = {"c.txt"}

    with pytest.raises(GitHubApiError):
        _export(fake_github, tmp_path, concurrency=1)

    work_dir = tmp_path / ".work" / "acme--sample-repo--main"
    assert (work_dir / "a.txt").read_text() == "alpha\n"
    assert (work_dir / "b.txt").read_text() == "beta\n"
    assert not (tmp_path / "sample-repo-main.txt").exists()

    fake_github.failing_paths = set()
    fake_github.blob_requests.clear()
    result = _export(fake_github, tmp_path, concurrency=1)

    assert fake_github.blob_requests == ["c.txt"]
    assert result.summary.included == 3
    assert not work_dir.exists()


@pytest.mark.unit
def test_pdf_export_reports_progress(fake_github, tmp_path: Path, mocker) -> None:
    fake_github.files = {f"file{i:02d}.txt": b"line\n" * 40 for i in range(5)}
    reporter = mocker.MagicMock()

    result = _export(fake_github, tmp_path, OutputFormat.PDF, pdf_progress=reporter)

    assert result.output_path == tmp_path / "sample-repo-main.pdf"
    assert result.output_path.read_bytes().rstrip().endswith(b"%%EOF")
    reporter.initialise.assert_called_once()
    reporter.complete.assert_called_once()
    stages = [call.args[0].stage for call in reporter.report.call_args_list]
    assert stages[0] == "render"
    assert stages[-1] == "write"
    last = reporter.report.call_args_list[-1].args[0]
    assert last.processed == last.total


@pytest.mark.unit
def test_truncated_checkpoint_file_does_not_block_resume(fake_github, tmp_path: Path) -> None:
    fake_github.files = {"a.txt": "café\n".encode(), "b.txt": b"beta\n"}
    work_dir = tmp_path / ".work" / "acme--sample-repo--main"
    work_dir.mkdir(parents=True)
    (work_dir / "a.txt").write_bytes("café\n".encode()[:4])

    result = _export(fake_github, tmp_path)

    assert fake_github.blob_requests == ["b.txt"]
    assert result.summary.included == 2
    assert "caf\ufffd" in result.output_path.read_text(encoding="utf-8")
    assert not work_dir.exists()


@pytest.mark.unit
def test_collected_callback_runs_before_pdf_stage(fake_github, tmp_path: Path, mocker) -> None:
    fake_github.files = {"a.txt": b"alpha\n", "b.txt": b"beta\n"}
    events: list[str] = []
    reporter = mocker.MagicMock()
    reporter.initialise.side_effect = lambda *_args, **_kwargs: events.append("pdf")

    _export(
        fake_github,
        tmp_path,
        OutputFormat.PDF,
        on_progress=lambda update: events.append(update.path),
        on_collected=lambda: events.append("collected"),
        pdf_progress=reporter,
    )

    assert sorted(events[:2]) == ["a.txt", "b.txt"]
    assert events[2:] == ["collected", "pdf"]
