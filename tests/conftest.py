from __future__ import annotations

import base64
from collections.abc import Callable
from dataclasses import dataclass, field
from urllib.parse import unquote

import httpx
import pytest

from flatten_github.exporter import partition_blobs
from flatten_github.github import GitHubClient
from flatten_github.models import RepoCoordinates, RepositoryOutline, TreeEntry


async def no_sleep(_delay: float) -> None:
    return None


@dataclass
class FakeGitHub:
    """In-memory GitHub REST API served through `httpx.MockTransport`."""

    owner: str = "acme"
    repo: str = "sample-repo"
    default_branch: str = "main"
    files: dict[str, bytes] = field(default_factory=dict)
    sizes: dict[str, int] = field(default_factory=dict)
    encodings: dict[str, str] = field(default_factory=dict)
    failing_paths: set[str] = field(default_factory=set)
    missing_branches: set[str] = field(default_factory=set)
    truncated: bool = False
    remaining: int = 5000
    blob_requests: list[str] = field(default_factory=list)
    tree_requests: list[str] = field(default_factory=list)

    def sha_for(self, path: str) -> str:
        return "sha-" + base64.urlsafe_b64encode(path.encode()).decode().rstrip("=")

    def path_for(self, sha: str) -> str:
        encoded = sha.removeprefix("sha-")
        return base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4)).decode()

    def tree_entries(self) -> list[dict[str, object]]:
        entries: list[dict[str, object]] = []
        dirs = sorted({p.rsplit("/", 1)[0] for p in self.files if "/" in p})
        entries.extend({"path": d, "type": "tree", "sha": f"tree-{d}", "mode": "040000"} for d in dirs)
        entries.extend(
            {
                "path": path,
                "type": "blob",
                "sha": self.sha_for(path),
                "size": self.sizes.get(path, len(content)),
                "mode": "100644",
            }
            for path, content in self.files.items()
        )
        return entries

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        base = f"/repos/{self.owner}/{self.repo}"
        if path == "/rate_limit":
            core = {"limit": 5000, "remaining": self.remaining, "reset": 1_700_000_000, "used": 0}
            return httpx.Response(200, json={"resources": {"core": core}, "rate": core})
        if path == base:
            return httpx.Response(200, json={"name": self.repo, "default_branch": self.default_branch})
        if path.startswith(f"{base}/git/trees/"):
            ref = unquote(path.removeprefix(f"{base}/git/trees/"))
            self.tree_requests.append(ref)
            if ref in self.missing_branches:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json={"sha": "tree-sha", "tree": self.tree_entries(), "truncated": self.truncated})
        if path.startswith(f"{base}/git/blobs/"):
            file_path = self.path_for(path.removeprefix(f"{base}/git/blobs/"))
            self.blob_requests.append(file_path)
            if file_path in self.failing_paths:
                return httpx.Response(404, json={"message": "Not Found"})
            content = self.files[file_path]
            encoding = self.encodings.get(file_path, "base64")
            # GitHub wraps base64 content every 60 characters.
            encoded = base64.b64encode(content).decode()
            wrapped = "\n".join(encoded[i : i + 60] for i in range(0, len(encoded), 60))
            return httpx.Response(200, json={"content": wrapped, "encoding": encoding, "size": len(content)})
        return httpx.Response(404, json={"message": f"Unknown route {path}"})

    def client(self) -> GitHubClient:
        return GitHubClient("token", transport=httpx.MockTransport(self.handler), retry_base=0, sleep=no_sleep)

    @property
    def url(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo}"


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


def build_outline(
    entries: list[TreeEntry],
    *,
    owner: str = "acme",
    repo: str = "sample-repo",
    branch: str = "main",
    max_blob_bytes: int = 5 * 1024 * 1024,
    truncated: bool = False,
) -> RepositoryOutline:
    eligible, skipped_large, skipped_extension = partition_blobs(entries, max_blob_bytes)
    return RepositoryOutline(
        coordinates=RepoCoordinates(owner=owner, repo=repo),
        repo_name=repo,
        branch=branch,
        default_branch=branch,
        blobs=entries,
        eligible_blobs=eligible,
        skipped_large=skipped_large,
        skipped_extension=skipped_extension,
        tree_truncated=truncated,
        max_blob_bytes=max_blob_bytes,
    )


@pytest.fixture
def make_outline() -> Callable[..., RepositoryOutline]:
    return build_outline
