"""On-disk cache of decoded blobs so interrupted exports resume without re-downloading."""

from __future__ import annotations

import re
import shutil
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from flatten_github.config import OUT_DIR, WORK_SUBDIR
from flatten_github.exceptions import PathViolationError
from flatten_github.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from flatten_github.models import RepositoryOutline

_UNSAFE_SEGMENT = re.compile(r"[^a-z0-9._-]+", re.IGNORECASE)


def sanitize_segment(value: str) -> str:
    """Make one identity component safe to use as a directory name.

    Args:
        value (str): owner, repository or branch name

    Returns:
        str: `value` with runs of characters outside `[A-Za-z0-9._-]` replaced by "-"
            and leading/trailing dashes removed
    """
    return _UNSAFE_SEGMENT.sub("-", value).strip("-")


def work_directory_for(out_dir: Path, owner: str, repo: str, branch: str) -> Path:
    """Compute the work directory of one (owner, repo, branch) identity."""
    name = f"{sanitize_segment(owner)}--{sanitize_segment(repo)}--{sanitize_segment(branch)}"
    return Path(out_dir) / WORK_SUBDIR / name


class CheckpointStore:
    """Cache of decoded file contents for one (owner, repo, branch) identity.

    Every cached file mirrors its repository path below the work directory. Paths
    are resolved against that directory and must stay inside it.
    """

    def __init__(self, owner: str, repo: str, branch: str, *, out_dir: str | Path = OUT_DIR) -> None:
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.root = work_directory_for(Path(out_dir), owner, repo, branch)

    @classmethod
    def for_outline(cls, outline: RepositoryOutline, *, out_dir: str | Path = OUT_DIR) -> CheckpointStore:
        """Build the store matching a repository outline."""
        return cls(outline.coordinates.owner, outline.repo_name, outline.branch, out_dir=out_dir)

    def resolve(self, path: str) -> Path:
        """Resolve a repository path to its cache location.

        Args:
            path (str): repository-relative path; a leading "/" is ignored

        Raises:
            PathViolationError: if the resolved location is outside the work directory

        Returns:
            Path: absolute location of the cache file
        """
        base = self.root.resolve()
        full = (base / path.lstrip("/")).resolve()
        if full == base or not full.is_relative_to(base):
            raise PathViolationError(path=path, root=base)
        return full

    def ensure(self) -> Path:
        """Create the work directory if needed and return it."""
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    def exists(self, path: str) -> bool:
        return self.resolve(path).is_file()

    def read(self, path: str) -> str | None:
        """Return cached content for `path`, or None when nothing was cached.

        Undecodable bytes are replaced rather than rejected.
        """
        target = self.resolve(path)
        if not target.is_file():
            return None
        return target.read_bytes().decode("utf-8", errors="replace")

    def write(self, path: str, content: str) -> None:
        """Cache `content` for `path`, replacing any previous value.

        The content goes to a hidden sibling file first and is moved over the
        target once complete, so an interrupted write never leaves a cut file.
        """
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "wb",
            dir=target.parent,
            prefix=f".{target.name}.",
            suffix=".tmp",
            delete=False,
        ) as fh:
            staging = Path(fh.name)
            try:
                fh.write(content.encode("utf-8"))
            except BaseException:
                fh.close()
                staging.unlink(missing_ok=True)
                raise
        try:
            staging.replace(target)
        except BaseException:
            staging.unlink(missing_ok=True)
            raise

    def count_existing(self, paths: Iterable[str]) -> int:
        return sum(1 for path in paths if self.exists(path))

    def purge(self) -> None:
        """Remove the whole work directory.

        Cleanup is best effort: a failure is logged and swallowed so that it can
        never turn a successful export into a failed one.
        """
        try:
            shutil.rmtree(self.root)
        except FileNotFoundError:
            return
        except OSError as exc:
            logger.warning("checkpoint_purge_failed", work_dir=str(self.root), error=str(exc))
