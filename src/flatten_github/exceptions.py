from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class FlattenGithubError(Exception):
    """Base exception for errors in the flatten_github package."""

    def __str__(self) -> str:
        return getattr(self, "message", "") or self.__class__.__name__


@dataclass(frozen=True)
class InvalidRepositoryUrlError(FlattenGithubError):
    """Raised when a repository URL is not a github.com owner/repo URL."""

    url: str
    reason: str

    @property
    def message(self) -> str:
        return f"Invalid GitHub URL: {self.reason}"


@dataclass(frozen=True)
class InvalidBranchError(FlattenGithubError):
    """Raised when an explicitly requested branch name is blank."""

    branch: str
    message: str = "Branch name cannot be empty"


@dataclass(frozen=True)
class UnsupportedFormatError(FlattenGithubError):
    """Raised when the requested output format is neither text nor pdf."""

    value: str

    @property
    def message(self) -> str:
        return f"Unsupported format: {self.value!r} (expected 'text' or 'pdf')"


@dataclass(frozen=True)
class MissingTokenError(FlattenGithubError):
    """Raised when no GitHub token can be found in the environment."""

    message: str = "Missing GITHUB_TOKEN. Add it to your .env file and rerun the script."


@dataclass(frozen=True)
class GitHubApiError(FlattenGithubError):
    """Raised when the GitHub API answers with a non-success status."""

    status_code: int
    body: str
    url: str = ""

    @property
    def message(self) -> str:
        return f"GitHub API error {self.status_code}: {self.body}"


@dataclass(frozen=True)
class RateLimitExceededError(GitHubApiError):
    """Raised when the GitHub core quota is exhausted."""

    reset_at: int = 0

    @property
    def message(self) -> str:
        return f"GitHub API rate limit exceeded (resets at epoch {self.reset_at}): {self.body}"


@dataclass(frozen=True)
class BranchLoadError(FlattenGithubError):
    """Raised when the tree of an explicitly requested branch cannot be listed."""

    owner: str
    repo: str
    branch: str
    reason: str

    @property
    def message(self) -> str:
        return f'Failed to load branch "{self.branch}" for {self.owner}/{self.repo}: {self.reason}'


@dataclass(frozen=True)
class PathViolationError(FlattenGithubError):
    """Raised when a cache path would resolve outside of its work directory."""

    path: str
    root: Path

    @property
    def message(self) -> str:
        return f"Resolved path escapes work directory: {self.path}"


@dataclass(frozen=True)
class EncoderInvariantError(FlattenGithubError):
    """Raised when a PDF object is still unset at serialization time."""

    index: int

    @property
    def message(self) -> str:
        return f"Uninitialised PDF object at index {self.index}"
