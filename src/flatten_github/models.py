from __future__ import annotations

from enum import StrEnum, auto
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field


class ProgressState(StrEnum):
    """Outcome reported for one processed blob."""

    INCLUDED = auto()
    CACHED = auto()
    SKIPPED = auto()


class RepoCoordinates(BaseModel):
    """Owner and repository name parsed from a github.com URL."""

    model_config = ConfigDict(frozen=True)

    owner: str
    repo: str


class TreeEntry(BaseModel):
    """One entry of a recursive git tree listing.

    Attributes:
        path: Path of the entry relative to the repository root.
        type: "blob" for files, "tree" for directories (submodules report "commit").
        sha: Object id used to fetch the blob.
        size: Blob size in bytes; GitHub omits it for trees.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    path: str
    type: str
    sha: str
    size: int | None = None
    mode: str = ""
    url: str = ""

    @computed_field
    @property
    def is_blob(self) -> bool:
        """Whether the entry is a file."""
        return self.type == "blob"


class RepositoryInfo(BaseModel):
    """Subset of the repository metadata used by the exporter."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    default_branch: str


class TreeListing(BaseModel):
    """Recursive tree listing; `truncated` is set when GitHub cut the listing short."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    entries: list[TreeEntry] = Field(default_factory=list, alias="tree")
    truncated: bool = False


class BlobPayload(BaseModel):
    """Blob content as returned by the git blobs endpoint."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    content: str
    encoding: str
    size: int = 0


class RateLimitWindow(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    limit: int
    remaining: int
    reset: int
    used: int = 0


class RateLimit(BaseModel):
    """Core REST quota of the authenticated token."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    core: RateLimitWindow


class RepositoryOutline(BaseModel):
    """Everything known about a repository before any blob is downloaded.

    `eligible_blobs` are the blobs that survive the extension filter and then the
    size filter; the two skip counters therefore never count the same blob.
    """

    model_config = ConfigDict(frozen=True)

    coordinates: RepoCoordinates
    repo_name: str
    branch: str
    default_branch: str
    blobs: list[TreeEntry]
    eligible_blobs: list[TreeEntry]
    skipped_large: int = Field(..., ge=0)
    skipped_extension: int = Field(..., ge=0)
    tree_truncated: bool = False
    max_blob_bytes: int = Field(..., gt=0)


class FileExport(BaseModel):
    """Decoded text content of one included blob."""

    model_config = ConfigDict(frozen=True)

    path: str
    content: str


class IncludedOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["included"] = "included"
    path: str
    content: str


class CachedOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["cached"] = "cached"
    path: str
    content: str


class SkippedOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["skipped"] = "skipped"
    path: str


CollectOutcome = Annotated[
    IncludedOutcome | CachedOutcome | SkippedOutcome,
    Field(discriminator="kind"),
]


class CollectResult(BaseModel):
    """Files kept by the collector, in path order, plus the number of blobs it rejected."""

    model_config = ConfigDict(frozen=True)

    files: list[FileExport]
    skipped_binary: int = Field(..., ge=0)


class ExportSummary(BaseModel):
    """Counters written into the artifact footer."""

    model_config = ConfigDict(frozen=True)

    included: int = Field(..., ge=0)
    skipped_binary: int = Field(..., ge=0)
    skipped_large: int = Field(..., ge=0)
    skipped_extension: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
    truncated_tree: bool = False

    @computed_field
    @property
    def is_consistent(self) -> bool:
        """Whether every listed blob is accounted for by exactly one counter."""
        accounted = self.included + self.skipped_binary + self.skipped_large + self.skipped_extension
        return accounted == self.total


class ExportResult(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    output_path: Path
    summary: ExportSummary


class ProgressUpdate(BaseModel):
    """One event delivered to a progress sink."""

    model_config = ConfigDict(frozen=True)

    processed: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
    path: str
    state: ProgressState
    status_text: str | None = None


class StageState(BaseModel):
    """Progress of a single named stage; `processed` is kept within `[0, total]`."""

    model_config = ConfigDict(validate_assignment=True)

    processed: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
