from __future__ import annotations

import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from flatten_github.config import MAX_CONCURRENCY, MAX_TEXT_BLOB_BYTES, OUT_DIR, OutputFormat
from flatten_github.exceptions import InvalidBranchError, MissingTokenError

ENV_FILE = find_dotenv(usecwd=True)


class Settings(BaseModel):
    """Configuration settings for one export run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    repo_url: str = Field(..., description="https://github.com/<owner>/<repo> URL.")
    branch: str | None = Field(default=None, description="Branch to export (default branch when unset).")
    format: OutputFormat = Field(default=OutputFormat.TEXT, description="Artifact encoding.")
    out_dir: Path = Field(default=Path(OUT_DIR), description="Directory receiving the artifact.")
    concurrency: int = Field(default=MAX_CONCURRENCY, ge=1, description="Blob downloads in flight.")
    max_bytes: int = Field(default=MAX_TEXT_BLOB_BYTES, gt=0, description="Blobs above are skipped.")
    yes: bool = Field(default=False, description="Do not ask for confirmation.")
    log_file: str = Field(default="", description="Log file path.")

    @field_validator("branch")
    @classmethod
    def _strip_branch(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        if not stripped:
            raise InvalidBranchError(branch=value)
        return stripped


def resolve_github_token(env_file: str = ENV_FILE) -> str:
    """Read `GITHUB_TOKEN` from the environment, loading the nearest `.env` first.

    Args:
        env_file (str): `.env` file to load; variables already set are kept

    Raises:
        MissingTokenError: if no non-blank token is available

    Returns:
        str: the token
    """
    if env_file:
        load_dotenv(env_file, override=False)
    token = os.environ.get("GITHUB_TOKEN", "").strip()
    if not token:
        raise MissingTokenError
    return token
