from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from flatten_github.config import MAX_CONCURRENCY, MAX_TEXT_BLOB_BYTES, OutputFormat
from flatten_github.exceptions import InvalidBranchError, MissingTokenError
from flatten_github.settings import Settings, resolve_github_token


@pytest.mark.unit
def test_settings_defaults() -> None:
    settings = Settings(repo_url="https://github.com/acme/app")

    assert settings.branch is None
    assert settings.format is OutputFormat.TEXT
    assert settings.out_dir == Path("out")
    assert settings.concurrency == MAX_CONCURRENCY
    assert settings.max_bytes == MAX_TEXT_BLOB_BYTES
    assert settings.yes is False
    assert not settings.log_file


@pytest.mark.unit
def test_settings_strips_branch() -> None:
    assert Settings(repo_url="u", branch="  dev \n").branch == "dev"


@pytest.mark.unit
def test_settings_rejects_blank_branch() -> None:
    with pytest.raises(InvalidBranchError) as excinfo:
        Settings(repo_url="u", branch="   ")

    assert str(excinfo.value) == "Branch name cannot be empty"


@pytest.mark.unit
@pytest.mark.parametrize("field", [{"concurrency": 0}, {"max_bytes": 0}, {"format": "docx"}])
def test_settings_rejects_out_of_range_values(field: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        Settings(repo_url="u", **field)


@pytest.mark.unit
def test_resolve_token_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITHUB_TOKEN", "  ghp_abc  ")

    assert resolve_github_token(env_file="") == "ghp_abc"


@pytest.mark.unit
def test_resolve_token_from_dotenv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    # set first so that the value loaded from .env is undone after the test
    monkeypatch.setenv("GITHUB_TOKEN", "placeholder")
    monkeypatch.delenv("GITHUB_TOKEN")
    env_file = tmp_path / ".env"
    env_file.write_text("GITHUB_TOKEN=from-dotenv\n", encoding="utf-8")

    assert resolve_github_token(env_file=str(env_file)) == "from-dotenv"


@pytest.mark.unit
def test_environment_wins_over_dotenv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITHUB_TOKEN", "from-env")
    env_file = tmp_path / ".env"
    env_file.write_text("GITHUB_TOKEN=from-dotenv\n", encoding="utf-8")

    assert resolve_github_token(env_file=str(env_file)) == "from-env"


@pytest.mark.unit
@pytest.mark.parametrize("value", [None, "", "   "])
def test_missing_token_raises(value: str | None, monkeypatch: pytest.MonkeyPatch) -> None:
    if value is None:
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    else:
        monkeypatch.setenv("GITHUB_TOKEN", value)

    with pytest.raises(MissingTokenError) as excinfo:
        resolve_github_token(env_file="")

    assert "GITHUB_TOKEN" in str(excinfo.value)
