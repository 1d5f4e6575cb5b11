"""Thin async client for the GitHub REST endpoints the exporter needs."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Self
from urllib.parse import quote

import httpx

from flatten_github.config import GH_API, MAX_RETRIES, REQUEST_TIMEOUT_SECONDS, RETRY_BASE_SECONDS, USER_AGENT
from flatten_github.exceptions import GitHubApiError, RateLimitExceededError
from flatten_github.logging import logger
from flatten_github.models import BlobPayload, RateLimit, RepositoryInfo, TreeListing

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from types import TracebackType

    SleepFn = Callable[[float], Awaitable[None]]

_RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


def build_headers(token: str) -> dict[str, str]:
    return {
        "Accept": "application/vnd.github+json",
        "User-Agent": USER_AGENT,
        "Authorization": f"Bearer {token}",
        "X-GitHub-Api-Version": "2022-11-28",
    }


def backoff_delay(attempt: int, base: float = RETRY_BASE_SECONDS) -> float:
    """Exponential delay before retry number `attempt` (1-based)."""
    return base * (2 ** (attempt - 1))


def is_quota_exhausted(response: httpx.Response) -> bool:
    """Whether a 403/429 answer means the core quota is spent."""
    return response.status_code in {403, 429} and response.headers.get("x-ratelimit-remaining") == "0"


def is_retryable(response: httpx.Response) -> bool:
    """Whether a failed answer is worth another attempt.

    5xx and 429 always are; a 403 is only when GitHub asks to come back later
    through `Retry-After` (secondary rate limit).
    """
    if response.status_code in _RETRYABLE_STATUS:
        return True
    return response.status_code == 403 and "retry-after" in response.headers  # noqa: PLR2004


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


class GitHubClient:
    """Async GitHub REST client with a bounded retry loop.

    Transport failures, 5xx and 429 answers, and 403 answers carrying
    `Retry-After` are retried up to `max_retries` times with exponential backoff
    (`Retry-After` wins when sent).
    An exhausted quota fails immediately with `RateLimitExceededError`; any other
    non-success status raises `GitHubApiError`.
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: str = GH_API,
        max_retries: int = MAX_RETRIES,
        retry_base: float = RETRY_BASE_SECONDS,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._max_retries = max(0, max_retries)
        self._retry_base = retry_base
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=build_headers(token),
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request_json(self, path: str, params: dict[str, str] | None = None) -> Any:  # noqa: ANN401
        """GET `path` and decode the JSON body, retrying transient failures.

        Args:
            path (str): API path relative to the base URL
            params (dict[str, str] | None): optional query parameters

        Raises:
            RateLimitExceededError: if the core quota is exhausted
            GitHubApiError: for non-retryable statuses, or retryable ones after the last attempt
            httpx.TransportError: if the network keeps failing after the last attempt

        Returns:
            Any: the decoded JSON payload
        """
        attempts = self._max_retries + 1
        for attempt in range(1, attempts + 1):
            last_attempt = attempt == attempts
            try:
                response = await self._client.get(path, params=params)
            except httpx.TransportError as exc:
                if last_attempt:
                    raise
                delay = backoff_delay(attempt, self._retry_base)
                logger.warning("github_request_retry", path=path, attempt=attempt, delay=delay, error=str(exc))
                await self._sleep(delay)
                continue

            if response.is_success:
                return response.json()

            if is_quota_exhausted(response):
                reset_at = int(response.headers.get("x-ratelimit-reset", "0") or 0)
                logger.error("github_rate_limit_exhausted", path=path, reset_at=reset_at)
                raise RateLimitExceededError(
                    status_code=response.status_code,
                    body=response.text,
                    url=str(response.request.url),
                    reset_at=reset_at,
                )

            error = GitHubApiError(
                status_code=response.status_code,
                body=response.text,
                url=str(response.request.url),
            )
            if not is_retryable(response) or last_attempt:
                raise error
            delay = _retry_after(response)
            if delay is None:
                delay = backoff_delay(attempt, self._retry_base)
            logger.warning(
                "github_request_retry",
                path=path,
                attempt=attempt,
                delay=delay,
                status_code=response.status_code,
            )
            await self._sleep(delay)

        msg = "unreachable: retry loop exited without result"
        raise AssertionError(msg)

    async def get_repository(self, owner: str, repo: str) -> RepositoryInfo:
        data = await self.request_json(f"/repos/{owner}/{repo}")
        return RepositoryInfo.model_validate(data)

    async def get_tree(self, owner: str, repo: str, ref: str) -> TreeListing:
        """List the full tree of `ref` recursively."""
        data = await self.request_json(
            f"/repos/{owner}/{repo}/git/trees/{quote(ref, safe='')}",
            params={"recursive": "1"},
        )
        return TreeListing.model_validate(data)

    async def get_blob(self, owner: str, repo: str, sha: str) -> BlobPayload:
        data = await self.request_json(f"/repos/{owner}/{repo}/git/blobs/{sha}")
        return BlobPayload.model_validate(data)

    async def get_rate_limit(self) -> RateLimit:
        data = await self.request_json("/rate_limit")
        return RateLimit.model_validate(data.get("resources", data))
