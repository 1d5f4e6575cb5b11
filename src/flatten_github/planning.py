from __future__ import annotations

import math

from flatten_github.config import AVERAGE_REQUEST_LATENCY_MS, MAX_CONCURRENCY

PREFETCH_REQUESTS = 3  # repository, tree, rate limit


def calculate_planned_request_total(blob_count: int, prefetch_count: int = PREFETCH_REQUESTS) -> int:
    return prefetch_count + max(blob_count, 0)


def estimate_duration_seconds(
    blob_count: int,
    concurrency: int = MAX_CONCURRENCY,
    average_latency_ms: int = AVERAGE_REQUEST_LATENCY_MS,
) -> int:
    """Rough wall-clock estimate for downloading `blob_count` blobs.

    Args:
        blob_count (int): number of blobs to download
        concurrency (int): number of requests in flight
        average_latency_ms (int): expected latency of one request

    Returns:
        int: whole seconds, 0 when there is nothing to download and at least 1 otherwise
    """
    if blob_count <= 0:
        return 0
    batches = math.ceil(blob_count / max(1, concurrency))
    estimated_ms = batches * max(average_latency_ms, 1)
    return max(1, math.ceil(estimated_ms / 1000))


def format_seconds(seconds: int) -> str:
    if seconds <= 0:
        return "under a second"
    if seconds == 1:
        return "about 1 second"
    if seconds < 60:  # noqa: PLR2004
        return f"about {seconds} seconds"
    minutes, rem = divmod(seconds, 60)
    plural = "s" if minutes > 1 else ""
    if rem == 0:
        return f"about {minutes} minute{plural}"
    return f"about {minutes} minute{plural} {rem} seconds"
