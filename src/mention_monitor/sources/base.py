from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Protocol, Sequence, TypeVar, runtime_checkable

import feedparser
import requests

from mention_monitor.errors import DeadlineExceeded, SourceError
from mention_monitor.models import Mention
from mention_monitor.utils.deadline import Deadline

logger = logging.getLogger(__name__)

USER_AGENT = "mention-monitor/1.0"
DEFAULT_TIMEOUT_SECONDS = 30
CONTENT_LIMIT = 500

Query = TypeVar("Query")


@runtime_checkable
class Source(Protocol):
    name: str

    def collect(self, keywords: Sequence[str], deadline: Deadline) -> list[Mention]:
        """Return candidate mentions for ``keywords`` before ``deadline``."""
        ...


def collect_per_query(
    source_name: str,
    queries: Iterable[Query],
    deadline: Deadline,
    fetch: Callable[[Query], list[Mention]],
) -> list[Mention]:
    """Run ``fetch`` for every query, isolating failures between queries.

    Raises ``DeadlineExceeded`` once the deadline passes, and ``SourceError``
    when every attempted query failed.
    """
    mentions: list[Mention] = []
    attempted = 0
    failures = 0
    last_error: Exception | None = None

    for query in queries:
        if deadline.expired:
            raise DeadlineExceeded(
                f"{source_name}: deadline expired after {attempted} queries"
            )

        attempted += 1
        try:
            mentions.extend(fetch(query))
        except DeadlineExceeded:
            raise
        except Exception as exc:  # noqa: BLE001
            failures += 1
            last_error = exc
            logger.warning("Source %s query %r failed: %s", source_name, query, exc)

    if attempted and failures == attempted:
        raise SourceError(
            f"{source_name}: all {attempted} queries failed; last error: {last_error}"
        ) from last_error

    return mentions


def http_get(
    url: str,
    deadline: Deadline,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    headers: dict[str, str] | None = None,
) -> requests.Response:
    request_headers = {"User-Agent": USER_AGENT}
    if headers:
        request_headers.update(headers)

    response = requests.get(
        url,
        timeout=deadline.timeout(timeout_seconds),
        headers=request_headers,
    )
    response.raise_for_status()
    return response


def fetch_feed_entries(
    url: str,
    deadline: Deadline,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> list[Any]:
    response = http_get(url, deadline, timeout_seconds=timeout_seconds)
    parsed = feedparser.parse(response.content)
    if getattr(parsed, "bozo", False) and not parsed.entries:
        raise SourceError(f"could not parse feed {url}: {parsed.bozo_exception}")
    if getattr(parsed, "bozo", False):
        logger.warning("Feed parsing bozo exception for %s: %s", url, parsed.bozo_exception)
    return list(parsed.entries)


def option_float(options: dict[str, Any], key: str, default: float) -> float:
    raw = options.get(key, default)
    return float(raw) if raw is not None else default
