from __future__ import annotations

import logging
from typing import Any, Callable, Sequence
from urllib.parse import quote, quote_plus, urlsplit, urlunsplit

import requests

from mention_monitor.config import SourceSettings
from mention_monitor.errors import SourceError
from mention_monitor.models import Mention
from mention_monitor.utils.datetime_utils import parse_datetime_utc
from mention_monitor.utils.deadline import Deadline
from mention_monitor.utils.text_utils import (
    find_keyword,
    html_to_text,
    normalize_whitespace,
    truncate,
)
from mention_monitor.utils.url_utils import derive_mention_id

from .base import (
    CONTENT_LIMIT,
    DEFAULT_TIMEOUT_SECONDS,
    Source,
    collect_per_query,
    fetch_feed_entries,
    option_float,
)
from .registry import register_source

logger = logging.getLogger(__name__)

DEFAULT_NITTER_INSTANCES = [
    "nitter.privacydev.net",
    "nitter.poast.org",
    "nitter.woodland.cafe",
]


def _entry_to_mention(
    entry: Any,
    *,
    source: str,
    kind: str,
    keyword: str,
    title_limit: int | None = None,
    url_rewrite: Callable[[str], str] | None = None,
) -> Mention:
    title = normalize_whitespace(html_to_text(str(entry.get("title", ""))))
    if title_limit is not None:
        title = truncate(title, title_limit)

    link = str(entry.get("link", "")).strip()
    if url_rewrite is not None and link:
        link = url_rewrite(link)

    guid = str(entry.get("id", "")).strip() or str(entry.get("guid", "")).strip()
    summary = entry.get("summary") or entry.get("description") or ""

    return Mention(
        id=derive_mention_id(source, guid or None, link),
        source=source,
        kind=kind,
        keyword=keyword,
        title=title,
        content=truncate(html_to_text(str(summary)), CONTENT_LIMIT),
        url=link,
        author=str(entry.get("author", "")).strip(),
        published_at=(
            parse_datetime_utc(entry.get("published_parsed"))
            or parse_datetime_utc(entry.get("updated_parsed"))
            or parse_datetime_utc(entry.get("published"))
        ),
    )


def _timeout_option(settings: SourceSettings, default: float = DEFAULT_TIMEOUT_SECONDS) -> float:
    return option_float(settings.options, "timeout_seconds", default)


def _entries(url: str, deadline: Deadline, timeout_seconds: float) -> list[Any]:
    return fetch_feed_entries(url, deadline, timeout_seconds=timeout_seconds)


def _entry_text(entry: Any) -> str:
    title = str(entry.get("title", ""))
    summary = str(entry.get("summary") or entry.get("description") or "")
    return f"{title} {html_to_text(summary)}"


class RedditSource:
    name = "reddit"
    search_url = "https://www.reddit.com/search.rss"

    def __init__(self, settings: SourceSettings) -> None:
        self.timeout_seconds = _timeout_option(settings)

    def collect(self, keywords: Sequence[str], deadline: Deadline) -> list[Mention]:
        queries = [(keyword, kind) for keyword in keywords for kind in ("post", "comment")]
        return collect_per_query(
            self.name,
            queries,
            deadline,
            lambda query: self._search(query[0], query[1], deadline),
        )

    def _search(self, keyword: str, kind: str, deadline: Deadline) -> list[Mention]:
        url = f"{self.search_url}?q={quote_plus(keyword)}&sort=new&t=day"
        if kind == "comment":
            url = f"{url}&type=comment"

        return [
            _entry_to_mention(entry, source=self.name, kind=kind, keyword=keyword)
            for entry in _entries(url, deadline, self.timeout_seconds)
        ]


class MediumSource:
    name = "medium"
    tag_url = "https://medium.com/feed/tag"

    def __init__(self, settings: SourceSettings) -> None:
        self.timeout_seconds = _timeout_option(settings)

    def collect(self, keywords: Sequence[str], deadline: Deadline) -> list[Mention]:
        return collect_per_query(
            self.name,
            keywords,
            deadline,
            lambda keyword: self._search(keyword, deadline),
        )

    def _search(self, keyword: str, deadline: Deadline) -> list[Mention]:
        url = f"{self.tag_url}/{quote(keyword, safe='')}"
        mentions: list[Mention] = []
        for entry in _entries(url, deadline, self.timeout_seconds):
            matched = find_keyword(_entry_text(entry), [keyword])
            if matched is None:
                continue
            mentions.append(
                _entry_to_mention(entry, source=self.name, kind="article", keyword=matched)
            )
        return mentions


class StackOverflowSource:
    """Tag feed first; the search feed when the tag feed is unavailable."""

    name = "stackoverflow"
    tag_url = "https://stackoverflow.com/feeds/tag"
    search_url = "https://stackoverflow.com/feeds/search"

    def __init__(self, settings: SourceSettings) -> None:
        self.timeout_seconds = _timeout_option(settings)

    def collect(self, keywords: Sequence[str], deadline: Deadline) -> list[Mention]:
        return collect_per_query(
            self.name,
            keywords,
            deadline,
            lambda keyword: self._search(keyword, deadline),
        )

    def _search(self, keyword: str, deadline: Deadline) -> list[Mention]:
        tag_url = f"{self.tag_url}/{quote(keyword, safe='')}"
        try:
            entries = _entries(tag_url, deadline, self.timeout_seconds)
        except requests.HTTPError as exc:
            logger.debug("Stack Overflow tag feed unavailable for %r: %s", keyword, exc)
            return self._search_fallback(keyword, deadline)

        return [
            _entry_to_mention(entry, source=self.name, kind="question", keyword=keyword)
            for entry in entries
        ]

    def _search_fallback(self, keyword: str, deadline: Deadline) -> list[Mention]:
        url = f"{self.search_url}?q={quote_plus(keyword)}"
        mentions: list[Mention] = []
        for entry in _entries(url, deadline, self.timeout_seconds):
            matched = find_keyword(_entry_text(entry), [keyword])
            if matched is None:
                continue
            mentions.append(
                _entry_to_mention(entry, source=self.name, kind="question", keyword=matched)
            )
        return mentions


class ProductHuntSource:
    """Latest launches, kept when any keyword appears in them."""

    name = "producthunt"
    feed_url = "https://www.producthunt.com/feed"

    def __init__(self, settings: SourceSettings) -> None:
        self.timeout_seconds = _timeout_option(settings)

    def collect(self, keywords: Sequence[str], deadline: Deadline) -> list[Mention]:
        return collect_per_query(
            self.name,
            [self.feed_url],
            deadline,
            lambda url: self._scan(url, keywords, deadline),
        )

    def _scan(self, url: str, keywords: Sequence[str], deadline: Deadline) -> list[Mention]:
        mentions: list[Mention] = []
        for entry in _entries(url, deadline, self.timeout_seconds):
            matched = find_keyword(_entry_text(entry), keywords)
            if matched is None:
                continue
            mentions.append(
                _entry_to_mention(entry, source=self.name, kind="post", keyword=matched)
            )
        return mentions


class TwitterSource:
    """Tweets through Nitter search feeds, trying instances in order."""

    name = "twitter"

    def __init__(self, settings: SourceSettings) -> None:
        self.timeout_seconds = _timeout_option(settings, default=10)
        instances = settings.options.get("nitter_instances") or DEFAULT_NITTER_INSTANCES
        self.instances = [str(item).strip() for item in instances if str(item).strip()]

    def collect(self, keywords: Sequence[str], deadline: Deadline) -> list[Mention]:
        return collect_per_query(
            self.name,
            keywords,
            deadline,
            lambda keyword: self._search(keyword, deadline),
        )

    def _search(self, keyword: str, deadline: Deadline) -> list[Mention]:
        errors: list[str] = []
        for instance in self.instances:
            url = f"https://{instance}/search/rss?f=tweets&q={quote_plus(keyword)}"
            try:
                entries = _entries(url, deadline, self.timeout_seconds)
            except (requests.RequestException, SourceError) as exc:
                errors.append(f"{instance}: {exc}")
                continue

            return [
                _entry_to_mention(
                    entry,
                    source=self.name,
                    kind="post",
                    keyword=keyword,
                    title_limit=100,
                    url_rewrite=_nitter_to_twitter_url,
                )
                for entry in entries
            ]

        detail = "; ".join(errors) or "no instances configured"
        raise SourceError(f"no Nitter instance answered: {detail}")


class GoogleSource:
    """Google Alerts feeds when configured, else the Google News search feed."""

    name = "google"
    news_url = "https://news.google.com/rss/search"

    def __init__(self, settings: SourceSettings) -> None:
        self.timeout_seconds = _timeout_option(settings)
        raw_urls = settings.options.get("alert_urls") or []
        if isinstance(raw_urls, str):
            raw_urls = raw_urls.split(",")
        self.alert_urls = [str(url).strip() for url in raw_urls if str(url).strip()]

    def collect(self, keywords: Sequence[str], deadline: Deadline) -> list[Mention]:
        if self.alert_urls:
            return collect_per_query(
                self.name,
                self.alert_urls,
                deadline,
                lambda url: self._fetch_alert_feed(url, keywords, deadline),
            )

        return collect_per_query(
            self.name,
            keywords,
            deadline,
            lambda keyword: self._search_news(keyword, deadline),
        )

    def _fetch_alert_feed(
        self, url: str, keywords: Sequence[str], deadline: Deadline
    ) -> list[Mention]:
        mentions: list[Mention] = []
        for entry in _entries(url, deadline, self.timeout_seconds):
            # Alert feeds are already keyword-scoped.
            matched = find_keyword(_entry_text(entry), keywords)
            if matched is None:
                matched = keywords[0] if keywords else ""
            mentions.append(
                _entry_to_mention(entry, source=self.name, kind="webpage", keyword=matched)
            )
        return mentions

    def _search_news(self, keyword: str, deadline: Deadline) -> list[Mention]:
        url = f"{self.news_url}?q={quote_plus(keyword)}&hl=en-US&gl=US&ceid=US:en"
        return [
            _entry_to_mention(entry, source=self.name, kind="news", keyword=keyword)
            for entry in _entries(url, deadline, self.timeout_seconds)
        ]


def _nitter_to_twitter_url(url: str) -> str:
    parsed = urlsplit(url)
    if not parsed.scheme or not parsed.netloc:
        return url
    return urlunsplit((parsed.scheme, "twitter.com", parsed.path, parsed.query, parsed.fragment))


@register_source("reddit")
def _build_reddit_source(settings: SourceSettings) -> Source:
    return RedditSource(settings)


@register_source("medium")
def _build_medium_source(settings: SourceSettings) -> Source:
    return MediumSource(settings)


@register_source("stackoverflow")
def _build_stackoverflow_source(settings: SourceSettings) -> Source:
    return StackOverflowSource(settings)


@register_source("producthunt")
def _build_producthunt_source(settings: SourceSettings) -> Source:
    return ProductHuntSource(settings)


@register_source("twitter")
def _build_twitter_source(settings: SourceSettings) -> Source:
    return TwitterSource(settings)


@register_source("google")
def _build_google_source(settings: SourceSettings) -> Source:
    return GoogleSource(settings)
