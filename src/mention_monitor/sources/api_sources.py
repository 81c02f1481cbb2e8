from __future__ import annotations

from datetime import timedelta
from typing import Any, Sequence
from urllib.parse import quote_plus

from mention_monitor.config import SourceSettings
from mention_monitor.models import Mention
from mention_monitor.utils.datetime_utils import parse_datetime_utc, utc_now
from mention_monitor.utils.deadline import Deadline
from mention_monitor.utils.text_utils import find_keyword, html_to_text, truncate
from mention_monitor.utils.url_utils import derive_mention_id

from .base import (
    CONTENT_LIMIT,
    DEFAULT_TIMEOUT_SECONDS,
    Source,
    collect_per_query,
    http_get,
    option_float,
)
from .registry import register_source


class HackerNewsSource:
    """Stories and comments from the Algolia Hacker News search API."""

    name = "hackernews"
    api_url = "https://hn.algolia.com/api/v1/search_by_date"

    def __init__(self, settings: SourceSettings) -> None:
        self.timeout_seconds = option_float(
            settings.options, "timeout_seconds", DEFAULT_TIMEOUT_SECONDS
        )
        self.lookback_hours = option_float(settings.options, "lookback_hours", 24)

    def collect(self, keywords: Sequence[str], deadline: Deadline) -> list[Mention]:
        queries = [(keyword, tag) for keyword in keywords for tag in ("story", "comment")]
        return collect_per_query(
            self.name,
            queries,
            deadline,
            lambda query: self._search(query[0], query[1], deadline),
        )

    def _search(self, keyword: str, tag: str, deadline: Deadline) -> list[Mention]:
        since = int((utc_now() - timedelta(hours=self.lookback_hours)).timestamp())
        url = (
            f"{self.api_url}?query={quote_plus(keyword)}&tags={tag}"
            f"&numericFilters=created_at_i>{since}"
        )
        payload = http_get(url, deadline, timeout_seconds=self.timeout_seconds).json()

        mentions: list[Mention] = []
        for hit in payload.get("hits") or []:
            object_id = str(hit.get("objectID") or "").strip()
            if not object_id:
                continue

            if tag == "story":
                kind = "post"
                title = str(hit.get("title") or "")
                content = str(hit.get("story_text") or "")
            else:
                kind = "comment"
                title = f"Comment on: {hit.get('story_title') or ''}"
                content = str(hit.get("comment_text") or "")

            mentions.append(
                Mention(
                    id=f"hn_{object_id}",
                    source=self.name,
                    kind=kind,
                    keyword=keyword,
                    title=title,
                    content=truncate(html_to_text(content), CONTENT_LIMIT),
                    url=f"https://news.ycombinator.com/item?id={object_id}",
                    author=str(hit.get("author") or ""),
                    published_at=parse_datetime_utc(hit.get("created_at")),
                )
            )
        return mentions


class GitHubSource:
    """Recently created issues, plus go.mod code hits when a token is set."""

    name = "github"
    api_url = "https://api.github.com"

    def __init__(self, settings: SourceSettings) -> None:
        self.token = str(settings.options.get("token") or "").strip()
        self.timeout_seconds = option_float(
            settings.options, "timeout_seconds", DEFAULT_TIMEOUT_SECONDS
        )
        self.code_filename = str(settings.options.get("code_filename") or "go.mod")

    def collect(self, keywords: Sequence[str], deadline: Deadline) -> list[Mention]:
        queries: list[tuple[str, str]] = []
        for keyword in keywords:
            queries.append(("issues", keyword))
            # Code search needs authentication.
            if self.token:
                queries.append(("code", keyword))

        return collect_per_query(
            self.name,
            queries,
            deadline,
            lambda query: self._search(query[0], query[1], deadline),
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github.v3+json"}
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        return headers

    def _search(self, kind: str, keyword: str, deadline: Deadline) -> list[Mention]:
        if kind == "issues":
            return self._search_issues(keyword, deadline)
        return self._search_code(keyword, deadline)

    def _search_issues(self, keyword: str, deadline: Deadline) -> list[Mention]:
        since = (utc_now() - timedelta(days=1)).strftime("%Y-%m-%d")
        query = quote_plus(f"{keyword} created:>{since}")
        url = f"{self.api_url}/search/issues?q={query}&sort=created&order=desc"
        payload = http_get(
            url,
            deadline,
            timeout_seconds=self.timeout_seconds,
            headers=self._headers(),
        ).json()

        mentions: list[Mention] = []
        for item in payload.get("items") or []:
            user = item.get("user") or {}
            html_url = str(item.get("html_url") or "")
            mentions.append(
                Mention(
                    id=derive_mention_id("github", str(item.get("id") or ""), html_url),
                    source=self.name,
                    kind="issue",
                    keyword=keyword,
                    title=str(item.get("title") or ""),
                    content=truncate(str(item.get("body") or ""), CONTENT_LIMIT),
                    url=html_url,
                    author=str(user.get("login") or ""),
                    published_at=parse_datetime_utc(item.get("created_at")),
                )
            )
        return mentions

    def _search_code(self, keyword: str, deadline: Deadline) -> list[Mention]:
        query = quote_plus(f"{keyword} filename:{self.code_filename}")
        url = f"{self.api_url}/search/code?q={query}&sort=indexed&order=desc&per_page=10"
        payload = http_get(
            url,
            deadline,
            timeout_seconds=self.timeout_seconds,
            headers=self._headers(),
        ).json()

        mentions: list[Mention] = []
        for item in payload.get("items") or []:
            repository = str((item.get("repository") or {}).get("full_name") or "")
            path = str(item.get("path") or "")
            html_url = str(item.get("html_url") or "")
            mentions.append(
                Mention(
                    id=derive_mention_id("github_code", f"{repository}_{path}", html_url),
                    source=self.name,
                    kind="code",
                    keyword=keyword,
                    title=f"Used in {repository}",
                    content=f"Found in {path}",
                    url=html_url,
                    author=repository,
                )
            )
        return mentions


class DevToSource:
    name = "devto"
    api_url = "https://dev.to/api/articles"

    def __init__(self, settings: SourceSettings) -> None:
        self.timeout_seconds = option_float(
            settings.options, "timeout_seconds", DEFAULT_TIMEOUT_SECONDS
        )
        self.per_page = int(settings.options.get("per_page", 30))

    def collect(self, keywords: Sequence[str], deadline: Deadline) -> list[Mention]:
        return collect_per_query(
            self.name,
            keywords,
            deadline,
            lambda keyword: self._search(keyword, deadline),
        )

    def _search(self, keyword: str, deadline: Deadline) -> list[Mention]:
        url = f"{self.api_url}?tag={quote_plus(keyword)}&per_page={self.per_page}"
        articles = http_get(url, deadline, timeout_seconds=self.timeout_seconds).json()
        if not isinstance(articles, list):
            raise ValueError("dev.to returned an unexpected payload")

        mentions: list[Mention] = []
        for article in articles:
            title = str(article.get("title") or "")
            description = str(article.get("description") or "")
            matched = find_keyword(f"{title} {description}", [keyword])
            if matched is None:
                continue

            user = article.get("user") or {}
            article_url = str(article.get("url") or "")
            mentions.append(
                Mention(
                    id=derive_mention_id("devto", str(article.get("id") or ""), article_url),
                    source=self.name,
                    kind="article",
                    keyword=matched,
                    title=title,
                    content=description,
                    url=article_url,
                    author=str(user.get("username") or ""),
                    published_at=parse_datetime_utc(
                        article.get("published_at") or article.get("created_at")
                    ),
                )
            )
        return mentions


class LobstersSource:
    name = "lobsters"
    api_url = "https://lobste.rs/search.json"

    def __init__(self, settings: SourceSettings) -> None:
        self.timeout_seconds = option_float(
            settings.options, "timeout_seconds", DEFAULT_TIMEOUT_SECONDS
        )

    def collect(self, keywords: Sequence[str], deadline: Deadline) -> list[Mention]:
        return collect_per_query(
            self.name,
            keywords,
            deadline,
            lambda keyword: self._search(keyword, deadline),
        )

    def _search(self, keyword: str, deadline: Deadline) -> list[Mention]:
        url = f"{self.api_url}?q={quote_plus(keyword)}&what=stories&order=newest"
        stories = http_get(url, deadline, timeout_seconds=self.timeout_seconds).json()
        if not isinstance(stories, list):
            raise ValueError("lobste.rs returned an unexpected payload")

        mentions: list[Mention] = []
        for story in stories:
            title = str(story.get("title") or "")
            description = html_to_text(str(story.get("description") or ""))
            matched = find_keyword(f"{title} {description}", [keyword])
            if matched is None:
                continue

            comments_url = str(story.get("comments_url") or "")
            mentions.append(
                Mention(
                    id=derive_mention_id(
                        "lobsters", str(story.get("short_id") or ""), comments_url
                    ),
                    source=self.name,
                    kind="post",
                    keyword=matched,
                    title=title,
                    content=truncate(description, CONTENT_LIMIT),
                    url=comments_url,
                    author=_lobsters_submitter(story.get("submitter_user")),
                    published_at=parse_datetime_utc(story.get("created_at")),
                )
            )
        return mentions


def _lobsters_submitter(value: Any) -> str:
    # Older API versions return a user object instead of a name.
    if isinstance(value, dict):
        return str(value.get("username") or "")
    return str(value or "")


@register_source("hackernews")
def _build_hackernews_source(settings: SourceSettings) -> Source:
    return HackerNewsSource(settings)


@register_source("github")
def _build_github_source(settings: SourceSettings) -> Source:
    return GitHubSource(settings)


@register_source("devto")
def _build_devto_source(settings: SourceSettings) -> Source:
    return DevToSource(settings)


@register_source("lobsters")
def _build_lobsters_source(settings: SourceSettings) -> Source:
    return LobstersSource(settings)
