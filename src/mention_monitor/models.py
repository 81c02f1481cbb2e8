from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from mention_monitor.utils.datetime_utils import format_iso, parse_datetime_utc


@dataclass(slots=True)
class Mention:
    id: str
    source: str
    kind: str
    keyword: str
    url: str
    title: str = ""
    content: str = ""
    author: str = ""
    discovered_at: datetime | None = None
    published_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "type": self.kind,
            "keyword": self.keyword,
            "title": self.title,
            "content": self.content,
            "url": self.url,
            "author": self.author,
            "discovered_at": format_iso(self.discovered_at),
            "published_at": format_iso(self.published_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Mention:
        mention_id = str(data.get("id") or "").strip()
        if not mention_id:
            raise ValueError("mention record is missing an id")

        return cls(
            id=mention_id,
            source=str(data.get("source") or ""),
            kind=str(data.get("type") or data.get("kind") or ""),
            keyword=str(data.get("keyword") or ""),
            url=str(data.get("url") or ""),
            title=str(data.get("title") or ""),
            content=str(data.get("content") or ""),
            author=str(data.get("author") or ""),
            discovered_at=parse_datetime_utc(data.get("discovered_at")),
            published_at=parse_datetime_utc(data.get("published_at")),
        )


@dataclass(slots=True)
class RunState:
    last_updated: datetime | None = None
    mentions: list[Mention] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_updated": format_iso(self.last_updated),
            "mentions": [mention.to_dict() for mention in self.mentions],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunState:
        raw_mentions = data.get("mentions") or []
        if not isinstance(raw_mentions, list):
            raise ValueError("mentions must be a list")

        mentions: list[Mention] = []
        for index, record in enumerate(raw_mentions):
            if not isinstance(record, dict):
                raise ValueError(f"mention #{index} must be a mapping")
            mentions.append(Mention.from_dict(record))

        return cls(
            last_updated=parse_datetime_utc(data.get("last_updated")),
            mentions=mentions,
        )
