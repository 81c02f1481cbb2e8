from __future__ import annotations

import logging
from typing import Any, Sequence

import requests

from mention_monitor.errors import SinkError
from mention_monitor.models import Mention
from mention_monitor.utils.datetime_utils import format_iso
from mention_monitor.utils.text_utils import truncate

from .base import DeliveryResult, deliver_each

logger = logging.getLogger(__name__)

NOTION_API_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"
_TEXT_LIMIT = 2000


class NotionSink:
    """One database page per mention.

    With ``skip_existing`` the database is queried by URL first and pages
    that already exist are counted as skipped.
    """

    name = "notion"

    def __init__(
        self,
        token: str,
        database_id: str,
        *,
        skip_existing: bool = False,
        timeout_seconds: int = 30,
    ) -> None:
        self.token = token
        self.database_id = database_id
        self.skip_existing = skip_existing
        self.timeout_seconds = timeout_seconds

    def send(self, mentions: Sequence[Mention]) -> DeliveryResult:
        if not self.token or not self.database_id:
            raise SinkError("notion token or database ID not configured")
        return deliver_each(self.name, mentions, self._deliver)

    def _deliver(self, mention: Mention) -> bool:
        if self.skip_existing and self.exists(mention.url):
            logger.info("Notion already has a page for %s; skipping", mention.url)
            return False
        self._create_page(mention)
        return True

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
            "Notion-Version": NOTION_VERSION,
        }

    def _create_page(self, mention: Mention) -> None:
        response = requests.post(
            f"{NOTION_API_URL}/pages",
            json=build_page_payload(self.database_id, mention),
            headers=self._headers(),
            timeout=self.timeout_seconds,
        )
        if response.status_code != 200:
            raise SinkError(f"notion API error {response.status_code}: {response.text}")

    def exists(self, url: str) -> bool:
        response = requests.post(
            f"{NOTION_API_URL}/databases/{self.database_id}/query",
            json={"filter": {"property": "URL", "url": {"equals": url}}},
            headers=self._headers(),
            timeout=self.timeout_seconds,
        )
        if response.status_code != 200:
            logger.warning(
                "Notion duplicate check failed with %s; assuming %s is new",
                response.status_code,
                url,
            )
            return False
        return bool(response.json().get("results"))


def build_page_payload(database_id: str, mention: Mention) -> dict[str, Any]:
    return {
        "parent": {"database_id": database_id},
        "properties": {
            "Title": {"title": [_rich_text(truncate(mention.title, _TEXT_LIMIT))]},
            "Source": {"select": {"name": mention.source}},
            "Type": {"select": {"name": mention.kind or "unknown"}},
            "URL": {"url": mention.url},
            "Author": {"rich_text": [_rich_text(mention.author)]},
            "Content": {"rich_text": [_rich_text(truncate(mention.content, _TEXT_LIMIT))]},
            "Keyword": {"select": {"name": mention.keyword}},
            "Discovered": {"date": {"start": format_iso(mention.discovered_at)}},
            "Status": {"select": {"name": "unread"}},
        },
    }


def _rich_text(content: str) -> dict[str, Any]:
    return {"text": {"content": content}}
