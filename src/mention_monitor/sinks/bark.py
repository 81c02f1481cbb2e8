from __future__ import annotations

import logging
from typing import Sequence
from urllib.parse import quote, urlencode

import requests

from mention_monitor.errors import SinkError
from mention_monitor.models import Mention
from mention_monitor.utils.text_utils import truncate

from .base import DeliveryResult, deliver_each
from .formatting import source_display_name, source_icon

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "https://api.day.app"
_BATCH_PREVIEW_LIMIT = 5


class BarkSink:
    """iOS push notifications through a Bark server.

    ``mode="each"`` pushes one notification per mention; ``mode="batch"``
    pushes a single summary for the whole batch.
    """

    name = "bark"

    def __init__(
        self,
        device_key: str,
        *,
        server_url: str = DEFAULT_SERVER_URL,
        mode: str = "each",
        group: str = "mention-monitor",
        timeout_seconds: int = 15,
    ) -> None:
        if mode not in {"each", "batch"}:
            raise ValueError(f"unsupported Bark mode: {mode}")
        self.device_key = device_key
        self.server_url = (server_url or DEFAULT_SERVER_URL).rstrip("/")
        self.mode = mode
        self.group = group
        self.timeout_seconds = timeout_seconds

    def send(self, mentions: Sequence[Mention]) -> DeliveryResult:
        if not self.device_key:
            raise SinkError("bark device key not configured")

        if self.mode == "batch" and len(mentions) > 1:
            return self._send_batch(mentions)
        return deliver_each(self.name, mentions, self._send_one)

    def _send_one(self, mention: Mention) -> None:
        title = f"New mention on {source_display_name(mention.source)}"
        body = f"Title: {mention.title}"
        if mention.author:
            body += f"\nAuthor: {mention.author}"

        params = {"url": mention.url, "group": self.group}
        icon = source_icon(mention.source)
        if icon:
            params["icon"] = icon
        self._push(title, body, params)

    def _send_batch(self, mentions: Sequence[Mention]) -> DeliveryResult:
        title = f"{len(mentions)} new mentions"
        lines = [
            f"• [{mention.source}] {truncate(mention.title or mention.url, 50)}"
            for mention in mentions[:_BATCH_PREVIEW_LIMIT]
        ]
        if len(mentions) > _BATCH_PREVIEW_LIMIT:
            lines.append(f"... and {len(mentions) - _BATCH_PREVIEW_LIMIT} more")

        self._push(title, "\n".join(lines), {"group": self.group})
        return DeliveryResult(
            sink=self.name,
            attempted=len(mentions),
            delivered=len(mentions),
        )

    def push_url(self, title: str, body: str, params: dict[str, str]) -> str:
        return (
            f"{self.server_url}/{quote(self.device_key, safe='')}"
            f"/{quote(title, safe='')}/{quote(body, safe='')}?{urlencode(params)}"
        )

    def _push(self, title: str, body: str, params: dict[str, str]) -> None:
        response = requests.get(
            self.push_url(title, body, params),
            timeout=self.timeout_seconds,
        )
        if response.status_code != 200:
            raise SinkError(f"bark returned status {response.status_code}")
        logger.debug("Bark push accepted: %s", title)
