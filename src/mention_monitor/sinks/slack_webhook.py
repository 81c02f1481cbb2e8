from __future__ import annotations

from typing import Sequence

import requests

from mention_monitor.errors import SinkError
from mention_monitor.models import Mention
from mention_monitor.utils.datetime_utils import format_datetime
from mention_monitor.utils.text_utils import truncate

from .base import DeliveryResult
from .formatting import source_display_name

# Slack rejects messages with more than 50 blocks.
_MAX_MENTION_BLOCKS = 20


class SlackWebhookSink:
    name = "slack"

    def __init__(self, webhook_url: str, timeout_seconds: int = 15) -> None:
        self.webhook_url = webhook_url
        self.timeout_seconds = timeout_seconds

    def send(self, mentions: Sequence[Mention]) -> DeliveryResult:
        result = DeliveryResult(sink=self.name, attempted=len(mentions))
        if not mentions:
            return result

        payload = build_slack_payload(mentions)
        response = requests.post(
            self.webhook_url,
            json=payload,
            timeout=self.timeout_seconds,
        )
        if response.status_code >= 400:
            raise SinkError(
                f"Slack webhook returned {response.status_code}: {response.text}"
            )

        result.delivered = len(mentions)
        return result


def build_slack_payload(mentions: Sequence[Mention]) -> dict:
    count = len(mentions)
    heading = "1 new mention" if count == 1 else f"{count} new mentions"

    blocks: list[dict] = [
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"*{heading}*"},
        }
    ]
    for mention in mentions[:_MAX_MENTION_BLOCKS]:
        blocks.append(
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": _mention_markdown(mention)},
            }
        )

    remaining = count - _MAX_MENTION_BLOCKS
    if remaining > 0:
        blocks.append(
            {
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": f"... and {remaining} more"}],
            }
        )

    first = mentions[0]
    text = f"{heading} | {source_display_name(first.source)}: {first.title or first.url}"
    return {"text": text, "blocks": blocks}


def _mention_markdown(mention: Mention) -> str:
    title = mention.title or mention.url
    lines = [
        f"*<{mention.url}|{title}>*",
        f"*Source:* {source_display_name(mention.source)} ({mention.kind or 'item'})",
        f"*Keyword:* {mention.keyword}",
        f"*Author:* {_format_optional_text(mention.author)}",
        f"*Published:* {_format_optional_datetime(mention)}",
    ]
    if mention.content:
        lines.append(truncate(mention.content, 300))
    return "\n".join(lines)


def render_slack_message_text(mentions: Sequence[Mention]) -> str:
    payload = build_slack_payload(mentions)
    lines: list[str] = []

    top_text = payload.get("text")
    if isinstance(top_text, str) and top_text:
        lines.append(top_text)

    blocks = payload.get("blocks")
    if isinstance(blocks, list):
        for block in blocks:
            if not isinstance(block, dict):
                continue
            _append_payload_text(lines, block.get("text"))
            elements = block.get("elements")
            if isinstance(elements, list):
                for element in elements:
                    if not isinstance(element, dict):
                        continue
                    _append_payload_text(lines, element.get("text"))

    return "\n".join(lines)


def _append_payload_text(lines: list[str], payload_value: object) -> None:
    if isinstance(payload_value, str) and payload_value:
        lines.append(payload_value)
        return
    if isinstance(payload_value, dict):
        text = payload_value.get("text")
        if isinstance(text, str) and text:
            lines.append(text)


def _format_optional_text(value: str | None) -> str:
    normalized = (value or "").strip()
    return normalized or "Not specified"


def _format_optional_datetime(mention: Mention) -> str:
    if mention.published_at is None:
        return "Not specified"
    return format_datetime(mention.published_at)
