"""Sink implementations."""

from .bark import BarkSink
from .base import DeliveryResult, Sink, deliver_each
from .mongodb import MongoSink
from .notion import NotionSink
from .postgres import PostgresSink
from .slack_webhook import SlackWebhookSink, build_slack_payload, render_slack_message_text

__all__ = [
    "BarkSink",
    "DeliveryResult",
    "MongoSink",
    "NotionSink",
    "PostgresSink",
    "Sink",
    "SlackWebhookSink",
    "build_slack_payload",
    "deliver_each",
    "render_slack_message_text",
]
