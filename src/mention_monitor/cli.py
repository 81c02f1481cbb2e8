from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Callable, Mapping

from mention_monitor.aggregator import Aggregator
from mention_monitor.config import AppConfig, ConfigError, load_config
from mention_monitor.dispatcher import SinkDispatcher
from mention_monitor.logging_config import setup_logging
from mention_monitor.models import Mention
from mention_monitor.service import MentionMonitorService, RunReport
from mention_monitor.sinks import (
    BarkSink,
    MongoSink,
    NotionSink,
    PostgresSink,
    Sink,
    SlackWebhookSink,
    render_slack_message_text,
)
from mention_monitor.sources import Source, create_sources, registered_source_types
from mention_monitor.store import JsonStateStore
from mention_monitor.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mention-monitor",
        description="Poll content sources for keyword mentions and fan new ones out to sinks.",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to config YAML file (default: built-in defaults plus environment)",
    )
    parser.add_argument(
        "--log-level",
        help="Override config log level (e.g. INFO, DEBUG)",
    )
    parser.add_argument(
        "--state",
        help="Override the state file path",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("run", help="Collect once, notify sinks and persist new mentions")
    subparsers.add_parser("dry-run", help="Collect once and print new mentions")
    subparsers.add_parser("test-notify", help="Send a mock mention to every configured sink")
    subparsers.add_parser("sources", help="List the registered source types")

    return parser


def main(argv: list[str] | None = None, environ: Mapping[str, str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    environ = os.environ if environ is None else environ

    if args.command == "sources":
        for source_type in registered_source_types():
            print(source_type)
        return 0

    try:
        app_config = load_config(args.config, environ)
        sources = _build_sources(app_config)
    except ConfigError as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        return 2

    log_level = args.log_level or app_config.log_level
    setup_logging(log_level)

    if args.state:
        app_config.storage.path = str(Path(args.state).expanduser())

    sinks = _build_sinks(app_config, environ)

    if args.command == "test-notify":
        return _run_test_notify(sinks, max_workers=app_config.max_workers)

    dry_run = args.command == "dry-run"
    if not sinks and not dry_run:
        logger.warning("No sinks configured; new mentions will only be recorded in state")

    service = MentionMonitorService(
        aggregator=Aggregator(sources, max_workers=app_config.max_workers),
        store=_build_store(app_config),
        sinks=sinks,
        keywords=app_config.keywords,
        timeout_seconds=app_config.run_timeout_seconds,
        dispatcher=SinkDispatcher(sinks, max_workers=app_config.max_workers),
        dry_run=dry_run,
        preview_callback=_preview_callback(sinks) if dry_run else None,
    )

    report = service.run_once()
    _log_summary(report)
    return 0 if report.ok else 1


def _preview_callback(sinks: list[Sink]) -> Callable[[Mention], None] | None:
    if any(isinstance(sink, SlackWebhookSink) for sink in sinks):
        return _slack_dry_run_preview
    return None


def _slack_dry_run_preview(mention: Mention) -> None:
    print("[DRY RUN] WOULD POST TEXT:")
    print(render_slack_message_text([mention]))
    print("")


def _build_store(app_config: AppConfig) -> JsonStateStore:
    return JsonStateStore(app_config.storage.path)


def _build_sources(app_config: AppConfig) -> list[Source]:
    return create_sources(app_config.sources)


def _build_sinks(app_config: AppConfig, environ: Mapping[str, str]) -> list[Sink]:
    settings = app_config.sinks
    sinks: list[Sink] = []

    bark_key = _env(environ, settings.bark.device_key_env_var)
    if bark_key:
        sinks.append(
            BarkSink(
                bark_key,
                server_url=_env(environ, settings.bark.server_url_env_var)
                or settings.bark.server_url,
                mode=settings.bark.mode,
                group=settings.bark.group,
            )
        )
    else:
        logger.info("Bark sink disabled: %s is not set", settings.bark.device_key_env_var)

    webhook_url = _env(environ, settings.slack.webhook_env_var)
    if webhook_url:
        sinks.append(SlackWebhookSink(webhook_url=webhook_url))
    else:
        logger.info("Slack sink disabled: %s is not set", settings.slack.webhook_env_var)

    notion_token = _env(environ, settings.notion.token_env_var)
    notion_database = _env(environ, settings.notion.database_id_env_var)
    if notion_token and notion_database:
        sinks.append(
            NotionSink(
                notion_token,
                notion_database,
                skip_existing=settings.notion.skip_existing,
            )
        )
    else:
        logger.info(
            "Notion sink disabled: %s and %s are required",
            settings.notion.token_env_var,
            settings.notion.database_id_env_var,
        )

    dsn = _env(environ, settings.postgres.dsn_env_var)
    if dsn:
        sinks.append(PostgresSink(dsn))
    else:
        logger.info("PostgreSQL sink disabled: %s is not set", settings.postgres.dsn_env_var)

    mongo_uri = _env(environ, settings.mongodb.uri_env_var)
    if mongo_uri:
        sinks.append(
            MongoSink(
                mongo_uri,
                database=settings.mongodb.database,
                collection=settings.mongodb.collection,
            )
        )
    else:
        logger.info("MongoDB sink disabled: %s is not set", settings.mongodb.uri_env_var)

    return sinks


def _env(environ: Mapping[str, str], name: str) -> str:
    return environ.get(name, "").strip()


def _run_test_notify(sinks: list[Sink], *, max_workers: int) -> int:
    if not sinks:
        logger.error("No sinks configured; nothing to test")
        return 1

    report = SinkDispatcher(sinks, max_workers=max_workers).dispatch([_mock_mention()])
    for result in report.results:
        if result.ok:
            print(f"{result.sink}: ok")
        else:
            detail = result.error or ", ".join(result.delivery.failed_ids)
            print(f"{result.sink}: FAILED ({detail})")

    return 0 if report.sinks_failed == 0 else 1


def _mock_mention() -> Mention:
    now = utc_now()
    return Mention(
        id=f"test_{int(now.timestamp())}",
        source="hackernews",
        kind="post",
        keyword="test",
        title="Test notification from mention-monitor",
        content="This is a test mention sent to verify sink configuration.",
        url="https://github.com/rebelice/lazypg",
        author="mention-monitor",
        discovered_at=now,
        published_at=now,
    )


def _log_summary(report: RunReport) -> None:
    logger.info(
        "Run complete | status=%s sources=%d source_failures=%d candidates=%d dropped=%d "
        "new=%d sinks=%d sink_failures=%d item_failures=%d",
        report.status.value,
        report.sources_attempted,
        report.sources_failed,
        report.candidates,
        report.dropped,
        report.new_mentions,
        report.sinks_attempted,
        report.sinks_failed,
        report.items_failed,
    )


if __name__ == "__main__":
    raise SystemExit(main())
