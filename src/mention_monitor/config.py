from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

DEFAULT_KEYWORDS = ["lazypg", "rebelice/lazypg"]
DEFAULT_STATE_PATH = "data/mentions.json"
DEFAULT_SOURCE_TYPES = (
    "hackernews",
    "reddit",
    "github",
    "twitter",
    "devto",
    "medium",
    "stackoverflow",
    "producthunt",
    "lobsters",
    "pkggodev",
    "google",
)


class ConfigError(ValueError):
    """Raised when configuration is invalid."""


@dataclass(slots=True)
class SourceSettings:
    type: str
    options: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class BarkSettings:
    device_key_env_var: str = "BARK_DEVICE_KEY"
    server_url_env_var: str = "BARK_SERVER_URL"
    server_url: str = "https://api.day.app"
    mode: str = "each"
    group: str = "mention-monitor"


@dataclass(slots=True)
class SlackSettings:
    webhook_env_var: str = "SLACK_WEBHOOK_URL"


@dataclass(slots=True)
class NotionSettings:
    token_env_var: str = "NOTION_TOKEN"
    database_id_env_var: str = "NOTION_DATABASE_ID"
    skip_existing: bool = False


@dataclass(slots=True)
class PostgresSettings:
    dsn_env_var: str = "DATABASE_URL"


@dataclass(slots=True)
class MongoSettings:
    uri_env_var: str = "MONGODB_URI"
    database: str = "mention_monitor"
    collection: str = "mentions"


@dataclass(slots=True)
class SinkSettings:
    bark: BarkSettings = field(default_factory=BarkSettings)
    slack: SlackSettings = field(default_factory=SlackSettings)
    notion: NotionSettings = field(default_factory=NotionSettings)
    postgres: PostgresSettings = field(default_factory=PostgresSettings)
    mongodb: MongoSettings = field(default_factory=MongoSettings)


@dataclass(slots=True)
class StorageSettings:
    path: str = DEFAULT_STATE_PATH


@dataclass(slots=True)
class AppConfig:
    keywords: list[str] = field(default_factory=lambda: list(DEFAULT_KEYWORDS))
    sources: list[SourceSettings] = field(
        default_factory=lambda: [SourceSettings(type=name) for name in DEFAULT_SOURCE_TYPES]
    )
    sinks: SinkSettings = field(default_factory=SinkSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    run_timeout_seconds: int = 300
    max_workers: int = 4
    log_level: str = "INFO"


def _as_string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return _split_csv(value)
    if not isinstance(value, list):
        raise ConfigError(f"Expected a list of strings, got: {type(value)!r}")
    return [str(item).strip() for item in value if str(item).strip()]


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _as_bool(value: Any, *, field_name: str) -> bool:
    if isinstance(value, bool):
        return value

    if isinstance(value, int) and value in {0, 1}:
        return bool(value)

    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "1", "yes", "on"}:
            return True
        if normalized in {"false", "0", "no", "off"}:
            return False

    raise ConfigError(f"{field_name} must be a boolean")


def _as_int(value: Any, *, field_name: str, minimum: int | None = None) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{field_name} must be an integer")

    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{field_name} must be an integer") from exc

    if minimum is not None and parsed < minimum:
        raise ConfigError(f"{field_name} must be >= {minimum}")
    return parsed


def _as_mapping(value: Any, *, field_name: str) -> dict[str, Any]:
    value = value or {}
    if not isinstance(value, dict):
        raise ConfigError(f"{field_name} must be a mapping")
    return value


def _as_text(value: Any, default: str) -> str:
    if value is None:
        return default
    return str(value).strip() or default


def _resolve_relative_path(config_path: Path | None, raw_path: str) -> str:
    candidate = Path(raw_path).expanduser()
    if candidate.is_absolute() or config_path is None:
        return str(candidate)
    return str((config_path.parent / candidate).resolve())


def _read_yaml(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            parsed = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file is not valid YAML: {exc}") from exc

    if not isinstance(parsed, dict):
        raise ConfigError("Config root must be a mapping")
    return parsed


def _parse_sources(raw_sources: Any) -> list[SourceSettings]:
    if raw_sources is None:
        return [SourceSettings(type=name) for name in DEFAULT_SOURCE_TYPES]
    if not isinstance(raw_sources, list):
        raise ConfigError("sources must be a list")

    sources: list[SourceSettings] = []
    seen_types: set[str] = set()
    for index, source in enumerate(raw_sources, start=1):
        if isinstance(source, str):
            source = {"type": source}
        if not isinstance(source, dict):
            raise ConfigError(f"Source entry #{index} must be a mapping or a type name")

        source_type = str(source.get("type", "")).strip()
        if not source_type:
            raise ConfigError(f"Source entry #{index} missing: type")
        if source_type in seen_types:
            raise ConfigError(f"Source type '{source_type}' is configured more than once")
        seen_types.add(source_type)

        options = {key: value for key, value in source.items() if key != "type"}
        sources.append(SourceSettings(type=source_type, options=options))

    return sources


def _parse_sinks(raw_sinks: dict[str, Any]) -> SinkSettings:
    raw_bark = _as_mapping(raw_sinks.get("bark"), field_name="sinks.bark")
    bark_mode = _as_text(raw_bark.get("mode"), "each").lower()
    if bark_mode not in {"each", "batch"}:
        raise ConfigError("sinks.bark.mode must be 'each' or 'batch'")
    bark = BarkSettings(
        device_key_env_var=_as_text(raw_bark.get("device_key_env_var"), "BARK_DEVICE_KEY"),
        server_url_env_var=_as_text(raw_bark.get("server_url_env_var"), "BARK_SERVER_URL"),
        server_url=_as_text(raw_bark.get("server_url"), "https://api.day.app"),
        mode=bark_mode,
        group=_as_text(raw_bark.get("group"), "mention-monitor"),
    )

    raw_slack = _as_mapping(raw_sinks.get("slack"), field_name="sinks.slack")
    slack = SlackSettings(
        webhook_env_var=_as_text(raw_slack.get("webhook_env_var"), "SLACK_WEBHOOK_URL"),
    )

    raw_notion = _as_mapping(raw_sinks.get("notion"), field_name="sinks.notion")
    notion = NotionSettings(
        token_env_var=_as_text(raw_notion.get("token_env_var"), "NOTION_TOKEN"),
        database_id_env_var=_as_text(
            raw_notion.get("database_id_env_var"), "NOTION_DATABASE_ID"
        ),
        skip_existing=_as_bool(
            raw_notion.get("skip_existing", False),
            field_name="sinks.notion.skip_existing",
        ),
    )

    raw_postgres = _as_mapping(raw_sinks.get("postgres"), field_name="sinks.postgres")
    postgres = PostgresSettings(
        dsn_env_var=_as_text(raw_postgres.get("dsn_env_var"), "DATABASE_URL"),
    )

    raw_mongodb = _as_mapping(raw_sinks.get("mongodb"), field_name="sinks.mongodb")
    mongodb = MongoSettings(
        uri_env_var=_as_text(raw_mongodb.get("uri_env_var"), "MONGODB_URI"),
        database=_as_text(raw_mongodb.get("database"), "mention_monitor"),
        collection=_as_text(raw_mongodb.get("collection"), "mentions"),
    )

    return SinkSettings(
        bark=bark, slack=slack, notion=notion, postgres=postgres, mongodb=mongodb
    )


def _apply_source_env(sources: list[SourceSettings], environ: Mapping[str, str]) -> None:
    github_token = environ.get("GITHUB_TOKEN", "").strip()
    alert_urls = _split_csv(environ.get("GOOGLE_ALERT_URLS", ""))

    for source in sources:
        if source.type == "github" and github_token and not source.options.get("token"):
            source.options["token"] = github_token
        if source.type == "google" and alert_urls and not source.options.get("alert_urls"):
            source.options["alert_urls"] = alert_urls


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Build the app config from an optional YAML file plus the environment.

    Environment values (``KEYWORDS``, ``RUN_TIMEOUT_SECONDS``, ``STATE_PATH``,
    ``LOG_LEVEL``) override the file. Source credentials are injected from
    ``GITHUB_TOKEN`` and ``GOOGLE_ALERT_URLS`` when the file sets none.
    """
    environ = os.environ if environ is None else environ

    config_path: Path | None = None
    parsed: dict[str, Any] = {}
    if path is not None:
        config_path = Path(path).expanduser().resolve()
        parsed = _read_yaml(config_path)

    raw_keywords = parsed.get("keywords")
    if raw_keywords is None:
        raw_keywords = DEFAULT_KEYWORDS
    keywords = _as_string_list(raw_keywords)
    env_keywords = environ.get("KEYWORDS", "").strip()
    if env_keywords:
        keywords = _split_csv(env_keywords)
    if not keywords:
        raise ConfigError("At least one keyword is required")

    run_timeout = _as_int(
        environ.get("RUN_TIMEOUT_SECONDS") or parsed.get("run_timeout_seconds", 300),
        field_name="run_timeout_seconds",
        minimum=1,
    )
    max_workers = _as_int(
        parsed.get("max_workers", 4),
        field_name="max_workers",
        minimum=1,
    )

    sources = _parse_sources(parsed.get("sources"))
    _apply_source_env(sources, environ)

    sinks = _parse_sinks(_as_mapping(parsed.get("sinks"), field_name="sinks"))

    raw_storage = _as_mapping(parsed.get("storage"), field_name="storage")
    env_state_path = environ.get("STATE_PATH", "").strip()
    if env_state_path:
        storage_path = str(Path(env_state_path).expanduser())
    else:
        storage_path = _resolve_relative_path(
            config_path,
            _as_text(raw_storage.get("path"), DEFAULT_STATE_PATH),
        )

    log_level = environ.get("LOG_LEVEL", "").strip() or str(parsed.get("log_level", "INFO"))

    return AppConfig(
        keywords=keywords,
        sources=sources,
        sinks=sinks,
        storage=StorageSettings(path=storage_path),
        run_timeout_seconds=run_timeout,
        max_workers=max_workers,
        log_level=log_level.upper(),
    )
