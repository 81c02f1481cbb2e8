from __future__ import annotations

import logging
from typing import Callable, Iterable

from mention_monitor.config import ConfigError, SourceSettings

from .base import Source

logger = logging.getLogger(__name__)

SourceFactory = Callable[[SourceSettings], Source]

_FACTORIES: dict[str, SourceFactory] = {}


class SourceRegistrationError(ConfigError):
    """Raised for unknown or conflicting source types."""


def register_source(source_type: str) -> Callable[[SourceFactory], SourceFactory]:
    def decorator(factory: SourceFactory) -> SourceFactory:
        existing = _FACTORIES.get(source_type)
        if existing is not None and existing is not factory:
            raise SourceRegistrationError(f"Source type '{source_type}' is already registered")
        _FACTORIES[source_type] = factory
        return factory

    return decorator


def create_source(settings: SourceSettings) -> Source:
    try:
        factory = _FACTORIES[settings.type]
    except KeyError:
        known = ", ".join(registered_source_types()) or "none"
        raise SourceRegistrationError(
            f"Unknown source type '{settings.type}'. Known types: {known}"
        ) from None
    return factory(settings)


def create_sources(settings: Iterable[SourceSettings]) -> list[Source]:
    """Build sources in configuration order; that order is the merge order."""
    sources = [create_source(source_settings) for source_settings in settings]
    logger.debug("Built %d sources: %s", len(sources), ", ".join(s.name for s in sources))
    return sources


def registered_source_types() -> list[str]:
    return sorted(_FACTORIES)
