"""Source implementations and registry."""

from .api_sources import DevToSource, GitHubSource, HackerNewsSource, LobstersSource
from .base import Source, collect_per_query
from .html_sources import PkgGoDevSource
from .registry import create_source, create_sources, register_source, registered_source_types
from .rss_sources import (
    GoogleSource,
    MediumSource,
    ProductHuntSource,
    RedditSource,
    StackOverflowSource,
    TwitterSource,
)

__all__ = [
    "DevToSource",
    "GitHubSource",
    "GoogleSource",
    "HackerNewsSource",
    "LobstersSource",
    "MediumSource",
    "PkgGoDevSource",
    "ProductHuntSource",
    "RedditSource",
    "Source",
    "StackOverflowSource",
    "TwitterSource",
    "collect_per_query",
    "create_source",
    "create_sources",
    "register_source",
    "registered_source_types",
]
