from __future__ import annotations

_SOURCE_DISPLAY_NAMES = {
    "hackernews": "Hacker News",
    "reddit": "Reddit",
    "github": "GitHub",
    "twitter": "Twitter",
    "devto": "Dev.to",
    "medium": "Medium",
    "stackoverflow": "Stack Overflow",
    "producthunt": "Product Hunt",
    "lobsters": "Lobsters",
    "pkggodev": "pkg.go.dev",
    "google": "Google",
}

_SOURCE_ICONS = {
    "hackernews": "https://news.ycombinator.com/favicon.ico",
    "reddit": "https://www.reddit.com/favicon.ico",
    "github": "https://github.com/favicon.ico",
    "twitter": "https://twitter.com/favicon.ico",
    "devto": "https://dev.to/favicon.ico",
    "medium": "https://medium.com/favicon.ico",
    "stackoverflow": "https://stackoverflow.com/favicon.ico",
    "producthunt": "https://www.producthunt.com/favicon.ico",
    "lobsters": "https://lobste.rs/favicon.ico",
    "pkggodev": "https://pkg.go.dev/favicon.ico",
    "google": "https://www.google.com/favicon.ico",
}


def source_display_name(source: str) -> str:
    return _SOURCE_DISPLAY_NAMES.get(source, source)


def source_icon(source: str) -> str:
    return _SOURCE_ICONS.get(source, "")
