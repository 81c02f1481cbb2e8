"""Keyword mention monitor: collect, dedupe and dispatch mentions."""

__version__ = "0.1.0"
