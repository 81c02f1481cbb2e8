from __future__ import annotations


class MentionMonitorError(Exception):
    """Base class for pipeline errors."""


class SourceError(MentionMonitorError):
    """Raised when a source cannot produce candidates this round."""


class DeadlineExceeded(SourceError):
    """Raised when a source runs out of its time budget."""


class SinkError(MentionMonitorError):
    """Raised when a sink cannot deliver a batch."""


class StateStoreError(MentionMonitorError):
    """Raised when persisted run state cannot be read or written."""
