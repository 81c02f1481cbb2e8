from __future__ import annotations

from abc import ABC, abstractmethod

from mention_monitor.models import RunState


class StateStore(ABC):
    @abstractmethod
    def load(self) -> RunState:
        """Return persisted state, or an empty RunState when none exists."""

    @abstractmethod
    def save(self, state: RunState) -> None:
        """Persist the full state atomically."""
