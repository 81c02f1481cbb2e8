from __future__ import annotations

import logging
from typing import Iterable

from mention_monitor.models import Mention, RunState

logger = logging.getLogger(__name__)


class DedupStore:
    """Gate candidates against every id already recorded in ``state``.

    The seen-set is rebuilt from the mention log once, at construction, and
    then grows as candidates are accepted. Accepted mentions are appended to
    ``state.mentions`` so the log stays the single source of truth.
    """

    def __init__(self, state: RunState) -> None:
        self.state = state
        self.seen: set[str] = {mention.id for mention in state.mentions}

    def __len__(self) -> int:
        return len(self.seen)

    def is_new(self, mention_id: str) -> bool:
        return mention_id not in self.seen

    def accept(self, candidates: Iterable[Mention]) -> list[Mention]:
        new_mentions: list[Mention] = []
        duplicates = 0

        for candidate in candidates:
            if not self.is_new(candidate.id):
                duplicates += 1
                continue

            self.seen.add(candidate.id)
            self.state.mentions.append(candidate)
            new_mentions.append(candidate)

        logger.debug(
            "Dedup accepted %d new mentions, skipped %d already seen, %d ids known",
            len(new_mentions),
            duplicates,
            len(self),
        )
        return new_mentions
