from __future__ import annotations

import logging


def setup_logging(level: str = "INFO") -> None:
    numeric_level = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Keep per-request connection chatter out of DEBUG runs.
    logging.getLogger("urllib3").setLevel(logging.WARNING)
