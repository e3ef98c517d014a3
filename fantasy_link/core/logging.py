"""
Logging setup for the API process.

Every module logs through ``logging.getLogger(__name__)``; this only wires the root handler.
"""

import logging
import sys


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with a consistent format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    # urllib3 retry chatter is noise at INFO
    logging.getLogger("urllib3").setLevel(logging.WARNING)


__all__ = ["configure_logging"]
