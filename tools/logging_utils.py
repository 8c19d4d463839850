"""Planner Logging
===============

Every planner module logs through `get_logger(__name__)`; the handlers come
from config.LOGGING_CONFIG (console at INFO, data/logs/meal_planner.log at
DEBUG with 10MB rotation and 5 backups).

Messages start with an emoji naming the event:

    🚀 run started      📊 progress       ✅ accepted / assembled
    🔄 corrective retry ⚠️ rejected attempt ❌ run aborted
    🔍 validation detail

Run-level messages whose severity follows from the event go through
`log_with_emoji`, which picks the level from that prefix.
"""

import sys
import os
# Add parent directory to path for imports from project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import logging
import logging.config
from config import DATA_DIR, LOGGING_CONFIG

_configured = False

# Run-level events and the level each is logged at
RUN_EVENT_LEVELS = {
    "🚀": logging.INFO,
    "📊": logging.INFO,
    "✅": logging.INFO,
    "🔄": logging.WARNING,
    "❌": logging.ERROR,
}


def setup_logging(force: bool = False):
    """Apply LOGGING_CONFIG once per process (again only with force=True)."""
    global _configured
    if _configured and not force:
        return
    try:
        os.makedirs(str(DATA_DIR / "logs"), exist_ok=True)
        logging.config.dictConfig(LOGGING_CONFIG)
        _configured = True
    except (OSError, ValueError) as e:
        print(f"Warning: Logging setup failed: {e}")


def get_logger(name: str) -> logging.Logger:
    setup_logging()
    return logging.getLogger(name)


def log_with_emoji(logger: logging.Logger, message: str):
    """
    Log a run-level event at the level its emoji prefix implies.

    Unprefixed or unknown prefixes log at INFO.

    Example:
        log_with_emoji(logger, "🔄 Day 2 exhausted its attempts")
        # logged at WARNING
    """
    level = next(
        (lvl for emoji, lvl in RUN_EVENT_LEVELS.items() if message.startswith(emoji)),
        logging.INFO,
    )
    logger.log(level, message)
