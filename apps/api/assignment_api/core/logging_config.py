from __future__ import annotations

import logging
import sys

from assignment_api.core.config import Settings

_CONFIGURED = False


def configure_logging(*, settings: Settings) -> None:
    """Install a single console handler on the root logger.

    Safe to call more than once (API factory and worker both call it); only the
    first call installs the handler, later calls just re-apply the level.
    """
    global _CONFIGURED
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    if _CONFIGURED:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s | %(message)s"))
    root.addHandler(handler)
    # SQL echo is far too chatty at DEBUG.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    _CONFIGURED = True
