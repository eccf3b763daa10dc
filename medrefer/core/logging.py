"""
Logging setup

Modules log through logging.getLogger(__name__); this only wires the handler.
"""
import logging
from typing import Optional

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


class MedreferHandler(logging.StreamHandler):
    """Stream handler installed by configure_logging()"""

    def __init__(self):
        super().__init__()
        self.setFormatter(logging.Formatter(LOG_FORMAT))


def configure_logging(level: Optional[str] = None) -> None:
    """
    Install a single stream handler on the "medrefer" logger

    Safe to call more than once: the handler is only added the first time,
    later calls just change the level.
    """
    from medrefer.core.config import LOG_LEVEL

    logger = logging.getLogger("medrefer")
    logger.setLevel((level or LOG_LEVEL).upper())

    if not any(isinstance(h, MedreferHandler) for h in logger.handlers):
        logger.addHandler(MedreferHandler())
