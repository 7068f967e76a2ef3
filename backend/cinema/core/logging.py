"""
Process-wide logging setup.

Modules log through ``logging.getLogger(__name__)``; this only installs the
root handler and level once at startup.
"""
import logging

LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install the root handler at *level* (unknown names fall back to INFO)."""
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
