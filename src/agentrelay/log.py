"""Logging setup for agentrelay entry points.

Library modules only create module-level loggers; handlers are installed
here, by the CLI and the terminal UI.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(name)s: %(message)s"


def configure_logging(debug: bool = False, console: Console | None = None) -> None:
    """Route agentrelay logs through a rich handler.

    Args:
        debug: Log at DEBUG instead of WARNING
        console: Console to write to (default: stderr)
    """
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logger = logging.getLogger("agentrelay")
    for existing in list(logger.handlers):
        if isinstance(existing, RichHandler):
            logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if debug else logging.WARNING)
    logger.propagate = False
