"""
Console logging for the panel.
Everything goes through the 'cratepanel' logger and is rendered by rich.
"""

import logging
from rich.logging import RichHandler
import sys

FORMAT = "%(message)s"

logging.basicConfig(
    level="INFO",
    format=FORMAT,
    datefmt="[%X]",
    handlers=[RichHandler(
        markup=True,
        rich_tracebacks=True
    )]
)

logging.captureWarnings(True)

log = logging.getLogger("cratepanel")


# noinspection PyShadowingBuiltins,PyUnusedLocal
def except_handler(type, value, tb):
    log.exception(str(value), exc_info=(type, value, tb))


sys.excepthook = except_handler
