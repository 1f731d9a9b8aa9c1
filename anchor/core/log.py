# anchor/core/log.py
"""
Logging setup.

Library modules only ask for `logging.getLogger("anchor.<area>")`; handlers are
installed once, by the CLI or the server entrypoint, through `setup_logging`.
"""

import logging
from typing import Union

from rich.console import Console
from rich.logging import RichHandler

_CONFIGURED = False


def setup_logging(level: Union[str, int] = "INFO", console: Console = None) -> None:
    global _CONFIGURED
    if isinstance(level, str):
        level = logging.getLevelName(level.strip().upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger("anchor")
    root.setLevel(level)
    if _CONFIGURED:
        return

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=False,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(name)s | %(message)s", datefmt="%Y-%m-%dT%H:%M:%S"))
    root.addHandler(handler)
    root.propagate = False
    _CONFIGURED = True
