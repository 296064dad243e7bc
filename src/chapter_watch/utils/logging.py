"""Logging setup and per-fetch correlation ids."""

import logging
import uuid
from collections.abc import MutableMapping
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

_FILE_FORMAT = "%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s: %(message)s"


def new_correlation_id() -> str:
    """Short id tying together the log lines of one fetch."""
    return uuid.uuid4().hex[:8]


class CorrelationAdapter(logging.LoggerAdapter):
    """Prefix every message with ``[cid]``."""

    def __init__(self, logger: logging.Logger, cid: str):
        super().__init__(logger, {"cid": cid})

    @property
    def cid(self) -> str:
        return self.extra["cid"]  # type: ignore[index]

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs.setdefault("extra", {}).update(self.extra)
        return f"[{self.cid}] {msg}", kwargs


def configure_logging(
    verbose: bool = False,
    log_file: Path | None = None,
    console: Console | None = None,
) -> None:
    """Route package logs to the console and, optionally, a log file."""
    root = logging.getLogger("chapter_watch")
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        file_handler.setLevel(logging.DEBUG)
        root.addHandler(file_handler)
        # File gets debug lines even when the console does not
        root.setLevel(logging.DEBUG)
