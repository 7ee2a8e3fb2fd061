# src/storefront_sync/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path


# Console thresholds for loggers that tick in the background. Longest prefix wins.
_QUIET_PREFIXES: dict[str, int] = {
    "storefront_sync.chat.": logging.WARNING,
    "storefront_sync.polling.": logging.WARNING,
    "storefront_sync.connectors.engine_runner": logging.WARNING,
    "httpx": logging.ERROR,
    "httpcore": logging.ERROR,
}


class _ConsoleNoiseFilter(logging.Filter):
    """
    The chat and conversation pollers refetch every few seconds and the try-on
    poller every half second; at INFO they would bury the prompt. Their records
    reach the console only at WARNING+, request logs from httpx only on errors.
    Job transitions from storefront_sync.tryon and command output pass as-is.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        matched = [p for p in _QUIET_PREFIXES if name.startswith(p)]
        if matched:
            return record.levelno >= _QUIET_PREFIXES[max(matched, key=len)]

        if name.startswith("storefront_sync."):
            return True

        # py.warnings and any other library
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/storefront",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Configure logging with:
    - Console handler: readable + filtered for interactive use
    - File handler: full logs for debugging

    Call this ONCE, before the engine thread starts. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "storefront.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(threadName)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    # Route warnings.warn(...) into logging as 'py.warnings'
    logging.captureWarnings(True)
    return log_file
