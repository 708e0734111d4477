# loadwatch/services/notifier.py

"""User-facing notifications for new matches and action outcomes."""

import logging
from collections.abc import Callable

from rich.console import Console

logger = logging.getLogger("loadwatch.notifier")

NOTIFY_NEW = "new"
NOTIFY_SUCCESS = "success"
NOTIFY_ERROR = "error"

Notifier = Callable[[str, str], None]

_STYLES: dict[str, str] = {
    NOTIFY_NEW: "bold cyan",
    NOTIFY_SUCCESS: "bold green",
    NOTIFY_ERROR: "bold red",
}


class ConsoleNotifier:
    """Print notifications to stderr with Rich markup."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)
        self.sent: dict[str, int] = {}

    def __call__(self, kind: str, message: str = "") -> None:
        if kind not in _STYLES:
            logger.warning("Unknown notification kind '%s'", kind)
            return
        self.sent[kind] = self.sent.get(kind, 0) + 1
        style = _STYLES[kind]
        self.console.bell()
        self.console.print(
            f"[{style}]● {kind.upper()}[/{style}] {message}".rstrip()
        )


def silent_notifier(kind: str, message: str = "") -> None:
    """Notifier that only logs."""
    logger.debug("Notification %s: %s", kind, message)
