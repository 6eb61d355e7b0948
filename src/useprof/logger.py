from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

# On Windows, disable legacy Windows rendering to avoid Unicode encoding issues
# legacy_windows=False uses modern ANSI escape sequences which handle UTF-8 better
console = Console(legacy_windows=False)
err_console = Console(stderr=True, legacy_windows=False)

log = logging.getLogger("useprof")


def enable_debug() -> None:
    """Route the ``useprof`` logger to stderr through rich at DEBUG level."""
    if not any(isinstance(h, RichHandler) for h in log.handlers):
        log.addHandler(RichHandler(console=err_console, show_path=False))
    log.setLevel(logging.DEBUG)


def log_info(content: str) -> None:
    console.print(content)


def log_success_panel(content: str) -> None:
    console.print(Panel(content, style="green", title="Info"))


def log_error_panel(content: str) -> None:
    err_console.print(Panel(content, style="red", title="Error"))


def log_warning_panel(content: str) -> None:
    console.print(Panel(content, style="yellow", title="Warning"))
