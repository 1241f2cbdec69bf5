"""Rich-based logging helpers shared across CLI tools."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from rich.console import Console
from rich.theme import Theme
from rich.traceback import install

install(show_locals=False)

_THEME = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "success": "bold green",
        "debug": "dim",
    }
)

# Every log line goes to stderr; stdout is left to rendered results.
# Highlighting stays off so server names and counts are printed verbatim.
_stderr_console = Console(stderr=True, theme=_THEME, highlight=False)
_verbose_console = Console(stderr=True, theme=_THEME, highlight=False)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(slots=True)
class Logger:
    """Lightweight logger facade backed by Rich consoles.

    Rich consoles serialise writes internally, so worker threads may share one
    instance.
    """

    verbose: bool = False
    timestamps: bool = True

    def info(self, message: str) -> None:
        _stderr_console.print(self._format("INFO", message), style="info", markup=False, soft_wrap=True)

    def success(self, message: str) -> None:
        _stderr_console.print(self._format("INFO", message), style="success", markup=False, soft_wrap=True)

    def warning(self, message: str) -> None:
        _stderr_console.print(self._format("WARN", message), style="warning", markup=False, soft_wrap=True)

    def error(self, message: str) -> None:
        _stderr_console.print(self._format("ERROR", message), style="error", markup=False, soft_wrap=True)

    def debug(self, message: str) -> None:
        if self.verbose:
            _verbose_console.print(self._format("DEBUG", message), style="debug", markup=False, soft_wrap=True)

    def _format(self, level: str, message: str) -> str:
        if not self.timestamps:
            return message
        return f"{datetime.now().strftime(TIMESTAMP_FORMAT)} {level:<5} {message}"


def get_logger(verbose: bool = False) -> Logger:
    """Return a configured Logger instance."""
    return Logger(verbose=verbose)
