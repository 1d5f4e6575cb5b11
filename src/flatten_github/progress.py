from __future__ import annotations

import shutil
import sys
import time
from typing import TYPE_CHECKING, Protocol, TextIO

from flatten_github.config import PROGRESS_UPDATE_INTERVAL

if TYPE_CHECKING:
    from collections.abc import Callable

    from flatten_github.models import ProgressUpdate

_BAR_LENGTH = 24


class ProgressSink(Protocol):
    """Consumer of structured progress events."""

    def start(self, total: int, label: str) -> None: ...

    def update(self, update: ProgressUpdate) -> None: ...

    def finish(self) -> None: ...


class ProgressPrinter:
    """Render progress events on a terminal.

    On a TTY a single line is redrawn in place, at most once per
    `PROGRESS_UPDATE_INTERVAL` seconds except for the final event. Other streams
    get one line per event.
    """

    def __init__(
        self,
        stream: TextIO | None = None,
        now: Callable[[], float] = time.monotonic,
        label: str = "Processing",
    ) -> None:
        self.stream = stream if stream is not None else sys.stdout
        self.now = now
        self.label = label
        self.total = 0
        self.processed = 0
        self.started = False
        self._last_render: float | None = None
        self._last_update: ProgressUpdate | None = None

    @property
    def is_tty(self) -> bool:
        isatty = getattr(self.stream, "isatty", None)
        return bool(isatty and isatty())

    def start(self, total: int, label: str | None = None) -> None:
        if label is not None:
            self.label = label
        self.total = max(total, 0)
        self.processed = 0
        self._last_update = None
        self._last_render = None
        self.started = True
        if self.is_tty:
            self._render()
        else:
            self.stream.write(f"{self.label} {self.total} items...\n")

    def update(self, update: ProgressUpdate) -> None:
        if not self.started:
            return
        self.processed = update.processed
        self.total = max(update.total, self.processed)
        self._last_update = update

        if not self.is_tty:
            status = update.status_text or update.state
            self.stream.write(f"Processed {update.processed}/{update.total}: {update.path} ({status})\n")
            return

        now = self.now()
        throttled = self._last_render is not None and now - self._last_render < PROGRESS_UPDATE_INTERVAL
        if update.processed < update.total and throttled:
            return
        self._render()
        self._last_render = now

    def finish(self) -> None:
        if not self.started:
            return
        if self.is_tty:
            self._render()
            self.stream.write("\n")
        self.stream.flush()
        self.started = False

    def render_line(self) -> str:
        """Build the status line for the current state."""
        percent = 100 if self.total == 0 else int(self.processed * 100 / self.total)
        filled = _BAR_LENGTH if self.total == 0 else round(percent / 100 * _BAR_LENGTH)
        bar = "#" * filled + "-" * (_BAR_LENGTH - filled)
        latest = self._last_update
        path = latest.path if latest else ""
        state = (latest.status_text or latest.state) if latest else "pending"
        return f"{self.label} [{bar}] {self.processed}/{self.total} ({percent}%) {state}: {path}"

    def _render(self) -> None:
        line = self.render_line()
        width = shutil.get_terminal_size((len(line), 20)).columns
        self.stream.write("\r" + line[:width].ljust(width))
        self.stream.flush()
