from __future__ import annotations

import logging
import time
import traceback
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class DiagnosticItem:
    ts: float
    context: str
    message: str
    tb: str | None
    count: int = 1

    def summary_line(self) -> str:
        base = f"{self.context}: {self.message}".strip()
        if self.count > 1:
            base += f" (x{self.count})"
        return base


class ImportDiagnostics:
    """
    In-memory buffer of recoverable import failures.

    A skipped material, a dropped face batch or a node that failed to convert
    lands here (and in the log) instead of aborting the import.  Consecutive
    identical entries are folded into one item with a repeat count.
    """

    def __init__(self, *, max_items: int = 200) -> None:
        self._max_items = max(1, int(max_items))
        self._items: list[DiagnosticItem] = []
        self._last_key: tuple[str, str] | None = None

    def items(self) -> list[DiagnosticItem]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def clear(self) -> None:
        self._items.clear()
        self._last_key = None

    def summary_lines(self) -> list[str]:
        return [it.summary_line() for it in self._items]

    def log_message(self, *, context: str, message: str) -> None:
        context = str(context or "unknown")
        message = str(message or "").strip() or "Unknown error"
        self._append(context=context, message=message, tb=None)
        logger.warning("%s: %s", context, message)

    def log_exception(self, *, context: str, exc: BaseException) -> None:
        context = str(context or "unknown")
        msg = f"{type(exc).__name__}: {exc}".strip()
        tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        self._append(context=context, message=msg, tb=tb)
        logger.error("%s: %s", context, msg, exc_info=exc)

    def _append(self, *, context: str, message: str, tb: str | None) -> None:
        ts = time.time()
        key = (context, message)
        if self._items and self._last_key == key:
            self._items[-1].ts = ts
            self._items[-1].count += 1
            return

        self._items.append(DiagnosticItem(ts=ts, context=context, message=message, tb=tb, count=1))
        self._last_key = key
        if len(self._items) > self._max_items:
            self._items = self._items[-self._max_items :]
