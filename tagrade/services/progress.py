from __future__ import annotations

import sys
import threading
from typing import TextIO


class ProgressPrinter:
    """Console progress in fixed 10% steps, safe to call from worker threads."""

    def __init__(self, total: int, *, stream: TextIO | None = None):
        self._total = max(1, int(total))
        self._count = 0
        self._printed = 0
        self._lock = threading.Lock()
        self._stream = stream

    def add(self) -> None:
        with self._lock:
            self._count += 1
            percent = min(100, (self._count * 100) // self._total)
            stream = self._stream or sys.stdout
            while self._printed + 10 <= percent:
                self._printed += 10
                print(f"{self._printed}% ", end="", file=stream, flush=True)
                if self._printed == 100:
                    print(file=stream, flush=True)

    @property
    def count(self) -> int:
        with self._lock:
            return self._count
