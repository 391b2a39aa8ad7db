# SPDX-License-Identifier: MIT
"""User-facing notification sinks."""
from __future__ import annotations

import logging
from typing import List, Protocol, Tuple


class Notifier(Protocol):
    def info(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class LogNotifier:
    """Route notifications to a logger."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self.log = log or logging.getLogger("avdscout.notify")

    def info(self, message: str) -> None:
        self.log.info(message)

    def error(self, message: str) -> None:
        self.log.error(message)


class RecordingNotifier:
    """Keep every notification in memory, e.g. to replay it to a client."""

    def __init__(self) -> None:
        self.messages: List[Tuple[str, str]] = []

    def info(self, message: str) -> None:
        self.messages.append(("info", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))

    @property
    def errors(self) -> List[str]:
        return [m for level, m in self.messages if level == "error"]
