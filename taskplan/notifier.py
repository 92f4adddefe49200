"""User-facing notification capability.

The pipeline never talks to a host UI directly; it reports through a
:class:`Notifier`, which the host (or a test) supplies.
"""

from __future__ import annotations

import logging
from typing import List, Protocol, Tuple, runtime_checkable


@runtime_checkable
class Notifier(Protocol):
    def notify_info(self, message: str) -> None: ...

    def notify_error(self, message: str) -> None: ...


class LoggingNotifier:
    """Default notifier that forwards user messages to the log."""

    def __init__(self, logger_name: str = "taskplan.notify"):
        self.logger = logging.getLogger(logger_name)

    def notify_info(self, message: str) -> None:
        self.logger.info(message)

    def notify_error(self, message: str) -> None:
        self.logger.warning(message)


class RecordingNotifier:
    """Keeps every notification in memory; used as a test double."""

    def __init__(self):
        self.messages: List[Tuple[str, str]] = []

    def notify_info(self, message: str) -> None:
        self.messages.append(("info", message))

    def notify_error(self, message: str) -> None:
        self.messages.append(("error", message))

    @property
    def errors(self) -> List[str]:
        return [message for level, message in self.messages if level == "error"]

    @property
    def infos(self) -> List[str]:
        return [message for level, message in self.messages if level == "info"]


class NullNotifier:
    def notify_info(self, message: str) -> None:
        pass

    def notify_error(self, message: str) -> None:
        pass
