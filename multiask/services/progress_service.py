"""Centralized progress notification helpers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from PyQt6.QtCore import QObject, pyqtSignal

from ..logging import log_call


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ProgressUpdate:
    """Data object describing the state of a progress update."""

    task_id: str
    message: str
    percent: float | None = None


class ProgressService(QObject):
    """Publish submission progress to interested listeners."""

    progress_started = pyqtSignal(object)
    progress_updated = pyqtSignal(object)
    progress_finished = pyqtSignal(object)

    def __init__(self) -> None:
        super().__init__()
        self._subscriptions: list[Callable[[ProgressUpdate], None]] = []
        self._latest: dict[str, ProgressUpdate] = {}

    # ------------------------------------------------------------------
    # Subscription helpers
    def subscribe(self, callback: Callable[[ProgressUpdate], None]) -> None:
        """Subscribe ``callback`` to raw progress events."""

        if callback not in self._subscriptions:
            self._subscriptions.append(callback)

    def unsubscribe(self, callback: Callable[[ProgressUpdate], None]) -> None:
        """Remove ``callback`` from the subscription list."""

        if callback in self._subscriptions:
            self._subscriptions.remove(callback)

    def latest(self, task_id: str) -> ProgressUpdate | None:
        return self._latest.get(task_id)

    def _dispatch(self, update: ProgressUpdate) -> None:
        self._latest[update.task_id] = update
        for callback in list(self._subscriptions):
            callback(update)

    # ------------------------------------------------------------------
    # Emission helpers
    @log_call(logger=logger)
    def start(self, task_id: str, message: str = "") -> None:
        update = ProgressUpdate(task_id=task_id, message=message, percent=0.0)
        logger.info("Progress started", extra={"task_id": task_id, "message": message})
        self.progress_started.emit(update)
        self._dispatch(update)

    def update(
        self,
        task_id: str,
        *,
        message: str | None = None,
        percent: float | None = None,
    ) -> None:
        update = ProgressUpdate(
            task_id=task_id,
            message=message or "",
            percent=percent,
        )
        logger.debug(
            "Progress updated",
            extra={"task_id": task_id, "message": update.message, "percent": percent},
        )
        self.progress_updated.emit(update)
        self._dispatch(update)

    @log_call(logger=logger)
    def finish(self, task_id: str, message: str = "") -> None:
        update = ProgressUpdate(task_id=task_id, message=message, percent=100.0)
        logger.info(
            "Progress finished",
            extra={"task_id": task_id, "message": message},
        )
        self.progress_finished.emit(update)
        self._dispatch(update)


__all__ = ["ProgressService", "ProgressUpdate"]
