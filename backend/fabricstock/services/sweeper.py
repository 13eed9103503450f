# Overview: Background auto-completion sweep for Delivered orders.

from __future__ import annotations

import logging
import threading

from flask import Flask

from ..extensions import db

logger = logging.getLogger(__name__)


def run_sweep_once(app: Flask) -> list[str]:
    """One pass of complete_due_orders inside an app context."""
    from .order_service import complete_due_orders

    with app.app_context():
        try:
            return complete_due_orders()
        finally:
            db.session.remove()


class AutoCompletionSweeper:
    """
    Periodically promotes due Delivered orders to Completed.

    Runs server side so that orders complete (and income is recorded) even
    when no client is connected. Each pass is independent: a failed pass is
    logged and the next one runs on schedule.
    """

    def __init__(self, app: Flask, interval_seconds: float = 60.0):
        self.app = app
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="auto-completion-sweeper", daemon=True)
        self._thread.start()
        logger.info("Auto-completion sweeper started (every %ss)", self.interval_seconds)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                run_sweep_once(self.app)
            except Exception:
                logger.exception("Auto-completion sweep failed")
            self._stop.wait(self.interval_seconds)
