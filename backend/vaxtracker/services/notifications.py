"""Transient notifications (toasts) and the input debouncer.

Both own event-loop timers with a fixed delay; a timer is always cancelled
before it is rescheduled so no duplicate callbacks stay pending.
"""

import asyncio
import inspect
import itertools
import logging
from dataclasses import dataclass, asdict
from typing import Callable, Optional

from vaxtracker.config import get_settings

logger = logging.getLogger(__name__)

TOAST_TYPES = ("success", "error", "info", "warning")


@dataclass
class Toast:
    id: int
    message: str
    type: str = "info"

    def to_dict(self) -> dict:
        return asdict(self)


class Notifier:
    def __init__(self, duration_ms: Optional[int] = None):
        duration_ms = duration_ms if duration_ms is not None else get_settings().toast_duration_ms
        self.duration = duration_ms / 1000
        self._ids = itertools.count(1)
        self._toasts: dict[int, Toast] = {}
        self._timers: dict[int, asyncio.TimerHandle] = {}

    @property
    def active(self) -> list[Toast]:
        return list(self._toasts.values())

    def show(self, message: str, type: str = "info") -> Toast:
        if type not in TOAST_TYPES:
            type = "info"
        toast = Toast(id=next(self._ids), message=message, type=type)
        self._toasts[toast.id] = toast
        self._schedule_dismiss(toast.id)
        log = logger.warning if type == "error" else logger.info
        log("Toast [%s] %s", type, message)
        return toast

    def success(self, message: str) -> Toast:
        return self.show(message, "success")

    def error(self, message: str) -> Toast:
        return self.show(message, "error")

    def info(self, message: str) -> Toast:
        return self.show(message, "info")

    def _schedule_dismiss(self, toast_id: int) -> None:
        self._cancel_timer(toast_id)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Outside an event loop toasts stay until dismissed explicitly.
            return
        self._timers[toast_id] = loop.call_later(self.duration, self.dismiss, toast_id)

    def _cancel_timer(self, toast_id: int) -> None:
        handle = self._timers.pop(toast_id, None)
        if handle is not None:
            handle.cancel()

    def dismiss(self, toast_id: int) -> None:
        self._cancel_timer(toast_id)
        self._toasts.pop(toast_id, None)

    def clear(self) -> None:
        for toast_id in list(self._timers):
            self._cancel_timer(toast_id)
        self._toasts.clear()


class Debouncer:
    """Delay calls to ``func`` until ``wait_ms`` passed without a new call."""

    def __init__(self, func: Callable, wait_ms: int):
        self._func = func
        self._wait = wait_ms / 1000
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Future] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def __call__(self, *args, **kwargs) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._wait, self._fire, args, kwargs)

    def _fire(self, args, kwargs) -> None:
        self._handle = None
        result = self._func(*args, **kwargs)
        if inspect.isawaitable(result):
            self._task = asyncio.ensure_future(result)
            self._task.add_done_callback(self._log_failure)

    def _log_failure(self, task: asyncio.Future) -> None:
        if task is self._task:
            self._task = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Debounced call to %s failed: %r", getattr(self._func, "__name__", self._func), exc)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
