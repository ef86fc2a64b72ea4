"""Fan-out of unsolicited server messages to registered observers."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from plugctl.core.model import ClientDevice, DeviceAction, DeviceEvent
from plugctl.core.registry import DeviceRegistry
from plugctl.protocol.messages import (
    DeviceAdded,
    DeviceRemoved,
    Error,
    Log,
    Message,
    ScanningFinished,
)

LOGGER = logging.getLogger(__name__)

DEVICE_ADDED = "device_added"
DEVICE_REMOVED = "device_removed"
SCANNING_FINISHED = "scanning_finished"
ERROR = "error"
LOG = "log"
MESSAGE = "message"

EVENTS = (DEVICE_ADDED, DEVICE_REMOVED, SCANNING_FINISHED, ERROR, LOG, MESSAGE)

Observer = Callable[[Any], Any]


class EventDispatcher:
    """Routes unsolicited messages to observers and keeps the registry current.

    Observers are never called inline. Each delivery is queued on the running
    event loop in arrival order, so a slow or failing observer cannot hold up
    decoding of later messages. Coroutine observers are run as tasks.
    """

    def __init__(self, registry: DeviceRegistry) -> None:
        self._registry = registry
        self._observers: dict[str, list[Observer]] = {event: [] for event in EVENTS}
        self._tasks: set[asyncio.Task[Any]] = set()

    def subscribe(self, event: str, callback: Observer) -> Callable[[], None]:
        if event not in self._observers:
            raise ValueError(f"Unknown event '{event}'. Expected one of: {', '.join(EVENTS)}")
        self._observers[event].append(callback)

        def _unsubscribe() -> None:
            if callback in self._observers[event]:
                self._observers[event].remove(callback)

        return _unsubscribe

    def dispatch(self, message: Message) -> None:
        self.notify(MESSAGE, message)

        if isinstance(message, DeviceAdded):
            device = ClientDevice.from_message(message)
            self._registry.upsert(device)
            self.notify(DEVICE_ADDED, DeviceEvent(device=device, action=DeviceAction.ADDED))
        elif isinstance(message, DeviceRemoved):
            removed = self._registry.remove(message.device_index)
            if removed is not None:
                self.notify(DEVICE_REMOVED, DeviceEvent(device=removed, action=DeviceAction.REMOVED))
        elif isinstance(message, ScanningFinished):
            self.notify(SCANNING_FINISHED, message)
        elif isinstance(message, Error):
            self.notify(ERROR, message)
        elif isinstance(message, Log):
            self.notify(LOG, message)
        else:
            LOGGER.debug("Ignoring unsolicited %s message", message.kind)

    def notify(self, event: str, payload: Any) -> None:
        observers = list(self._observers[event])
        if not observers:
            return
        loop = asyncio.get_running_loop()
        for callback in observers:
            loop.call_soon(self._deliver, callback, payload)

    def _deliver(self, callback: Observer, payload: Any) -> None:
        try:
            result = callback(payload)
        except Exception:
            LOGGER.exception("Observer %r raised", callback)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Observer task raised: %s", exc, exc_info=exc)
