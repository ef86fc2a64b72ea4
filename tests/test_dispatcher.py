from __future__ import annotations

import asyncio

import pytest

from plugctl.core.dispatcher import (
    DEVICE_ADDED,
    DEVICE_REMOVED,
    ERROR,
    LOG,
    MESSAGE,
    SCANNING_FINISHED,
    EventDispatcher,
)
from plugctl.core.model import DeviceAction
from plugctl.core.registry import DeviceRegistry
from plugctl.protocol.messages import DeviceAdded, DeviceRemoved, Error, Log, Ok, ScanningFinished


def _dispatcher() -> tuple[EventDispatcher, DeviceRegistry]:
    registry = DeviceRegistry()
    return EventDispatcher(registry), registry


def test_unknown_event_name_is_rejected() -> None:
    dispatcher, _ = _dispatcher()

    with pytest.raises(ValueError, match="Unknown event 'bogus'"):
        dispatcher.subscribe("bogus", print)


@pytest.mark.asyncio
async def test_observers_run_after_dispatch_returns() -> None:
    dispatcher, registry = _dispatcher()
    events = []
    dispatcher.subscribe(DEVICE_ADDED, events.append)

    dispatcher.dispatch(DeviceAdded(id=0, device_name="X", device_index=3, device_messages=("VibrateCmd",)))

    assert events == []
    assert 3 in registry
    await asyncio.sleep(0)
    assert [(e.action, e.device.name) for e in events] == [(DeviceAction.ADDED, "X")]


@pytest.mark.asyncio
async def test_routes_each_kind_to_its_event() -> None:
    dispatcher, registry = _dispatcher()
    seen: list[tuple[str, object]] = []
    for event in (DEVICE_ADDED, DEVICE_REMOVED, SCANNING_FINISHED, ERROR, LOG, MESSAGE):
        dispatcher.subscribe(event, lambda payload, event=event: seen.append((event, payload)))

    dispatcher.dispatch(DeviceAdded(id=0, device_name="X", device_index=1))
    dispatcher.dispatch(DeviceRemoved(id=0, device_index=1))
    dispatcher.dispatch(ScanningFinished(id=0))
    dispatcher.dispatch(Error(id=0, error_message="boom"))
    dispatcher.dispatch(Log(id=0, log_level="Info", log_message="hi"))
    dispatcher.dispatch(Ok(id=0))
    await asyncio.sleep(0)

    assert [event for event, _ in seen] == [
        MESSAGE,
        DEVICE_ADDED,
        MESSAGE,
        DEVICE_REMOVED,
        MESSAGE,
        SCANNING_FINISHED,
        MESSAGE,
        ERROR,
        MESSAGE,
        LOG,
        MESSAGE,
    ]
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_failing_and_async_observers_are_isolated(caplog: pytest.LogCaptureFixture) -> None:
    dispatcher, _ = _dispatcher()
    delivered: list[str] = []

    def _broken(message: Log) -> None:
        raise RuntimeError("observer bug")

    async def _async(message: Log) -> None:
        await asyncio.sleep(0)
        delivered.append("async")
        raise RuntimeError("async observer bug")

    dispatcher.subscribe(LOG, _broken)
    dispatcher.subscribe(LOG, _async)
    dispatcher.subscribe(LOG, lambda message: delivered.append("sync"))

    dispatcher.dispatch(Log(id=0, log_level="Info", log_message="hi"))
    await asyncio.sleep(0.01)

    assert delivered == ["sync", "async"]
    assert "observer bug" in caplog.text
    assert "async observer bug" in caplog.text


@pytest.mark.asyncio
async def test_unsubscribe_is_idempotent() -> None:
    dispatcher, _ = _dispatcher()
    seen = []
    unsubscribe = dispatcher.subscribe(SCANNING_FINISHED, seen.append)

    unsubscribe()
    unsubscribe()
    dispatcher.dispatch(ScanningFinished(id=0))
    await asyncio.sleep(0)

    assert seen == []
