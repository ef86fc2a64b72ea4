"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from pathlib import Path
from typing import Any

import typer

from plugctl.core.config import load_config
from plugctl.core.device_match import resolve_device
from plugctl.core.errors import PlugctlError
from plugctl.core.model import DeviceEvent
from plugctl.core.session import Session
from plugctl.protocol.messages import (
    DeviceMessage,
    Error,
    RotateCmd,
    RotateSubcommand,
    SpeedSubcommand,
    StopDeviceCmd,
    VibrateCmd,
)

app = typer.Typer(help="Remote device control over a plugctl-compatible WebSocket server")

_SERVER_HELP = "Server WebSocket address (overrides config)"
_COMMANDS = ("vibrate", "rotate", "stop")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")


def _build_session(config_path: Path | None) -> Session:
    loaded = load_config(config_path)
    for warning in loaded.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    return Session(loaded.config)


def _build_command(name: str, speed: float) -> DeviceMessage:
    if name == "vibrate":
        return VibrateCmd(speeds=(SpeedSubcommand(index=0, speed=speed),))
    if name == "rotate":
        return RotateCmd(rotations=(RotateSubcommand(index=0, speed=speed, clockwise=True),))
    if name == "stop":
        return StopDeviceCmd()
    raise typer.BadParameter(f"Unknown command '{name}'. Available: {', '.join(_COMMANDS)}")


def _run(coro: Coroutine[Any, Any, None]) -> None:
    try:
        asyncio.run(coro)
    except PlugctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("info")
def server_info(
    server: str | None = typer.Option(None, "--server", help=_SERVER_HELP),
    config: Path | None = typer.Option(None, "--config", help="Config file path"),
) -> None:
    """Connect and print the server handshake details."""

    async def _info() -> None:
        async with _build_session(config) as session:
            info = await session.connect(server)
            typer.echo(f"Server: {info.server_name}")
            typer.echo(f"Version: {info.major_version}.{info.minor_version}.{info.build_version}")
            typer.echo(f"Message version: {info.message_version}")
            typer.echo(f"Max ping time: {info.max_ping_time} ms")

    _run(_info())


@app.command("devices")
def list_devices(
    server: str | None = typer.Option(None, "--server", help=_SERVER_HELP),
    config: Path | None = typer.Option(None, "--config", help="Config file path"),
) -> None:
    """List devices currently known to the server."""

    async def _devices() -> None:
        async with _build_session(config) as session:
            await session.connect(server)
            devices = await session.request_device_list()
            if not devices:
                typer.echo("No devices connected")
                return
            for device in sorted(devices, key=lambda d: d.index):
                allowed = ", ".join(sorted(device.allowed_messages))
                typer.echo(f"{device.index}: {device.name} [{allowed}]")

    _run(_devices())


@app.command("scan")
def scan(
    duration: float = typer.Option(5.0, "--duration", help="Seconds to scan before stopping"),
    server: str | None = typer.Option(None, "--server", help=_SERVER_HELP),
    config: Path | None = typer.Option(None, "--config", help="Config file path"),
) -> None:
    """Scan for devices and print each one as the server reports it."""

    async def _scan() -> None:
        async with _build_session(config) as session:
            await session.connect(server)
            finished = asyncio.Event()

            def _added(event: DeviceEvent) -> None:
                typer.echo(f"Found {event.device.index}: {event.device.name}")

            session.on_device_added(_added)
            session.on_scanning_finished(lambda _: finished.set())
            if not await session.start_scanning():
                typer.echo("Error: server refused to start scanning", err=True)
                raise typer.Exit(code=1)
            try:
                await asyncio.wait_for(finished.wait(), timeout=duration)
            except TimeoutError:
                await session.stop_scanning()
            typer.echo(f"Scan complete: {len(session.list_devices())} device(s)")

    _run(_scan())


@app.command("send")
def send(
    command: str = typer.Argument(..., help=f"One of: {', '.join(_COMMANDS)}"),
    speed: float = typer.Option(0.5, "--speed", min=0.0, max=1.0, help="Speed between 0 and 1"),
    device: str | None = typer.Option(None, "--device", help="Device index or partial name"),
    server: str | None = typer.Option(None, "--server", help=_SERVER_HELP),
    config: Path | None = typer.Option(None, "--config", help="Config file path"),
) -> None:
    """Send a command to one device."""
    message = _build_command(command, speed)

    async def _send() -> None:
        async with _build_session(config) as session:
            await session.connect(server)
            target = resolve_device(await session.request_device_list(), device)
            reply = await session.send_device_message(target, message)
            if isinstance(reply, Error):
                typer.echo(f"Error: {reply.error_message}", err=True)
                raise typer.Exit(code=1)
            typer.echo(f"Sent {message.kind} to {target.index} ({target.name})")

    _run(_send())


@app.command("stop")
def stop_all(
    server: str | None = typer.Option(None, "--server", help=_SERVER_HELP),
    config: Path | None = typer.Option(None, "--config", help="Config file path"),
) -> None:
    """Stop every device on the server."""

    async def _stop() -> None:
        async with _build_session(config) as session:
            await session.connect(server)
            if not await session.stop_all_devices():
                typer.echo("Error: server refused to stop devices", err=True)
                raise typer.Exit(code=1)
            typer.echo("Stopped all devices")

    _run(_stop())


def run() -> None:
    app()


if __name__ == "__main__":
    run()
