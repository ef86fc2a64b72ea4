"""Resolve a user-supplied device hint to a registered device."""

from __future__ import annotations

from plugctl.core.errors import DeviceSelectionError
from plugctl.core.model import ClientDevice


def match_score(device: ClientDevice, hint: str) -> int:
    lowered = hint.strip().lower()
    if lowered.isdigit() and int(lowered) == device.index:
        return 3
    name = device.name.lower()
    if name == lowered:
        return 2
    if lowered and lowered in name:
        return 1
    return 0


def resolve_device(devices: list[ClientDevice], hint: str | None) -> ClientDevice:
    if not devices:
        raise DeviceSelectionError("No devices available. Start scanning or connect a device first.")

    if hint is None:
        if len(devices) > 1:
            candidate_desc = ", ".join(f"{d.index} ({d.name})" for d in devices)
            raise DeviceSelectionError(
                f"Multiple devices available: {candidate_desc}. Use --device to choose one."
            )
        return devices[0]

    scored = [(match_score(device, hint), device) for device in devices]
    best_score = max(score for score, _ in scored)
    if best_score == 0:
        raise DeviceSelectionError(f"No device found matching '{hint}'")

    best = [device for score, device in scored if score == best_score]
    if len(best) > 1:
        candidate_desc = ", ".join(f"{d.index} ({d.name})" for d in best)
        raise DeviceSelectionError(f"Hint '{hint}' matches several devices: {candidate_desc}")
    return best[0]
