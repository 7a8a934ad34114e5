"""Single-byte pan/tilt command codes written onto a discovered peer."""

from __future__ import annotations

import asyncio
from enum import IntEnum

from station.scanner.engine import EstablishedConnection


class Command(IntEnum):
    TILT_UP = 0
    TILT_DOWN = 1
    TILT_OFF = 2
    PAN_RIGHT = 3
    PAN_LEFT = 4
    PAN_OFF = 5

    def to_byte(self) -> bytes:
        return bytes([self.value])


ALIASES = {
    "up": Command.TILT_UP,
    "down": Command.TILT_DOWN,
    "tilt-off": Command.TILT_OFF,
    "right": Command.PAN_RIGHT,
    "left": Command.PAN_LEFT,
    "pan-off": Command.PAN_OFF,
}


def parse_command(raw: str) -> Command:
    """Parse a command by enum name (``TILT_UP``), short alias (``up``) or code (``0``)."""
    text = raw.strip()
    if text.isdigit():
        return Command(int(text))
    alias = ALIASES.get(text.lower().replace("_", "-"))
    if alias is not None:
        return alias
    try:
        return Command[text.upper().replace("-", "_")]
    except KeyError:
        raise ValueError(f"unknown command: {raw!r}") from None


async def send_command(target: EstablishedConnection | asyncio.StreamWriter, command: Command) -> None:
    """Write one command byte and wait for the transport buffer to drain."""
    writer = target.writer if isinstance(target, EstablishedConnection) else target
    writer.write(command.to_byte())
    await writer.drain()
