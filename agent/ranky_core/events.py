"""
Editor event records + stdin event source.

The host editor (or any plugin bridge) writes one JSON object per line:
  {"type": "edit", "language": "python", "text": "x = 1", "rangeLength": 0}
  {"type": "focus", "focused": false}
  {"type": "command", "command": "show-current-stats"}
  {"type": "shutdown"}

Records are closed: unknown fields are dropped at this boundary.
The reader runs on a daemon thread and only ever touches the event loop
through call_soon_threadsafe. It never mutates agent state itself.
"""

import json
import threading
from dataclasses import dataclass

from .config import log


@dataclass(frozen=True)
class EditEvent:
    language: str
    inserted_text: str
    replaced_length: int = 0


@dataclass(frozen=True)
class FocusEvent:
    focused: bool


@dataclass(frozen=True)
class CommandEvent:
    command: str


@dataclass(frozen=True)
class ShutdownEvent:
    pass


class EventFormatError(ValueError):
    """Line could not be parsed into a known event record."""


def parse_event(line):
    """Parse one JSON line into an event record. Raises EventFormatError."""
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise EventFormatError(f"not JSON: {e}") from e
    if not isinstance(data, dict):
        raise EventFormatError("event must be a JSON object")

    kind = data.get("type")
    if kind == "edit":
        language = data.get("language")
        text = data.get("text", "")
        range_length = data.get("rangeLength", 0)
        if not isinstance(language, str) or not isinstance(text, str):
            raise EventFormatError("edit needs string 'language' and 'text'")
        if not isinstance(range_length, int) or isinstance(range_length, bool) or range_length < 0:
            raise EventFormatError("edit 'rangeLength' must be a non-negative integer")
        return EditEvent(language=language, inserted_text=text, replaced_length=range_length)
    if kind == "focus":
        focused = data.get("focused")
        if not isinstance(focused, bool):
            raise EventFormatError("focus needs boolean 'focused'")
        return FocusEvent(focused=focused)
    if kind == "command":
        command = data.get("command")
        if not isinstance(command, str) or not command:
            raise EventFormatError("command needs string 'command'")
        return CommandEvent(command=command)
    if kind == "shutdown":
        return ShutdownEvent()
    raise EventFormatError(f"unknown event type: {kind!r}")


class StdinEventSource:
    """
    Reads JSON lines from a text stream on a background thread and feeds
    parsed events to `deliver(event)` on the loop. End of stream becomes a
    ShutdownEvent, so closing the pipe shuts the agent down cleanly.
    """

    def __init__(self, stream, loop, deliver):
        self._stream = stream
        self._loop = loop
        self._deliver = deliver
        self._thread = None

    def start(self):
        self._thread = threading.Thread(target=self._read_loop, name="event-reader", daemon=True)
        self._thread.start()
        log.info("Event reader started")

    def _read_loop(self):
        try:
            for line in self._stream:
                line = line.strip()
                if not line:
                    continue
                try:
                    event = parse_event(line)
                except EventFormatError as e:
                    log.warning("Ignoring malformed event: %s", e)
                    continue
                self._loop.call_soon_threadsafe(self._deliver, event)
        except (OSError, ValueError) as e:
            log.warning("Event stream error: %s", e)
        finally:
            try:
                self._loop.call_soon_threadsafe(self._deliver, ShutdownEvent())
            except RuntimeError:
                pass  # loop already closed
