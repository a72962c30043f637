"""
Append-only event log.

The log is the source of truth for a workspace. Lines are only ever
appended (and fsync'd); a torn final line left by a crash is ignored on
read and truncated away by the next append.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Sequence

from ..errors import ClarityIOError
from .events import Event

logger = logging.getLogger(__name__)

EVENTS_DIRNAME = "events"
EVENTS_FILENAME = "events.r1.jsonl"


@dataclass(frozen=True)
class RawLine:
    """A non-blank line of an event file, before parsing."""

    path: Path
    line_no: int
    text: str
    terminated: bool  # ends with a newline


class EventLog:
    def __init__(self, workspace_dir: Path):
        self.workspace_dir = Path(workspace_dir)
        self.events_dir = self.workspace_dir / EVENTS_DIRNAME
        self.path = self.events_dir / EVENTS_FILENAME

    def exists(self) -> bool:
        return self.path.exists()

    def files(self) -> list[Path]:
        """All event files, the primary log first, then any other events*.jsonl by name."""
        if not self.events_dir.is_dir():
            return []
        others = sorted(
            p for p in self.events_dir.glob("events*.jsonl") if p.is_file() and p.name != EVENTS_FILENAME
        )
        primary = [self.path] if self.path.is_file() else []
        return primary + others

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def append(self, event: Event) -> None:
        self.append_many([event])

    def append_many(self, events: Sequence[Event]) -> None:
        if not events:
            return
        try:
            self.events_dir.mkdir(parents=True, exist_ok=True)
            fence = self._repair_tail()
            with self.path.open("a", encoding="utf-8") as f:
                if fence:
                    f.write("\n")
                for event in events:
                    f.write(event.to_json() + "\n")
                f.flush()
                os.fsync(f.fileno())
        except OSError as exc:
            raise ClarityIOError(f"append event: {exc}") from exc

    def _repair_tail(self) -> bool:
        """
        Deal with a file that ends without a newline.

        A complete record just needs its newline (returns True). A torn
        fragment is truncated back to the last full line.
        """
        try:
            size = self.path.stat().st_size
        except FileNotFoundError:
            return False
        if size == 0:
            return False
        with self.path.open("rb+") as f:
            f.seek(-1, os.SEEK_END)
            if f.read(1) == b"\n":
                return False
            f.seek(0)
            data = f.read()
            cut = data.rfind(b"\n") + 1
            try:
                json.loads(data[cut:].decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError):
                logger.warning("truncating torn event line in %s", self.path.name)
                f.truncate(cut)
                return False
            return True

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def iter_lines(self) -> Iterator[RawLine]:
        for path in self.files():
            try:
                with path.open("r", encoding="utf-8") as f:
                    for line_no, raw in enumerate(f, start=1):
                        text = raw.strip()
                        if not text:
                            continue
                        yield RawLine(path=path, line_no=line_no, text=text, terminated=raw.endswith("\n"))
            except OSError as exc:
                raise ClarityIOError(f"read events {path}: {exc}") from exc

    def read_events(self) -> list[Event]:
        """
        Parse every event in file order.

        A malformed unterminated final line is a torn write and is skipped.
        Any other malformed line raises ClarityIOError; `clarity doctor`
        reports the details.
        """
        events: list[Event] = []
        for line in self.iter_lines():
            try:
                events.append(Event.from_json(line.text))
            except (json.JSONDecodeError, ValueError) as exc:
                if not line.terminated:
                    logger.warning("ignoring torn event line %s:%d", line.path.name, line.line_no)
                    continue
                raise ClarityIOError(
                    f"malformed event at {line.path.name}:{line.line_no}: {exc} (try: clarity doctor)"
                ) from exc
        return events

    def __iter__(self) -> Iterator[Event]:
        return iter(self.read_events())

    def count(self) -> int:
        return len(self.read_events())
