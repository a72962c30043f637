"""Shared plumbing for command runners: workspace resolution, output, the error boundary."""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Sequence

from rich.console import Console

from ..engine import Engine
from ..errors import ClarityError
from ..gitsync.autosync import maybe_autosync
from ..output import FORMAT_JSON, envelope, write_envelope
from ..workspace.registry import Registry, ResolvedWorkspace

logger = logging.getLogger(__name__)

err_console = Console(stderr=True, highlight=False)


@dataclass
class Runtime:
    """Global options of one invocation."""

    dir_override: str | None = None
    workspace: str | None = None
    actor: str | None = None
    fmt: str = FORMAT_JSON
    pretty: bool = False
    config_dir: Path | None = None
    engines: list[Engine] = field(default_factory=list)
    _resolved: ResolvedWorkspace | None = field(default=None, init=False, repr=False)

    def registry(self) -> Registry:
        return Registry(self.config_dir)

    def resolve(self) -> ResolvedWorkspace:
        if self._resolved is None:
            self._resolved = self.registry().resolve(dir_override=self.dir_override, workspace=self.workspace)
            logger.debug("workspace %s (%s) at %s", self._resolved.name, self._resolved.source, self._resolved.dir)
        return self._resolved

    @property
    def workspace_dir(self) -> Path:
        return self.resolve().dir

    def engine(self) -> Engine:
        eng = Engine.open(self.workspace_dir, actor_id=self.actor or "")
        self.engines.append(eng)
        return eng

    @property
    def mutated(self) -> bool:
        return any(eng.written for eng in self.engines)

    def actor_label(self) -> str:
        for eng in reversed(self.engines):
            if eng.written:
                actor_id = eng.written[-1].actor_id
                actor = eng.agg.find_actor(actor_id)
                return actor.name if actor is not None else actor_id
        return ""

    def emit(
        self,
        data: Any,
        *,
        meta: dict[str, Any] | None = None,
        hints: Sequence[str] | None = None,
    ) -> int:
        write_envelope(envelope(data, meta=meta, hints=hints), fmt=self.fmt, pretty=self.pretty)
        return 0


def warn(message: str) -> None:
    err_console.print(message, style="yellow", markup=False)


def fail(message: str) -> int:
    err_console.print(f"error: {message}", style="bold red", markup=False)
    return 1


def boundary(fn: Callable[..., int]) -> Callable[..., int]:
    """
    Run a command: ClarityError becomes `error: <message>` on stderr and exit 1.

    After a successful command that appended events, best-effort auto-sync
    runs; its failures are warnings only.
    """

    @functools.wraps(fn)
    def wrapper(rt: Runtime, *args: Any, **kwargs: Any) -> int:
        try:
            code = fn(rt, *args, **kwargs)
        except ClarityError as exc:
            logger.debug("%s failed", fn.__name__, exc_info=True)
            return fail(str(exc))
        if code == 0 and rt.mutated:
            maybe_autosync(rt.workspace_dir, actor_label=rt.actor_label(), warn=warn)
        return code

    return wrapper
