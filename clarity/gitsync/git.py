"""Thin subprocess wrapper around the git CLI."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from ..errors import SyncError

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)


class GitCommandError(SyncError):
    """Raised when a git subprocess command exits non-zero."""

    def __init__(
        self,
        *,
        command: Sequence[str],
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        message = f"git command failed ({returncode}): {' '.join(command)}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


class GitNotFoundError(SyncError):
    def __init__(self) -> None:
        super().__init__("git executable not found on PATH")


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Normalized subprocess result."""

    command: tuple[str, ...]
    cwd: str
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def combined_output(self) -> str:
        return (self.stdout + "\n" + self.stderr).strip()


def git_available() -> bool:
    return shutil.which("git") is not None


class Git:
    """Runs git in one working directory, optionally with a timeout per call."""

    def __init__(self, cwd: Path | str, *, timeout: float | None = None) -> None:
        self.cwd = Path(cwd)
        self.timeout = timeout

    def run(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
        input_text: str | None = None,
    ) -> CommandResult:
        command = ("git", *args)
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"

        logger.debug("git %s (cwd=%s)", " ".join(args), self.cwd)
        try:
            completed = subprocess.run(
                command,
                cwd=self.cwd,
                env=env,
                text=True,
                capture_output=True,
                input=input_text,
                check=False,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise GitNotFoundError() from exc
        except subprocess.TimeoutExpired as exc:
            raise SyncError(f"git {' '.join(args)} timed out after {self.timeout}s") from exc

        result = CommandResult(
            command=command,
            cwd=self.cwd.as_posix(),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )

        if check and result.returncode != 0:
            raise GitCommandError(
                command=result.command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )

        return result

    def output(self, args: Sequence[str]) -> str:
        """Stdout of a successful command, stripped."""
        return self.run(args).stdout.strip()

    def try_output(self, args: Sequence[str]) -> str:
        """Stdout stripped, or "" when the command fails."""
        result = self.run(args, check=False)
        return result.stdout.strip() if result.ok else ""

    def succeeds(self, args: Sequence[str]) -> bool:
        return self.run(args, check=False).ok
