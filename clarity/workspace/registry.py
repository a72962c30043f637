"""
Global workspace registry.

The config directory (default ~/.clarity, override CLARITY_CONFIG_DIR)
holds config.json and one directory per local workspace under
workspaces/<name>/. The registry also records workspaces that live
elsewhere, typically Git checkouts (kind "git").
"""

from __future__ import annotations

import json
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .. import settings
from ..errors import ClarityIOError, ConflictError, InvalidArgumentError, NotFoundError
from ..store.store import Store
from ..store.util import atomic_write_text, format_ts, utcnow

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"
WORKSPACES_DIRNAME = "workspaces"
DEFAULT_WORKSPACE = "default"

KIND_LOCAL = "local"
KIND_GIT = "git"

SOURCE_DIR = "dir"
SOURCE_WORKSPACE = "workspace"
SOURCE_CURRENT = "current"
SOURCE_DEFAULT = "default"


def normalize_workspace_name(name: str) -> str:
    """Trim a workspace name; it must be usable as a single directory name."""
    name = (name or "").strip()
    if not name:
        raise InvalidArgumentError("workspace name is empty")
    if name in (".", "..") or "/" in name or "\\" in name:
        raise InvalidArgumentError(f"invalid workspace name: {name!r}")
    return name


@dataclass
class WorkspaceRef:
    path: str
    kind: str = ""
    last_opened: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"path": self.path}
        if self.kind:
            result["kind"] = self.kind
        if self.last_opened:
            result["lastOpened"] = self.last_opened
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkspaceRef:
        return cls(
            path=str(data.get("path") or "").strip(),
            kind=str(data.get("kind") or "").strip(),
            last_opened=str(data.get("lastOpened") or "").strip(),
        )


@dataclass
class GlobalConfig:
    current_workspace: str = ""
    workspaces: dict[str, WorkspaceRef] = field(default_factory=dict)
    archived_workspaces: dict[str, bool] = field(default_factory=dict)
    # Keys written by other front-ends are carried through untouched.
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result = dict(self.extra)
        if self.current_workspace:
            result["currentWorkspace"] = self.current_workspace
        if self.workspaces:
            result["workspaces"] = {name: ref.to_dict() for name, ref in sorted(self.workspaces.items())}
        if self.archived_workspaces:
            result["archivedWorkspaces"] = dict(sorted(self.archived_workspaces.items()))
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GlobalConfig:
        known = {"currentWorkspace", "workspaces", "archivedWorkspaces"}
        refs = data.get("workspaces") or {}
        archived = data.get("archivedWorkspaces") or {}
        return cls(
            current_workspace=str(data.get("currentWorkspace") or "").strip(),
            workspaces={
                str(name).strip(): WorkspaceRef.from_dict(ref)
                for name, ref in refs.items()
                if str(name).strip() and isinstance(ref, dict)
            },
            archived_workspaces={str(k): bool(v) for k, v in archived.items()},
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass
class WorkspaceEntry:
    name: str
    path: str
    kind: str
    registered: bool
    archived: bool = False

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"name": self.name, "path": self.path, "kind": self.kind}
        if self.archived:
            result["archived"] = True
        return result


@dataclass
class ResolvedWorkspace:
    name: str
    dir: Path
    source: str


class Registry:
    """Reads and writes config.json and the local workspaces/ directory."""

    def __init__(self, config_dir: Path | str | None = None):
        self.config_dir = Path(config_dir) if config_dir is not None else settings.config_dir()

    @property
    def config_path(self) -> Path:
        return self.config_dir / CONFIG_FILENAME

    @property
    def workspaces_root(self) -> Path:
        return self.config_dir / WORKSPACES_DIRNAME

    # -------------------------------------------------------------------------
    # config.json
    # -------------------------------------------------------------------------

    def load(self) -> GlobalConfig:
        if not self.config_path.exists():
            return GlobalConfig()
        try:
            data = json.loads(self.config_path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ClarityIOError(f"read {self.config_path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ClarityIOError(f"read {self.config_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ClarityIOError(f"read {self.config_path}: not a JSON object")
        return GlobalConfig.from_dict(data)

    def save(self, config: GlobalConfig) -> None:
        """
        Write config.json atomically.

        The previous content is kept as config.json.bak first.
        """
        text = json.dumps(config.to_dict(), indent=2) + "\n"
        try:
            if self.config_path.exists():
                previous = self.config_path.read_text(encoding="utf-8")
                if previous:
                    atomic_write_text(self.config_path.with_name(CONFIG_FILENAME + ".bak"), previous)
            atomic_write_text(self.config_path, text)
        except OSError as exc:
            raise ClarityIOError(f"write {self.config_path}: {exc}") from exc

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def local_dir(self, name: str) -> Path:
        return self.workspaces_root / normalize_workspace_name(name)

    def workspace_dir(self, name: str, config: GlobalConfig | None = None) -> Path:
        """Registered path for `name`, else its local directory."""
        name = normalize_workspace_name(name)
        config = config or self.load()
        ref = config.workspaces.get(name)
        if ref is not None and ref.path:
            return Path(ref.path)
        return self.local_dir(name)

    def resolve(self, *, dir_override: str | None = None, workspace: str | None = None) -> ResolvedWorkspace:
        """
        Find the workspace directory for a command.

        Order: explicit directory, workspace name, the config's current
        workspace, then "default".
        """
        if dir_override and dir_override.strip():
            path = Path(dir_override.strip()).expanduser()
            return ResolvedWorkspace(name="", dir=path, source=SOURCE_DIR)
        config = self.load()
        if workspace and workspace.strip():
            name = normalize_workspace_name(workspace)
            return ResolvedWorkspace(name, self.workspace_dir(name, config), SOURCE_WORKSPACE)
        if config.current_workspace:
            name = config.current_workspace
            return ResolvedWorkspace(name, self.workspace_dir(name, config), SOURCE_CURRENT)
        return ResolvedWorkspace(DEFAULT_WORKSPACE, self.workspace_dir(DEFAULT_WORKSPACE, config), SOURCE_DEFAULT)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def init(self, name: str) -> tuple[str, Path]:
        """Create a local workspace and make it current."""
        name = normalize_workspace_name(name)
        path = self.local_dir(name)
        store = Store(path, git_guard=False)
        store.ensure()
        if not store.snapshot_path.exists():
            store.save(store.load())
        config = self.load()
        config.current_workspace = name
        self.save(config)
        logger.info("initialized workspace %s at %s", name, path)
        return name, path

    def use(self, name: str) -> tuple[str, Path]:
        name = normalize_workspace_name(name)
        config = self.load()
        path = self.workspace_dir(name, config)
        Store(path, git_guard=False).ensure()
        ref = config.workspaces.get(name)
        if ref is not None:
            ref.last_opened = format_ts(utcnow())
        config.current_workspace = name
        self.save(config)
        return name, path

    def current(self) -> tuple[str, Path]:
        config = self.load()
        name = config.current_workspace or DEFAULT_WORKSPACE
        return name, self.workspace_dir(name, config)

    def add(self, name: str, directory: Path | str, *, kind: str = KIND_GIT, use: bool = False) -> tuple[str, Path]:
        """Register an existing directory under `name`."""
        name = normalize_workspace_name(name)
        if not str(directory).strip():
            raise InvalidArgumentError("missing --dir")
        path = Path(directory).expanduser().resolve()
        if not path.exists():
            raise NotFoundError("directory", str(path))
        if not path.is_dir():
            raise InvalidArgumentError(f"--dir is not a directory: {path}")
        config = self.load()
        config.workspaces[name] = WorkspaceRef(path=str(path), kind=kind.strip(), last_opened=format_ts(utcnow()))
        if use:
            config.current_workspace = name
        self.save(config)
        return name, path

    def forget(self, name: str) -> bool:
        """Drop the registry entry only; files stay where they are."""
        name = normalize_workspace_name(name)
        config = self.load()
        existed = config.workspaces.pop(name, None) is not None
        if config.current_workspace == name:
            config.current_workspace = ""
        self.save(config)
        return existed

    def rename(self, old: str, new: str) -> tuple[str, str]:
        """
        Rename a workspace.

        Registered workspaces are renamed in the registry only. Local
        workspaces have their directory moved.
        """
        old = normalize_workspace_name(old)
        new = normalize_workspace_name(new)
        config = self.load()
        if new in config.workspaces or self.local_dir(new).exists():
            raise ConflictError(f"workspace already exists: {new}")
        ref = config.workspaces.get(old)
        if ref is not None and ref.path:
            del config.workspaces[old]
            config.workspaces[new] = ref
        else:
            src = self.local_dir(old)
            if not src.is_dir():
                raise NotFoundError("workspace", old)
            try:
                shutil.move(str(src), str(self.local_dir(new)))
            except OSError as exc:
                raise ClarityIOError(f"rename workspace {old}: {exc}") from exc
        if config.archived_workspaces.pop(old, None):
            config.archived_workspaces[new] = True
        if (config.current_workspace or DEFAULT_WORKSPACE) == old:
            config.current_workspace = new
        self.save(config)
        return old, new

    def entries(self) -> tuple[list[WorkspaceEntry], str]:
        """Registry entries and local directories, the registry winning on name clashes."""
        config = self.load()
        entries: dict[str, WorkspaceEntry] = {}
        if self.workspaces_root.is_dir():
            for child in sorted(self.workspaces_root.iterdir()):
                if child.is_dir() and child.name.strip():
                    entries[child.name] = WorkspaceEntry(
                        name=child.name, path=str(child), kind=KIND_LOCAL, registered=False
                    )
        for name, ref in config.workspaces.items():
            entries[name] = WorkspaceEntry(
                name=name, path=ref.path, kind=ref.kind or KIND_LOCAL, registered=True
            )
        for name, entry in entries.items():
            entry.archived = bool(config.archived_workspaces.get(name))
        ordered = [entries[name] for name in sorted(entries)]
        return ordered, config.current_workspace or DEFAULT_WORKSPACE
