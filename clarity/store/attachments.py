"""
Attachment files under the workspace.

Files are copied to resources/attachments/<att-id>/<original-name> so they
travel with the workspace through Git. The sha256 of the copied bytes is
recorded so a later reader can verify the file.
"""

from __future__ import annotations

import hashlib
import mimetypes
import os
import shutil
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from ..errors import ClarityIOError, ConflictError, InvalidArgumentError, NotFoundError
from .model import ATTACH_COMMENT, ATTACH_ITEM, Attachment

DEFAULT_MAX_BYTES = 50 * 1024 * 1024
ATTACHMENTS_RELDIR = PurePosixPath("resources") / "attachments"

_CHUNK = 1024 * 1024


@dataclass(frozen=True)
class StoredFile:
    relative_path: str
    original_name: str
    size_bytes: int
    sha256: str
    mime_type: str


def normalize_entity_kind(kind: str) -> str:
    value = (kind or "").strip().lower()
    if value not in (ATTACH_ITEM, ATTACH_COMMENT):
        raise InvalidArgumentError(f"invalid attachment entity kind: {kind!r} (expected item|comment)")
    return value


def guess_mime_type(filename: str) -> str:
    mime, _ = mimetypes.guess_type(filename)
    return mime or ""


class AttachmentStore:
    def __init__(self, workspace_dir: Path):
        self.workspace_dir = Path(workspace_dir)
        self.attachments_dir = self.workspace_dir.joinpath(*ATTACHMENTS_RELDIR.parts)

    def abs_path(self, attachment: Attachment) -> Path:
        """Resolve the attachment's workspace-relative path."""
        rel = PurePosixPath(attachment.path.strip())
        if rel.is_absolute() or ".." in rel.parts:
            raise InvalidArgumentError(f"attachment path escapes workspace: {attachment.path}")
        return self.workspace_dir.joinpath(*rel.parts)

    def copy_in(self, attachment_id: str, src: Path, *, max_bytes: int = DEFAULT_MAX_BYTES) -> StoredFile:
        """Copy `src` into the attachment directory for `attachment_id`."""
        src = Path(src)
        if max_bytes <= 0:
            max_bytes = DEFAULT_MAX_BYTES
        if not src.exists():
            raise NotFoundError("file", str(src))
        if src.is_dir():
            raise InvalidArgumentError(f"attachments: source path is a directory: {src}")
        size = src.stat().st_size
        if size > max_bytes:
            raise InvalidArgumentError(f"attachments: file too large ({size} bytes > {max_bytes} bytes)")

        original_name = src.name or "attachment"
        dest_dir = self.attachments_dir / attachment_id
        dest = dest_dir / original_name
        if dest_dir.exists():
            raise ConflictError(f"attachment directory already exists: {dest_dir}")
        digest = hashlib.sha256()
        written = 0
        try:
            dest_dir.mkdir(parents=True)
            with src.open("rb") as fin, dest.open("xb") as fout:
                while True:
                    chunk = fin.read(_CHUNK)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > max_bytes:
                        break
                    digest.update(chunk)
                    fout.write(chunk)
                fout.flush()
                os.fsync(fout.fileno())
        except OSError as exc:
            shutil.rmtree(dest_dir, ignore_errors=True)
            raise ClarityIOError(f"copy attachment: {exc}") from exc
        if written > max_bytes:
            shutil.rmtree(dest_dir, ignore_errors=True)
            raise InvalidArgumentError(f"attachments: file too large ({written} bytes > {max_bytes} bytes)")

        return StoredFile(
            relative_path=str(ATTACHMENTS_RELDIR / attachment_id / original_name),
            original_name=original_name,
            size_bytes=written,
            sha256=digest.hexdigest(),
            mime_type=guess_mime_type(original_name),
        )

    def export(self, attachment: Attachment, dest: Path) -> Path:
        """Copy an attachment out of the workspace; a directory `dest` keeps the original name."""
        src = self.abs_path(attachment)
        if not src.is_file():
            raise NotFoundError("attachment file", str(src))
        dest = Path(dest)
        if dest.is_dir():
            dest = dest / (attachment.original_name or src.name)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(src, dest)
        except OSError as exc:
            raise ClarityIOError(f"export attachment: {exc}") from exc
        return dest

    def verify(self, attachment: Attachment) -> bool:
        """True if the file exists and its sha256 matches the record."""
        path = self.abs_path(attachment)
        if not path.is_file():
            return False
        digest = hashlib.sha256()
        with path.open("rb") as f:
            for chunk in iter(lambda: f.read(_CHUNK), b""):
                digest.update(chunk)
        return digest.hexdigest() == attachment.sha256
