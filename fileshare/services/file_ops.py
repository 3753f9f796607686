from __future__ import annotations

import logging
import os
import posixpath
import stat
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import BinaryIO

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 1024 * 1024


class PathDenied(PermissionError):
    """Requested path resolves outside the server root."""


class InvalidPath(ValueError):
    pass


@dataclass(frozen=True)
class FileEntry:
    name: str
    path: str
    size: int
    mtime: datetime
    is_dir: bool


def validate_path(requested_path: str, root: str | Path) -> Path:
    """Join ``requested_path`` onto ``root`` and normalise it without touching the disk.

    Raises PathDenied when the result is neither the root nor below it.
    """
    if '\x00' in requested_path:
        raise InvalidPath('Invalid path')
    base = Path(os.path.abspath(root))
    candidate = Path(os.path.normpath(os.path.join(base, requested_path.lstrip('/'))))
    if base != candidate and base not in candidate.parents:
        raise PathDenied('Access denied')
    return candidate


def parent_path(rel: str) -> str:
    if not rel:
        return ''
    parent = posixpath.dirname(rel.strip('/'))
    return '' if parent == '.' else parent


def breadcrumbs(rel: str) -> list[tuple[str, str]]:
    crumbs: list[tuple[str, str]] = []
    current = ''
    for part in rel.strip('/').split('/'):
        if not part:
            continue
        current = posixpath.join(current, part)
        crumbs.append((part, current))
    return crumbs


def upload_filename(filename: str | None) -> str:
    """Reduce a client-supplied filename to its last path component."""
    name = (filename or '').replace('\\', '/').rsplit('/', 1)[-1].strip()
    if name in {'', '.', '..'}:
        raise InvalidPath('Invalid filename')
    return name


class FileOps:
    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    def safe_path(self, rel: str) -> Path:
        """Resolve ``rel`` under the root, refusing symlinks that lead outside it."""
        try:
            target = validate_path(rel, self.root)
            self.ensure_contained(target)
        except PathDenied:
            logger.warning('Denied path outside root: %r', rel)
            raise
        return target

    def ensure_contained(self, target: Path) -> None:
        real = target.resolve(strict=False)
        if real != self.root and self.root not in real.parents:
            raise PathDenied('Access denied')

    def relative(self, target: Path) -> str:
        if target == self.root:
            return ''
        return target.relative_to(self.root).as_posix()

    def list_dir(self, rel: str) -> list[FileEntry]:
        target = self.safe_path(rel)
        if not target.is_dir():
            raise FileNotFoundError('Directory not found')

        current = self.relative(target)
        items: list[FileEntry] = []
        for entry in target.iterdir():
            try:
                st = entry.stat()
            except OSError:
                logger.debug('Skipping unreadable entry %s', entry.name)
                continue
            items.append(
                FileEntry(
                    name=entry.name,
                    path=posixpath.join(current, entry.name),
                    size=st.st_size,
                    mtime=datetime.fromtimestamp(st.st_mtime),
                    is_dir=stat.S_ISDIR(st.st_mode),
                )
            )
        return items

    def receive_upload(self, rel: str, filename: str | None, stream: BinaryIO) -> tuple[Path, int]:
        target_dir = self.safe_path(rel) if rel else self.root
        name = upload_filename(filename)
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / name
        self.ensure_contained(target)

        written = 0
        with target.open('wb') as f:
            while chunk := stream.read(UPLOAD_CHUNK_SIZE):
                f.write(chunk)
                written += len(chunk)
            f.flush()
            os.fsync(f.fileno())
        logger.info('Stored upload %s (%d bytes)', self.relative(target), written)
        return target, written
