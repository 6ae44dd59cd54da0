"""File sources for copy operations.

Two kinds of sources are supported:

- local directory trees (workspaces and legacy artifact directories),
  exposed per file as `PathFileInfo`, which knows about symbolic links,
  modes and modification times;
- virtual artifact roots (`VirtualFile`), exposed per file as
  `VirtualFileInfo`, which only knows about content and modification
  times. `ZipVirtualFile` serves artifacts archived in a zip file and
  `LocalVirtualFile` serves a plain directory through the same interface.
"""

from __future__ import annotations

import os
import stat
import time
import zipfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, BinaryIO, ContextManager, Iterator

from buildcopy.core.globs import GlobMatcher

if TYPE_CHECKING:
    from buildcopy.core.context import CopyContext


def is_safe_relative_path(rel_path: str) -> bool:
    """Whether a relative path stays below the directory it is joined to."""
    path = PurePosixPath(rel_path.replace("\\", "/"))
    if path.is_absolute() or ".." in path.parts:
        return False
    return not (path.parts and ":" in path.parts[0])


class FileInfo(ABC):
    """One matched source file."""

    def __init__(self, relative_path: str):
        self.relative_path = relative_path

    @property
    def filename(self) -> str:
        """Bare file name (used when flattening)."""
        return PurePosixPath(self.relative_path).name

    def relative_from(self, base: Path) -> Path:
        """Destination of this file below `base`, keeping its relative path."""
        return base.joinpath(*PurePosixPath(self.relative_path).parts)

    @abstractmethod
    def open(self) -> ContextManager[BinaryIO]:
        """Open the file content for reading."""
        ...

    def symlink_target(self) -> str | None:
        """Target of the file if it is a symbolic link."""
        return None

    def copy_meta_info_to(self, dest: Path, context: CopyContext) -> None:
        """Propagate metadata (mode, mtime) to the copied file."""


class PathFileInfo(FileInfo):
    """A file in a local directory tree."""

    def __init__(self, src: Path, base_dir: Path):
        super().__init__(src.relative_to(base_dir).as_posix())
        self.src = src

    @contextmanager
    def open(self) -> Iterator[BinaryIO]:
        with self.src.open("rb") as stream:
            yield stream

    def symlink_target(self) -> str | None:
        if self.src.is_symlink():
            return os.readlink(self.src)
        return None

    def copy_meta_info_to(self, dest: Path, context: CopyContext) -> None:
        try:
            dest.chmod(stat.S_IMODE(self.src.stat().st_mode))
        except OSError as exc:
            context.log_exception(f"could not check mode of {self.src}", exc)
        try:
            mtime = self.src.stat().st_mtime
            os.utime(dest, (mtime, mtime))
        except OSError as exc:
            context.log_exception("Failed to set last modification time", exc)


class VirtualFile(ABC):
    """A file or directory in an artifact store."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Last path segment."""
        ...

    @abstractmethod
    def exists(self) -> bool:
        """Whether the file or directory exists."""
        ...

    @abstractmethod
    def child(self, path: str) -> VirtualFile:
        """Return a descendant by relative path."""
        ...

    @abstractmethod
    def list(self, includes: str, excludes: str | None = None) -> list[str]:
        """Return relative paths of files below this directory matching the patterns."""
        ...

    @abstractmethod
    def open(self) -> ContextManager[BinaryIO]:
        """Open the file content for reading."""
        ...

    @abstractmethod
    def last_modified(self) -> float:
        """Modification time as a POSIX timestamp."""
        ...


class LocalVirtualFile(VirtualFile):
    """A directory tree on the local filesystem."""

    def __init__(self, path: Path):
        self.path = path

    @property
    def name(self) -> str:
        return self.path.name

    def exists(self) -> bool:
        return self.path.exists()

    def child(self, path: str) -> LocalVirtualFile:
        return LocalVirtualFile(self.path.joinpath(*PurePosixPath(path).parts))

    def list(self, includes: str, excludes: str | None = None) -> list[str]:
        if not self.path.is_dir():
            return []
        return list(GlobMatcher(includes, excludes).scan(self.path))

    @contextmanager
    def open(self) -> Iterator[BinaryIO]:
        with self.path.open("rb") as stream:
            yield stream

    def last_modified(self) -> float:
        return self.path.stat().st_mtime


class ZipVirtualFile(VirtualFile):
    """
    A directory or file inside a zip archive.

    Args:
        archive: Path of the zip file.
        member: Slash-separated path inside the archive ("" for the root).
    """

    def __init__(self, archive: Path, member: str = ""):
        self.archive = archive
        self.member = member.strip("/")

    @property
    def name(self) -> str:
        return PurePosixPath(self.member).name if self.member else self.archive.stem

    @contextmanager
    def _open_archive(self) -> Iterator[zipfile.ZipFile]:
        try:
            with zipfile.ZipFile(self.archive) as zf:
                yield zf
        except zipfile.BadZipFile as exc:
            raise OSError(f"Corrupt artifact archive {self.archive}: {exc}") from exc

    def _names(self) -> list[str]:
        with self._open_archive() as zf:
            return [n for n in zf.namelist() if not n.endswith("/")]

    def exists(self) -> bool:
        if not self.archive.is_file():
            return False
        if not self.member:
            return True
        prefix = self.member + "/"
        return any(n == self.member or n.startswith(prefix) for n in self._names())

    def child(self, path: str) -> ZipVirtualFile:
        member = f"{self.member}/{path.strip('/')}" if self.member else path
        return ZipVirtualFile(self.archive, member)

    def list(self, includes: str, excludes: str | None = None) -> list[str]:
        if not self.archive.is_file():
            return []
        prefix = self.member + "/" if self.member else ""
        rel_paths = [n[len(prefix):] for n in self._names() if n.startswith(prefix)]
        # members like "../x" or "/x" would land outside the target directory
        return GlobMatcher(includes, excludes).filter([p for p in rel_paths if is_safe_relative_path(p)])

    @contextmanager
    def open(self) -> Iterator[BinaryIO]:
        with self._open_archive() as zf, zf.open(self.member) as stream:
            yield stream

    def last_modified(self) -> float:
        with self._open_archive() as zf:
            info = zf.getinfo(self.member)
        return time.mktime(info.date_time + (0, 0, -1))


class VirtualFileInfo(FileInfo):
    """A file below a virtual artifact root."""

    def __init__(self, root: VirtualFile, relative_path: str):
        super().__init__(relative_path)
        self.file = root.child(relative_path)

    def open(self) -> ContextManager[BinaryIO]:
        return self.file.open()

    def copy_meta_info_to(self, dest: Path, context: CopyContext) -> None:
        try:
            mtime = self.file.last_modified()
            os.utime(dest, (mtime, mtime))
        except (OSError, KeyError) as exc:
            context.log_exception("Failed to set last modification time", exc)
