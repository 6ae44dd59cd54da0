"""Copy operations: the file pipeline run against a selected build.

An operation copies the files of one source build into the copier's
workspace:

1. configured strings are expanded through the context variables;
2. composite sources fan out (module sets copy the top-level build and
   then every module build; matrix builds copy every configuration run
   into a sub-directory named after the configuration);
3. each direct copy creates the target directory, runs `init`, scans the
   source for matching files, copies them one by one and finally runs
   `end`, which attaches the fingerprints to both builds.

`end` runs on every exit path. I/O errors and `CopyInterrupted`
propagate to the caller after it.
"""

from __future__ import annotations

import hashlib
import os
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator

from buildcopy.core.builds import Build, JobKind
from buildcopy.core.context import CopyContext, OperationContext
from buildcopy.core.files import FileInfo, PathFileInfo, VirtualFileInfo, is_safe_relative_path
from buildcopy.core.globs import GlobMatcher

_CHUNK_SIZE = 64 * 1024


class CopyInterrupted(Exception):
    """Raised when the caller cancels a running scan or copy."""


class CopyResult(str, Enum):
    """Outcome of a copy operation."""

    NOTHING_TO_DO = "NothingToDo"
    SUCCEEDED = "Succeeded"

    def merge(self, other: CopyResult) -> CopyResult:
        """Combine two outcomes; SUCCEEDED dominates."""
        if self is CopyResult.SUCCEEDED or other is CopyResult.SUCCEEDED:
            return CopyResult.SUCCEEDED
        return CopyResult.NOTHING_TO_DO


def _check_cancelled(context: CopyContext) -> None:
    if context.cancelled:
        raise CopyInterrupted(f"Copy from {context.src.full_display_name} was interrupted")


def _new_digest():
    return hashlib.md5(usedforsecurity=False)


class CopyOperation(ABC):
    """
    Base class of copy operations.

    Args:
        target_dir: Directory below the workspace to copy into ("" for the
                    workspace itself). Variables are expanded.
        src_base_dir: Directory below the source root to scan from.
        includes: Comma-separated include globs. Blank means everything.
        excludes: Comma-separated exclude globs. Blank means nothing.
        flatten: Drop directory structure and copy into the target directly.
        fingerprint_artifacts: Compute MD5 fingerprints of copied files.
    """

    display_name: str = "Copy operation"

    def __init__(
        self,
        target_dir: str | None = "",
        src_base_dir: str | None = "",
        includes: str | None = "",
        excludes: str | None = "",
        flatten: bool = False,
        fingerprint_artifacts: bool = True,
    ):
        self.target_dir = (target_dir or "").strip()
        self.src_base_dir = (src_base_dir or "").strip()
        self.includes = (includes or "").strip()
        self.excludes = (excludes or "").strip()
        self.flatten = flatten
        self.fingerprint_artifacts = fingerprint_artifacts

    def copy_configuration(self, other: CopyOperation) -> None:
        """Take over the configuration of another operation."""
        self.target_dir = other.target_dir
        self.src_base_dir = other.src_base_dir
        self.includes = other.includes
        self.excludes = other.excludes
        self.flatten = other.flatten
        self.fingerprint_artifacts = other.fingerprint_artifacts

    def perform(self, src: Build, operation_context: OperationContext) -> CopyResult:
        """
        Copy the matching files of `src` into the context's workspace.

        Args:
            src: The selected build.
            operation_context: Invocation state (workspace, copier build,
                               variables, fingerprint store).

        Returns:
            SUCCEEDED if at least one file was copied, NOTHING_TO_DO otherwise.

        Raises:
            OSError: On I/O failure while scanning or copying.
            CopyInterrupted: If the context's cancel event was set.
        """
        context = CopyContext.from_operation_context(operation_context, src=src)
        env = context.env
        context.target_dir_path = env.expand(self.target_dir) if self.target_dir else ""
        context.src_base_dir = env.expand(self.src_base_dir) if self.src_base_dir else ""
        context.includes = env.expand(self.includes).strip() or "**"
        context.excludes = env.expand(self.excludes).strip() or None
        context.flatten = self.flatten
        context.fingerprint_artifacts = self.fingerprint_artifacts

        if src.kind is JobKind.MODULE_SET:
            result = self._copy_from_direct(context)
            for module_build in src.module_builds.values():
                child = context.clone()
                child.src = module_build
                result = result.merge(self._copy_from_direct(child))
            return result

        if src.kind is JobKind.MATRIX:
            result = CopyResult.NOTHING_TO_DO
            for run in src.runs:
                child = context.clone()
                child.src = run
                child.target_base_dir = context.target_base_dir / run.job_short_name
                result = result.merge(self._copy_from_direct(child))
            return result

        return self._copy_from_direct(context)

    def _copy_from_direct(self, context: CopyContext) -> CopyResult:
        context.log_debug("Copying artifacts from %s", context.src.full_display_name)
        context.target_dir.mkdir(parents=True, exist_ok=True)
        context.fingerprint_map = {}

        try:
            if not self.init(context):
                return CopyResult.NOTHING_TO_DO

            count = 0
            for file in self.scan_files_to_copy(context):
                _check_cancelled(context)
                if not is_safe_relative_path(file.relative_path):
                    context.log_info("Skipping %s: it points outside the target directory", file.relative_path)
                    continue
                if context.flatten:
                    dest = context.target_dir / file.filename
                else:
                    dest = file.relative_from(context.target_dir)
                context.log_debug("Copying to %s", dest)
                self.copy_one(file, dest, context)
                count += 1

            context.log_info(
                "Copied %d artifact%s from \"%s\" build number %d",
                count,
                "" if count == 1 else "s",
                context.src.job_name,
                context.src.number,
            )
            return CopyResult.SUCCEEDED if count > 0 else CopyResult.NOTHING_TO_DO
        finally:
            self.end(context)

    def copy_one(self, file: FileInfo, dest: Path, context: CopyContext) -> None:
        """Copy one file (or symbolic link) and record its fingerprint."""
        target = context.target_dir.resolve()
        if not dest.parent.resolve().is_relative_to(target):
            raise OSError(f"Refusing to write {dest} outside of {context.target_dir}")
        dest.parent.mkdir(parents=True, exist_ok=True)
        if dest.is_symlink() or dest.exists():
            dest.unlink()

        link = file.symlink_target()
        if link is not None:
            os.symlink(link, dest)
            context.copied_files.append((context.src, self._copied_name(file, context)))
            return

        digest = context.digest
        with file.open() as stream, dest.open("wb") as out:
            while True:
                _check_cancelled(context)
                chunk = stream.read(_CHUNK_SIZE)
                if not chunk:
                    break
                out.write(chunk)
                if digest is not None:
                    digest.update(chunk)

        file.copy_meta_info_to(dest, context)

        if digest is not None:
            hex_digest = digest.hexdigest()
            store = context.fingerprint_store
            if store is not None:
                record = store.get_or_create(context.src, file.filename, hex_digest)
                record.associate(context.src)
                record.associate(context.copier_build)
            context.fingerprint_map[file.filename] = hex_digest
            context.digest = _new_digest()
        context.copied_files.append((context.src, self._copied_name(file, context)))

    @staticmethod
    def _copied_name(file: FileInfo, context: CopyContext) -> str:
        return file.filename if context.flatten else file.relative_path

    def init(self, context: CopyContext) -> bool:
        """
        Prepare a direct copy.

        Returns:
            False when the source has nothing to copy from.
        """
        context.digest = _new_digest() if context.fingerprint_artifacts else None
        context.fingerprint_map = {}
        return True

    def end(self, context: CopyContext) -> None:
        """Attach recorded fingerprints to the source and copier builds."""
        if not context.fingerprint_map:
            return
        for build in (context.src, context.copier_build):
            build.add_fingerprints(context.fingerprint_map)

    @abstractmethod
    def scan_files_to_copy(self, context: CopyContext) -> Iterable[FileInfo]:
        """Enumerate matching files of `context.src`."""
        ...


class FilePathCopyOperation(CopyOperation):
    """Operation copying from a directory tree on the local filesystem."""

    @abstractmethod
    def src_dir(self, context: CopyContext) -> Path | None:
        """Root directory to copy from, or None if unavailable."""
        ...

    def init(self, context: CopyContext) -> bool:
        if self.src_dir(context) is None:
            return False
        return super().init(context)

    def scan_files_to_copy(self, context: CopyContext) -> Iterator[PathFileInfo]:
        src_dir = self.src_dir(context)
        if src_dir is None:
            return
        if context.src_base_dir:
            src_dir = src_dir / context.src_base_dir
            if not src_dir.is_dir():
                return
        for rel_path in GlobMatcher(context.includes, context.excludes).scan(src_dir):
            _check_cancelled(context)
            yield PathFileInfo(src_dir / rel_path, src_dir)


class CopyWorkspaceFiles(FilePathCopyOperation):
    """Copy files from the workspace of the source build."""

    display_name = "Copy workspace files"

    def src_dir(self, context: CopyContext) -> Path | None:
        src = context.src
        if src.kind is JobKind.WORKFLOW:
            context.log_info("Workspaces are not available for %s builds.", src.kind.value)
            return None
        if src.workspace is None or not src.workspace.is_dir():
            context.log_info("Workspace of %s is missing", src.full_display_name)
            return None
        return src.workspace


class CopyLegacyArtifactFiles(FilePathCopyOperation):
    """Copy archived artifacts from the build's artifacts directory."""

    display_name = "Copy artifacts (artifacts directory)"

    def src_dir(self, context: CopyContext) -> Path | None:
        artifacts_dir = context.src.artifacts_dir
        if artifacts_dir is not None and artifacts_dir.is_dir():
            return artifacts_dir
        context.log_info("Unable to find the artifacts directory %s", artifacts_dir)
        return None


class CopyArtifactFiles(CopyOperation):
    """
    Copy archived artifacts.

    Builds with a virtual artifact root are read through it. Builds that
    only have an artifacts directory are handled like
    `CopyLegacyArtifactFiles`.
    """

    display_name = "Copy artifacts"

    def _legacy(self) -> CopyLegacyArtifactFiles:
        legacy = CopyLegacyArtifactFiles()
        legacy.copy_configuration(self)
        return legacy

    def init(self, context: CopyContext) -> bool:
        root = context.src.artifact_root
        if root is None:
            return self._legacy().init(context)
        if not root.exists():
            context.log_info("Artifacts of %s are missing: %s", context.src.full_display_name, root.name)
            return False
        return super().init(context)

    def scan_files_to_copy(self, context: CopyContext) -> Iterable[FileInfo]:
        root = context.src.artifact_root
        if root is None:
            return self._legacy().scan_files_to_copy(context)
        if context.src_base_dir:
            root = root.child(context.src_base_dir)
            if not root.exists():
                return []
        return [VirtualFileInfo(root, rel_path) for rel_path in root.list(context.includes, context.excludes)]
