"""Per-invocation state threaded through selection and copy operations.

A context carries everything a selector, filter or copy operation needs
besides the build itself: the registry to query, the variables used for
expansion, the build that is copying ("copier"), the logging sink and the
cancellation signal. Contexts are mutable and owned by one invocation;
composite steps work on explicit clones (see `clone()` on each class for
which fields are copied and which are shared).
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING

from buildcopy.core.builds import Build, BuildRegistry
from buildcopy.core.config import Settings

if TYPE_CHECKING:
    from hashlib import _Hash

    from buildcopy.core.filter_codec import FilterCodec
    from buildcopy.core.filters import BuildFilter
    from buildcopy.core.fingerprints import FingerprintStore

_VARIABLE_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_.]*)\}|\$([A-Za-z_][A-Za-z0-9_]*)")

LOGGER = logging.getLogger("buildcopy")


class EnvVars(dict[str, str]):
    """Build variables with `$NAME` / `${NAME}` expansion."""

    def expand(self, text: str | None) -> str:
        """
        Substitute known variables in `text`.

        Unknown variables are left untouched, so expanding a string that
        contains no variable syntax returns it unchanged.
        """
        if not text or "$" not in text:
            return text or ""

        def _sub(match: re.Match[str]) -> str:
            name = match.group(1) or match.group(2)
            return self.get(name, match.group(0))

        return _VARIABLE_RE.sub(_sub, text)


@dataclass(kw_only=True)
class CommonContext:
    """
    State shared by pick and copy contexts.

    Attributes:
        registry: Job/build lookup interface.
        copier_build: The build running the copy.
        env: Variables used to expand configured strings.
        logger: Logging sink for this invocation.
        settings: Process-wide settings.
        cancel_event: Set by the caller to abort a running scan or copy.
    """

    registry: BuildRegistry
    copier_build: Build
    env: EnvVars = field(default_factory=EnvVars)
    logger: logging.Logger = LOGGER
    settings: Settings = field(default_factory=Settings)
    cancel_event: threading.Event = field(default_factory=threading.Event)

    def log_info(self, msg: str, *args: object) -> None:
        """Log an informational message."""
        self.logger.info(msg, *args)

    def log_debug(self, msg: str, *args: object) -> None:
        """Log a diagnostic message (shown with --verbose)."""
        self.logger.debug(msg, *args)

    def log_exception(self, msg: str, exc: BaseException) -> None:
        """Log a message together with the exception that caused it."""
        self.logger.warning("%s: %s", msg, exc, exc_info=exc)

    @property
    def cancelled(self) -> bool:
        """Whether the caller asked to abort."""
        return self.cancel_event.is_set()


@dataclass
class SelectorProgress:
    """
    Enumeration state of a selector within one pick attempt.

    Attributes:
        owner: The selector the candidates belong to.
        candidates: Candidates in enumeration order.
        position: Index of the next candidate to return.
    """

    owner: object
    candidates: list[Build]
    position: int = 0

    def next(self) -> Build | None:
        """Return the next candidate, or None when exhausted."""
        if self.position >= len(self.candidates):
            return None
        build = self.candidates[self.position]
        self.position += 1
        return build


@dataclass(kw_only=True)
class PickContext(CommonContext):
    """
    State for one build-selection attempt.

    Attributes:
        project_name: Name of the job to pick from, as configured.
        build_filter: Filter a candidate must satisfy.
        last_match_build: Last candidate handed out by the selector
                          (whether or not the filter accepted it).
        progress: Enumeration state stored by stateful selectors.
        filter_codec: Decoder used by parameterized filters.
    """

    project_name: str = ""
    build_filter: BuildFilter | None = None
    last_match_build: Build | None = None
    progress: SelectorProgress | None = None
    filter_codec: FilterCodec | None = None

    def __post_init__(self) -> None:
        if self.build_filter is None:
            from buildcopy.core.filters import NoBuildFilter

            self.build_filter = NoBuildFilter()
        if self.filter_codec is None:
            from buildcopy.core.filter_codec import default_codec

            self.filter_codec = default_codec()

    def clone(self) -> PickContext:
        """
        Return an independent copy for a sub-attempt.

        Variables and selector progress are copied; registry, copier,
        logger, settings, cancellation signal, codec and the (immutable)
        filter are shared.
        """
        progress = replace(self.progress) if self.progress is not None else None
        return replace(self, env=EnvVars(self.env), progress=progress)


@dataclass(kw_only=True)
class OperationContext(CommonContext):
    """
    State for one copy operation.

    Attributes:
        workspace: Base directory files are copied into.
        fingerprint_store: Store receiving fingerprint records.
        copied_files: (source build, relative path) of every copied file.
                      Shared by all contexts derived from this one.
    """

    workspace: Path
    fingerprint_store: FingerprintStore | None = None
    copied_files: list[tuple[Build, str]] = field(default_factory=list)


@dataclass(kw_only=True)
class CopyContext(OperationContext):
    """
    State for copying the files of one source build.

    Patterns are stored after variable expansion. `digest` and
    `fingerprint_map` are initialised by the operation's `init` hook.
    """

    src: Build
    target_base_dir: Path
    target_dir_path: str = ""
    src_base_dir: str = ""
    includes: str = "**"
    excludes: str | None = None
    flatten: bool = False
    fingerprint_artifacts: bool = True
    digest: _Hash | None = None
    fingerprint_map: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_operation_context(cls, ctx: OperationContext, *, src: Build) -> CopyContext:
        """Create a copy context from an operation context."""
        return cls(
            registry=ctx.registry,
            copier_build=ctx.copier_build,
            env=EnvVars(ctx.env),
            logger=ctx.logger,
            settings=ctx.settings,
            cancel_event=ctx.cancel_event,
            workspace=ctx.workspace,
            fingerprint_store=ctx.fingerprint_store,
            copied_files=ctx.copied_files,
            src=src,
            target_base_dir=ctx.workspace,
        )

    @property
    def target_dir(self) -> Path:
        """Directory files are copied into."""
        return self.target_base_dir / self.target_dir_path if self.target_dir_path else self.target_base_dir

    def clone(self) -> CopyContext:
        """
        Return an independent copy for a sub-build.

        Variables, the digest accumulator and the fingerprint map are
        copied; patterns, flags and collaborators are shared.
        """
        digest = self.digest.copy() if self.digest is not None else None
        return replace(
            self,
            env=EnvVars(self.env),
            digest=digest,
            fingerprint_map=dict(self.fingerprint_map),
        )

