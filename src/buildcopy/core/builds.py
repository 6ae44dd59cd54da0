"""Core build/job domain models and the registry interface.

This module defines the data structures that describe the host system's
jobs and builds (Job, Build, causes, actions) and the narrow query
interface (BuildRegistry) through which the selection and copy engine
reads them. It is intentionally free of storage and CLI concerns so the
same models can be backed by an in-memory registry in tests or by the
on-disk registry used by the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Mapping, Protocol

if TYPE_CHECKING:
    from buildcopy.core.files import VirtualFile


class JobKind(str, Enum):
    """
    Enumeration of job types known to the engine.

    Values:
        STANDARD: A plain job with a workspace and upstream-relationship
                  tracking.
        WORKFLOW: A pipeline-style job. It has no workspace and does not
                  expose upstream relationships or dependency maps.
        MATRIX: A composite job fanning out into configuration runs.
        MATRIX_CONFIG: One configuration of a matrix job.
        MODULE_SET: A composite job whose builds aggregate module builds.
        MODULE: One module of a module-set job.
    """

    STANDARD = "standard"
    WORKFLOW = "workflow"
    MATRIX = "matrix"
    MATRIX_CONFIG = "matrix_config"
    MODULE_SET = "module_set"
    MODULE = "module"

    @property
    def tracks_upstream(self) -> bool:
        """Whether builds of this kind expose upstream-relationship lookups."""
        return self is not JobKind.WORKFLOW


class BuildResult(str, Enum):
    """Final result of a build, ordered from best to worst."""

    SUCCESS = "SUCCESS"
    UNSTABLE = "UNSTABLE"
    FAILURE = "FAILURE"
    NOT_BUILT = "NOT_BUILT"
    ABORTED = "ABORTED"


@dataclass(frozen=True)
class UpstreamCause:
    """The build was triggered by another build."""

    upstream_project: str
    upstream_build: int


@dataclass(frozen=True)
class UserCause:
    """The build was started manually."""

    user: str


Cause = UpstreamCause | UserCause


@dataclass
class FingerprintAction:
    """Filename to MD5 digest associations recorded on a build."""

    records: dict[str, str] = field(default_factory=dict)

    def add(self, fingerprints: Mapping[str, str]) -> None:
        """Merge fingerprints into this action."""
        self.records.update(fingerprints)


@dataclass
class CopiedArtifactsAction:
    """
    Provenance of files copied into a build.

    Attributes:
        sources: Mapping of (source job full name, build number) to the
                 set of file names copied from that build.
    """

    sources: dict[tuple[str, int], set[str]] = field(default_factory=dict)

    def record_source_file(self, src: Build, filename: str) -> None:
        """Record that `filename` was copied from `src`."""
        self.sources.setdefault((src.job_name, src.number), set()).add(filename)

    def copied_artifacts(self) -> list[tuple[str, int, list[str]]]:
        """Return (job, number, sorted files) ordered by job name then number."""
        return [
            (job, number, sorted(files))
            for (job, number), files in sorted(self.sources.items())
        ]


@dataclass(frozen=True)
class Job:
    """
    Represents a job known to the host.

    Attributes:
        full_name: Hierarchical, slash-separated name of the job.
        kind: Type of the job.
        root_name: Full name of the composite job this job belongs to
                   (matrix configuration -> matrix job). None for
                   top-level jobs.
        display_name: Human-readable name. Defaults to the last segment
                      of `full_name`.
    """

    full_name: str
    kind: JobKind = JobKind.STANDARD
    root_name: str | None = None
    display_name: str | None = None

    @property
    def name(self) -> str:
        """Last segment of the full name."""
        return self.full_name.rsplit("/", 1)[-1]

    @property
    def root_full_name(self) -> str:
        """Full name of the root job (itself for non-composite jobs)."""
        return self.root_name or self.full_name

    @property
    def parent_folder(self) -> str:
        """Folder containing this job ("" at top level)."""
        return self.full_name.rsplit("/", 1)[0] if "/" in self.full_name else ""


@dataclass(eq=False)
class Build:
    """
    Represents one execution of a job.

    Builds are identified by (job_name, number); equality and hashing use
    that identity only. The engine never mutates a build except through
    its actions (fingerprints and copied-artifact provenance).
    """

    job_name: str
    number: int
    kind: JobKind = JobKind.STANDARD
    id: str | None = None
    display_name: str | None = None
    result: BuildResult | None = BuildResult.SUCCESS
    keep_forever: bool = False
    causes: list[Cause] = field(default_factory=list)
    # None means the build type does not expose a dependency map.
    upstream_builds: dict[str, int] | None = None
    parameters: dict[str, str] = field(default_factory=dict)
    workspace: Path | None = None
    artifacts_dir: Path | None = None
    artifact_root: VirtualFile | None = None
    runs: list[Build] = field(default_factory=list)
    module_builds: dict[str, Build] = field(default_factory=dict)
    fingerprint_action: FingerprintAction | None = None
    copied_artifacts: CopiedArtifactsAction | None = None

    def __post_init__(self) -> None:
        if self.id is None:
            self.id = str(self.number)
        if self.display_name is None:
            self.display_name = f"#{self.number}"

    @property
    def key(self) -> tuple[str, int]:
        """Identity of the build."""
        return (self.job_name, self.number)

    @property
    def full_display_name(self) -> str:
        """Job name followed by the build display name."""
        return f"{self.job_name} {self.display_name}"

    @property
    def job_short_name(self) -> str:
        """Last segment of the owning job's name."""
        return self.job_name.rsplit("/", 1)[-1]

    @property
    def is_completed(self) -> bool:
        """A build without a result is still running."""
        return self.result is not None

    @property
    def has_artifacts(self) -> bool:
        """Whether the build archived any artifacts."""
        if self.artifact_root is not None:
            return self.artifact_root.exists() and bool(self.artifact_root.list("**"))
        if self.artifacts_dir is not None and self.artifacts_dir.is_dir():
            return any(p.is_file() or p.is_symlink() for p in self.artifacts_dir.rglob("*"))
        return False

    def add_fingerprints(self, fingerprints: Mapping[str, str]) -> None:
        """Attach or merge a fingerprint action."""
        if self.fingerprint_action is None:
            self.fingerprint_action = FingerprintAction()
        self.fingerprint_action.add(fingerprints)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Build):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        return f"Build({self.job_name!r}, {self.number})"


class BuildRegistry(Protocol):
    """Interface for job/build lookups used by the core engine."""

    def get_job(self, name: str, base: str | None = None) -> Job | None:
        """Resolve a job by (possibly relative) name against a base job."""
        ...

    def get_build(self, job_name: str, number: int) -> Build | None:
        """Return the build with the given number, if any."""
        ...

    def list_builds(self, job_name: str, *, newest_first: bool = True) -> list[Build]:
        """Return every build of the job ordered by number."""
        ...

    def can_read(self, item: Job | Build) -> bool:
        """Return True if the current principal may read the job or build."""
        ...

    def upstream_relationship_build(self, build: Build, upstream_job: Job) -> Build | None:
        """Return the build of `upstream_job` that `build` descends from."""
        ...


def candidate_job_names(name: str, base: str | None) -> list[str]:
    """
    Return the full names a job reference may denote, in lookup order.

    - `/a/b` is absolute.
    - `../x` and `./x` are resolved against the base job's folder.
    - A plain name is tried relative to the base job's folder first, then
      as an absolute name.
    """
    name = name.strip()
    if not name:
        return []
    if name.startswith("/"):
        return [name.strip("/")]

    folder = base.rsplit("/", 1)[0] if base and "/" in base else ""
    if name.startswith("./") or name.startswith("../"):
        parts = folder.split("/") if folder else []
        for segment in name.split("/"):
            if segment == "..":
                if not parts:
                    return []
                parts.pop()
            elif segment and segment != ".":
                parts.append(segment)
        return ["/".join(parts)] if parts else []

    names = []
    if folder:
        names.append(f"{folder}/{name}")
    names.append(name.strip("/"))
    return names
