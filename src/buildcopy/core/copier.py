"""Top-level "copy artifacts" step.

Combines project lookup, build selection and the copy operation, records
provenance on the copier build and exports the selected build number as
a variable.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path

from buildcopy.core.builds import Build, BuildRegistry, CopiedArtifactsAction
from buildcopy.core.config import Settings
from buildcopy.core.context import LOGGER, EnvVars, OperationContext, PickContext
from buildcopy.core.filters import BuildFilter, NoBuildFilter
from buildcopy.core.fingerprints import FingerprintStore
from buildcopy.core.operations import CopyOperation, CopyResult
from buildcopy.core.selectors import BuildSelector

RESULT_VARIABLE_PREFIX = "COPYARTIFACT_BUILD_NUMBER_"

_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]+")


class CopyArtifactError(RuntimeError):
    """Raised when the copy step fails and is not optional."""


@dataclass
class CopyRequest:
    """
    Configuration of one copy step.

    Attributes:
        project_name: Job to copy from. Variables are expanded, relative
                      names are resolved against the copier's job.
        selector: Strategy choosing the build.
        build_filter: Filter the selected build must satisfy.
        operation: What to copy from the selected build.
        optional: Do not fail when no build or no file is found.
        result_variable_suffix: Suffix of the variable receiving the
                                selected build number.
    """

    project_name: str
    selector: BuildSelector
    operation: CopyOperation
    build_filter: BuildFilter = field(default_factory=NoBuildFilter)
    optional: bool = False
    result_variable_suffix: str = ""


@dataclass
class CopyOutcome:
    """Result of a copy step. `build` is None when an optional step found nothing."""

    build: Build | None
    result: CopyResult = CopyResult.NOTHING_TO_DO
    variable: str | None = None


def result_variable_name(suffix: str, project_name: str) -> str:
    """Name of the variable receiving the selected build number."""
    base = suffix.strip() or project_name
    return RESULT_VARIABLE_PREFIX + _NON_ALNUM_RE.sub("_", base).upper()


def copy_artifacts(
    request: CopyRequest,
    *,
    registry: BuildRegistry,
    copier_build: Build,
    workspace: Path,
    env: EnvVars | None = None,
    settings: Settings | None = None,
    fingerprint_store: FingerprintStore | None = None,
    cancel_event: threading.Event | None = None,
    logger: logging.Logger = LOGGER,
) -> CopyOutcome:
    """
    Select a build of `request.project_name` and copy files from it.

    On success the copied files are recorded on the copier build's
    `CopiedArtifactsAction` and the selected build number is stored in
    `env` under `COPYARTIFACT_BUILD_NUMBER_<SUFFIX>`.

    Raises:
        CopyArtifactError: If the project is missing or unreadable, or
            (unless optional) if no build is selected or nothing is copied.
        FilterConfigError: If a parameterized filter is malformed.
        OSError: On I/O failure while copying.
        CopyInterrupted: If `cancel_event` was set during the copy.
    """
    env = env if env is not None else EnvVars()
    settings = settings or Settings()
    cancel_event = cancel_event or threading.Event()

    project_name = env.expand(request.project_name).strip()
    job = registry.get_job(project_name, base=copier_build.job_name) if project_name else None
    if job is None or not registry.can_read(job):
        raise CopyArtifactError(f"Unable to find project for artifact copy: {project_name}")

    pick_context = PickContext(
        registry=registry,
        copier_build=copier_build,
        env=env,
        logger=logger,
        settings=settings,
        cancel_event=cancel_event,
        project_name=project_name,
        build_filter=request.build_filter,
    )
    build = request.selector.pick_build_to_copy_from(job, pick_context)
    if build is None:
        message = f"Unable to find a build for artifact copy from: {job.full_name}"
        if request.optional:
            logger.info("%s", message)
            return CopyOutcome(build=None)
        raise CopyArtifactError(message)

    operation_context = OperationContext(
        registry=registry,
        copier_build=copier_build,
        env=env,
        logger=logger,
        settings=settings,
        cancel_event=cancel_event,
        workspace=workspace,
        fingerprint_store=fingerprint_store,
    )
    result = request.operation.perform(build, operation_context)
    if result is CopyResult.NOTHING_TO_DO and not request.optional:
        raise CopyArtifactError(f"Failed to copy artifacts from {job.full_name}")

    _record_provenance(operation_context.copied_files, copier_build)

    variable = result_variable_name(request.result_variable_suffix, job.full_name)
    env[variable] = str(build.number)
    return CopyOutcome(build=build, result=result, variable=variable)


def _record_provenance(copied_files: list[tuple[Build, str]], copier_build: Build) -> None:
    if not copied_files:
        return
    if copier_build.copied_artifacts is None:
        copier_build.copied_artifacts = CopiedArtifactsAction()
    for src, filename in copied_files:
        copier_build.copied_artifacts.record_source_file(src, filename)
