"""Application context management for the CLI."""

from dataclasses import dataclass, replace
from pathlib import Path

import questionary

from buildcopy.cli.common.exits import die
from buildcopy.cli.common.output import out
from buildcopy.core.adapters.filesystem import FileSystemRegistry
from buildcopy.core.builds import Build
from buildcopy.core.config import Settings


@dataclass
class AppContext:
    """Application context holding settings and the on-disk registry."""

    settings: Settings
    registry: FileSystemRegistry


def build_app_context(home: Path | None, *, verbose: bool = False) -> AppContext:
    """Build the application context from environment settings and CLI overrides.

    Args:
        home: Registry root overriding BUILDCOPY_HOME.
        verbose: Enable debug logging.

    Returns:
        AppContext: Context with loaded settings and registry.
    """
    settings = Settings.from_env()
    if home is not None:
        settings = replace(settings, home=home)
    if verbose:
        settings = replace(settings, verbose=True)

    try:
        registry = FileSystemRegistry(settings.home)
    except (OSError, ValueError) as exc:
        die(f"Unable to load registry at {settings.home}: {exc}", code=1)
    return AppContext(settings=settings, registry=registry)


def resolve_build(appctx: AppContext, ref: str, *, interactive: bool = True) -> Build:
    """Resolve a `JOB#NUMBER` reference; without `#NUMBER`, prompt for the build.

    Args:
        appctx: Application context.
        ref: Build reference.
        interactive: Allow prompting when the number is omitted.

    Returns:
        Build: The referenced build (exits with an error otherwise).
    """
    job_name, sep, number = ref.rpartition("#")
    if not sep:
        job_name, number = ref, ""
    job = appctx.registry.get_job(job_name)
    if job is None:
        die(f"Job not found: {job_name}")

    if not number:
        builds = appctx.registry.list_builds(job.full_name)
        if not builds or not interactive:
            die(f"No build given for {job.full_name} (expected JOB#NUMBER)")
        picked = out.select_one(
            f"Select a build of {job.full_name}:",
            [questionary.Choice(title=f"{b.display_name}  ({b.result.value if b.result else 'running'})", value=b) for b in builds],
        )
        if picked is None:
            die("No build selected", code=0)
        return picked

    try:
        build = appctx.registry.get_build(job.full_name, int(number))
    except ValueError:
        build = None
    if build is None:
        die(f"Build not found: {job.full_name}#{number}")
    return build
