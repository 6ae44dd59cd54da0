"""Build selector abstractions and implementations.

A selector enumerates candidate builds of a job in its own order; the
shared selection loop in `BuildSelector.pick_build_to_copy_from` tests each
candidate against the context's filter and returns the first accepted one.

Selector families:

- history selectors walk completed builds newest-first (last completed,
  last successful/stable, saved, last with artifacts);
- specific selectors propose exactly one build per attempt (a build
  number, a permalink);
- the fallback selector tries a list of (selector, filter) entries in
  order;
- the triggering selector walks the upstream causes of the copier build;
- the parameterized selector decodes another selector from a variable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, ClassVar, Sequence

from buildcopy.core.builds import Build, BuildResult, Job, UpstreamCause
from buildcopy.core.config import UpstreamFilterStrategy
from buildcopy.core.context import PickContext, SelectorProgress
from buildcopy.core.filters import AndBuildFilter, BuildFilter, NoBuildFilter, build_reference_matches


class BuildSelector(ABC):
    """
    Abstract base class for all build selectors.
    """

    display_name: ClassVar[str] = "Build selector"

    def pick_build_to_copy_from(self, job: Job, context: PickContext) -> Build | None:
        """
        Pick the first candidate accepted by the context's filter.

        Args:
            job: Job to pick a build from.
            context: Context of the current selection attempt.

        Returns:
            The selected build, or None if no candidate is accepted.
        """
        build_filter = context.build_filter or NoBuildFilter()
        while True:
            candidate = self.get_next_build(job, context)
            if candidate is None:
                context.log_debug("%s: no more candidates in %s", self.display_name, job.full_name)
                return None
            context.last_match_build = candidate
            if build_filter.is_selectable(candidate, context):
                context.log_debug("%s: %s is selected", self.display_name, candidate.full_display_name)
                return candidate
            context.log_debug(
                "%s: %s is declined by %s",
                self.display_name,
                candidate.full_display_name,
                build_filter.display_name,
            )

    @abstractmethod
    def get_next_build(self, job: Job, context: PickContext) -> Build | None:
        """
        Return the next candidate of the current attempt.

        Returns:
            The next candidate, or None when the enumeration is exhausted.
        """
        ...


class HistoryBuildSelector(BuildSelector):
    """
    Selector walking completed, readable builds from the newest one.

    Enumeration resumes below `context.last_match_build`. Subclasses
    narrow the walk with `is_candidate`.
    """

    def get_next_build(self, job: Job, context: PickContext) -> Build | None:
        registry = context.registry
        last = context.last_match_build
        for build in registry.list_builds(job.full_name, newest_first=True):
            if last is not None and build.number >= last.number:
                continue
            if not build.is_completed or not registry.can_read(build):
                continue
            if self.is_candidate(build, context):
                return build
        return None

    def is_candidate(self, build: Build, context: PickContext) -> bool:
        """Whether a completed build is enumerated by this selector."""
        return True


class LastCompletedBuildSelector(HistoryBuildSelector):
    """Every completed build, newest first."""

    display_name: ClassVar[str] = "Last completed build"


class StatusBuildSelector(HistoryBuildSelector):
    """
    Last successful build, or last stable build when `stable_only` is set.
    """

    def __init__(self, stable_only: bool = False):
        self.stable_only = stable_only
        self.display_name = "Last stable build" if stable_only else "Last successful build"

    def is_candidate(self, build: Build, context: PickContext) -> bool:
        if self.stable_only:
            return build.result is BuildResult.SUCCESS
        return build.result in (BuildResult.SUCCESS, BuildResult.UNSTABLE)


class SavedBuildSelector(HistoryBuildSelector):
    """Builds marked "keep forever"."""

    display_name: ClassVar[str] = "Latest saved build"

    def is_candidate(self, build: Build, context: PickContext) -> bool:
        return build.keep_forever


class LastBuildWithArtifactSelector(HistoryBuildSelector):
    """Builds that archived at least one artifact."""

    display_name: ClassVar[str] = "Last build with artifacts"

    def is_candidate(self, build: Build, context: PickContext) -> bool:
        try:
            return build.has_artifacts
        except OSError as exc:
            context.log_exception(f"Unable to read the artifacts of {build.full_display_name}", exc)
            return False


class AbstractSpecificBuildSelector(BuildSelector):
    """
    Selector proposing exactly one build per attempt.

    Once a candidate has been handed out (`context.last_match_build` is
    set) the enumeration is over.
    """

    def get_next_build(self, job: Job, context: PickContext) -> Build | None:
        if context.last_match_build is not None:
            return None
        return self.get_build(job, context)

    @abstractmethod
    def get_build(self, job: Job, context: PickContext) -> Build | None:
        """Return the single build proposed by this selector."""
        ...


class SpecificBuildSelector(AbstractSpecificBuildSelector):
    """
    The build identified by a number, id or display name.

    The reference is expanded with the context variables.
    """

    display_name: ClassVar[str] = "Specific build"

    def __init__(self, build_number: str | int):
        self.build_number = str(build_number).strip()

    def get_build(self, job: Job, context: PickContext) -> Build | None:
        registry = context.registry
        reference = context.env.expand(self.build_number).strip()
        if not reference:
            context.log_info("%s: build number gets empty.", self.display_name)
            return None

        build = None
        try:
            build = registry.get_build(job.full_name, int(reference))
        except ValueError:
            pass
        if build is None:
            build = next(
                (b for b in registry.list_builds(job.full_name) if build_reference_matches(b, reference)),
                None,
            )
        if build is None or not registry.can_read(build):
            context.log_info("%s: build '%s' of %s is not found.", self.display_name, reference, job.full_name)
            return None
        return build


def _is_successful(build: Build) -> bool:
    return build.result in (BuildResult.SUCCESS, BuildResult.UNSTABLE)


PERMALINKS: dict[str, Callable[[Build], bool]] = {
    "lastBuild": lambda b: True,
    "lastCompletedBuild": lambda b: b.is_completed,
    "lastSuccessfulBuild": _is_successful,
    "lastStableBuild": lambda b: b.result is BuildResult.SUCCESS,
    "lastFailedBuild": lambda b: b.result is BuildResult.FAILURE,
    "lastUnstableBuild": lambda b: b.result is BuildResult.UNSTABLE,
    "lastUnsuccessfulBuild": lambda b: b.is_completed and b.result is not BuildResult.SUCCESS,
}


class PermalinkBuildSelector(AbstractSpecificBuildSelector):
    """The build a permalink (e.g. `lastStableBuild`) points to."""

    display_name: ClassVar[str] = "Permalink"

    def __init__(self, permalink: str):
        self.permalink = permalink

    def get_build(self, job: Job, context: PickContext) -> Build | None:
        predicate = PERMALINKS.get(self.permalink)
        if predicate is None:
            context.log_info("%s: unknown permalink '%s'.", self.display_name, self.permalink)
            return None
        registry = context.registry
        for build in registry.list_builds(job.full_name, newest_first=True):
            if predicate(build):
                return build if registry.can_read(build) else None
        return None


@dataclass(frozen=True)
class FallbackEntry:
    """One (selector, filter) pair tried by the fallback selector."""

    build_selector: BuildSelector
    build_filter: BuildFilter = field(default_factory=NoBuildFilter)


class FallbackBuildSelector(BuildSelector):
    """
    Tries entries in order and returns the first build found.

    Each entry runs as a fresh attempt on a cloned context. The entry's
    filter is combined with the caller's filter: a `NoBuildFilter` on
    either side is dropped, otherwise both must accept (caller's first).
    """

    display_name: ClassVar[str] = "Fallback"

    def __init__(self, entries: Sequence[FallbackEntry | BuildSelector]):
        self.entries = [e if isinstance(e, FallbackEntry) else FallbackEntry(e) for e in entries]

    def pick_build_to_copy_from(self, job: Job, context: PickContext) -> Build | None:
        for entry in self.entries:
            child_context = context.clone()
            if isinstance(entry.build_filter, NoBuildFilter):
                pass
            elif isinstance(context.build_filter, NoBuildFilter):
                child_context.build_filter = entry.build_filter
            else:
                child_context.build_filter = AndBuildFilter([context.build_filter, entry.build_filter])
            child_context.last_match_build = None
            child_context.progress = None

            context.log_debug("Try %s", entry.build_selector.display_name)
            candidate = entry.build_selector.pick_build_to_copy_from(job, child_context)
            if candidate is not None:
                return candidate
        return None

    def get_next_build(self, job: Job, context: PickContext) -> Build | None:
        """Fallback selection does not enumerate; see `pick_build_to_copy_from`."""
        return None


class TriggeringBuildSelector(BuildSelector):
    """
    Builds of the job that (transitively) triggered the copier build.

    Upstream causes of the copier are followed through builds of other
    jobs until builds of the target job (or of its root job, for matrix
    configurations) are found. With `allow_upstream_dependencies` the
    recorded dependency map of each build is followed as well. Candidates
    are enumerated oldest- or newest-first.
    """

    display_name: ClassVar[str] = "Upstream build that triggered this job"

    def __init__(
        self,
        upstream_filter_strategy: UpstreamFilterStrategy = UpstreamFilterStrategy.USE_GLOBAL_SETTING,
        allow_upstream_dependencies: bool = False,
    ):
        self.upstream_filter_strategy = upstream_filter_strategy
        self.allow_upstream_dependencies = allow_upstream_dependencies

    def is_use_newest(self, context: PickContext) -> bool:
        """Resolve the strategy, deferring to the global setting if asked."""
        strategy = self.upstream_filter_strategy
        if strategy is None or strategy is UpstreamFilterStrategy.USE_GLOBAL_SETTING:
            strategy = context.settings.upstream_filter_strategy
        return strategy is UpstreamFilterStrategy.USE_NEWEST

    def get_next_build(self, job: Job, context: PickContext) -> Build | None:
        progress = context.progress
        if progress is None or progress.owner is not self:
            found = self._all_upstream_builds(job, context, context.copier_build, visited=set())
            candidates = sorted(found.values(), key=lambda b: b.number, reverse=self.is_use_newest(context))
            progress = SelectorProgress(owner=self, candidates=candidates)
            context.progress = progress

        build = progress.next()
        if build is None:
            context.progress = None
        return build

    def _all_upstream_builds(
        self,
        job: Job,
        context: PickContext,
        parent: Build,
        visited: set[tuple[str, int]],
    ) -> dict[tuple[str, int], Build]:
        registry = context.registry
        # upstream of a matrix configuration is recorded against the matrix job
        job_names = {job.full_name, job.root_full_name}

        upstream_builds: list[Build] = []
        for cause in parent.causes:
            if isinstance(cause, UpstreamCause):
                upstream = registry.get_build(cause.upstream_project, cause.upstream_build)
                if upstream is not None:
                    upstream_builds.append(upstream)

        if self.allow_upstream_dependencies and parent.kind.tracks_upstream and parent.upstream_builds:
            for name, number in parent.upstream_builds.items():
                upstream = registry.get_build(name, number)
                if upstream is not None:
                    upstream_builds.append(upstream)

        result: dict[tuple[str, int], Build] = {}
        for upstream in upstream_builds:
            if upstream.job_name in job_names:
                build = registry.get_build(job.full_name, upstream.number)
                if build is not None and registry.can_read(build):
                    result[build.key] = build
            elif upstream.key not in visited:
                visited.add(upstream.key)
                result.update(self._all_upstream_builds(job, context, upstream, visited))
        return result


class ParameterizedBuildSelector(BuildSelector):
    """
    Selector read from a variable at selection time.

    The variable holds a selector document (see `FilterCodec.encode`),
    which is decoded and then picks with the current context. A blank or
    missing variable picks nothing; malformed text raises FilterConfigError.
    """

    display_name: ClassVar[str] = "Specified by a build parameter"

    def __init__(self, parameter_name: str):
        self.parameter_name = parameter_name

    def pick_build_to_copy_from(self, job: Job, context: PickContext) -> Build | None:
        text = context.env.get(self.parameter_name, "")
        context.log_debug("%s: %s is %s", self.display_name, self.parameter_name, text)
        selector = context.filter_codec.decode_selector(text)
        if selector is None:
            context.log_info("%s: %s specifies no build selector.", self.display_name, self.parameter_name)
            return None
        if isinstance(selector, ParameterizedBuildSelector) and selector.parameter_name == self.parameter_name:
            context.log_info("%s: %s refers to itself.", self.display_name, self.parameter_name)
            return None
        return selector.pick_build_to_copy_from(job, context)

    def get_next_build(self, job: Job, context: PickContext) -> Build | None:
        """Parameterized selection does not enumerate; see `pick_build_to_copy_from`."""
        return None
