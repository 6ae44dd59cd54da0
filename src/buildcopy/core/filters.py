"""Build filter abstractions and implementations.

A build filter decides whether a candidate build may be selected. Filters
are small immutable values that can be composed with logical operators
(AND / OR / NOT) into a tree. Evaluation depends only on the candidate,
the pick context and the registry state; filters never modify either,
they only log why they accepted or declined a build.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar, Sequence

from buildcopy.core.builds import Build

if TYPE_CHECKING:
    from buildcopy.core.context import PickContext


class BuildFilter(ABC):
    """
    Abstract base class for all build filters.
    """

    display_name: ClassVar[str] = "Build filter"

    @abstractmethod
    def is_selectable(self, candidate: Build, context: PickContext) -> bool:
        """
        Determine whether the candidate build may be selected.

        Args:
            candidate: Build to evaluate.
            context: Context of the current selection attempt.

        Returns:
            True if the build is acceptable, False otherwise.
        """
        ...


@dataclass(frozen=True)
class NoBuildFilter(BuildFilter):
    """
    Filter accepting every build.

    Used as the "no filter configured" marker; composite selectors check
    for this type, not for always-true behaviour.
    """

    display_name: ClassVar[str] = "No filter"

    def is_selectable(self, candidate: Build, context: PickContext) -> bool:
        return True


@dataclass(frozen=True, init=False)
class AndBuildFilter(BuildFilter):
    """
    Composite filter that accepts a build only if all child filters do.
    """

    display_name: ClassVar[str] = "And"

    filters: tuple[BuildFilter, ...] = field(default_factory=tuple)

    def __init__(self, filters: Sequence[BuildFilter] = ()):
        object.__setattr__(self, "filters", tuple(filters))

    def is_selectable(self, candidate: Build, context: PickContext) -> bool:
        for child in self.filters:
            if not child.is_selectable(candidate, context):
                context.log_debug(
                    "%s: declined by the filter %s (in %s)",
                    candidate.full_display_name,
                    child.display_name,
                    self.display_name,
                )
                return False
        return True


@dataclass(frozen=True, init=False)
class OrBuildFilter(BuildFilter):
    """
    Composite filter that accepts a build if any child filter does.
    """

    display_name: ClassVar[str] = "Or"

    filters: tuple[BuildFilter, ...] = field(default_factory=tuple)

    def __init__(self, filters: Sequence[BuildFilter] = ()):
        object.__setattr__(self, "filters", tuple(filters))

    def is_selectable(self, candidate: Build, context: PickContext) -> bool:
        for child in self.filters:
            if child.is_selectable(candidate, context):
                context.log_debug(
                    "%s: accepted by the filter %s (in %s)",
                    candidate.full_display_name,
                    child.display_name,
                    self.display_name,
                )
                return True
        return False


@dataclass(frozen=True)
class NotBuildFilter(BuildFilter):
    """
    Filter inverting the result of exactly one child filter.
    """

    display_name: ClassVar[str] = "Not"

    build_filter: BuildFilter

    def is_selectable(self, candidate: Build, context: PickContext) -> bool:
        result = self.build_filter.is_selectable(candidate, context)
        context.log_debug(
            "%s: filter result by %s is reverted: %s -> %s",
            candidate.full_display_name,
            self.build_filter.display_name,
            result,
            not result,
        )
        return not result


@dataclass(frozen=True)
class SavedBuildFilter(BuildFilter):
    """Accepts builds marked "keep forever"."""

    display_name: ClassVar[str] = "Saved builds"

    def is_selectable(self, candidate: Build, context: PickContext) -> bool:
        return candidate.keep_forever


@dataclass(frozen=True)
class DownstreamBuildFilter(BuildFilter):
    """
    Accepts builds that are downstream of a specific upstream build.

    The upstream build is identified by a project name and a build
    reference, both expanded with the context variables. The reference is
    compared as a build number first, then as the build id, then as the
    display name.
    """

    display_name: ClassVar[str] = "Downstream of"

    upstream_project_name: str = ""
    upstream_build_number: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "upstream_project_name", (self.upstream_project_name or "").strip())
        object.__setattr__(self, "upstream_build_number", (self.upstream_build_number or "").strip())

    def is_selectable(self, candidate: Build, context: PickContext) -> bool:
        registry = context.registry
        if not candidate.kind.tracks_upstream:
            context.log_info(
                "%s: Only applicable to builds tracking upstream relationships: but %s is a %s build.",
                self.display_name,
                candidate.full_display_name,
                candidate.kind.value,
            )
            return False

        copier_job = registry.get_job(context.copier_build.job_name)
        base = copier_job.root_full_name if copier_job is not None else context.copier_build.job_name

        project_name = context.env.expand(self.upstream_project_name)
        build_number = context.env.expand(self.upstream_build_number)
        if not project_name.strip():
            context.log_info("%s: Upstream project name gets empty.", self.display_name)
            return False
        if not build_number.strip():
            context.log_info("%s: Upstream build number gets empty.", self.display_name)
            return False

        upstream_job = registry.get_job(project_name, base)
        if upstream_job is None or not registry.can_read(upstream_job):
            context.log_info("%s: Upstream project '%s' is not found.", self.display_name, project_name)
            return False
        if not upstream_job.kind.tracks_upstream:
            context.log_info(
                "%s: Only applicable to jobs tracking upstream relationships: but %s is a %s job.",
                self.display_name,
                upstream_job.full_name,
                upstream_job.kind.value,
            )
            return False

        upstream_build = registry.upstream_relationship_build(candidate, upstream_job)
        if upstream_build is None or not registry.can_read(upstream_build):
            context.log_debug(
                "%s: No upstream build of project '%s' is found for build %s.",
                self.display_name,
                upstream_job.full_name,
                candidate.full_display_name,
            )
            return False

        if build_reference_matches(upstream_build, build_number):
            return True

        context.log_debug(
            "%s: build %s %s doesn't match %s.",
            self.display_name,
            candidate.job_name,
            candidate.display_name,
            build_number,
        )
        return False


@dataclass(frozen=True)
class ParameterizedBuildFilter(BuildFilter):
    """
    Filter read from a variable at selection time.

    The stored text is expanded and decoded into a filter, which then
    decides. Blank text accepts every build; malformed text raises
    FilterConfigError.
    """

    display_name: ClassVar[str] = "Specified by a build parameter"

    parameter: str = ""

    def is_selectable(self, candidate: Build, context: PickContext) -> bool:
        text = context.env.expand(self.parameter)
        context.log_debug("%s: Expanded build filter: %s", self.display_name, text)
        build_filter = context.filter_codec.decode(text)
        if build_filter is None:
            context.log_debug("%s: No filter is specified", self.display_name)
            return NoBuildFilter().is_selectable(candidate, context)
        return build_filter.is_selectable(candidate, context)


_PARAM_PAIR_RE = re.compile(r"(.*?)=([^,]*)(,|$)")
_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


def _as_bool(value: str) -> bool | None:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return None


@dataclass(frozen=True)
class ParametersBuildFilter(BuildFilter):
    """
    Accepts builds whose parameters match `name=value[,name=value...]`.

    Values that look boolean also match boolean-looking parameter values
    (`true` matches `yes`, `on` or `1`).
    """

    display_name: ClassVar[str] = "Parameters"

    params_to_match: str = ""

    def is_selectable(self, candidate: Build, context: PickContext) -> bool:
        text = context.env.expand(self.params_to_match)
        pairs = [(m.group(1).strip(), m.group(2)) for m in _PARAM_PAIR_RE.finditer(text) if m.group(1).strip()]
        if not pairs:
            context.log_debug("%s: unable to parse '%s'", self.display_name, text)
            return False

        params = candidate.parameters
        for name, value in pairs:
            if name not in params:
                return False
            actual = params[name]
            if actual == value:
                continue
            wanted = _as_bool(value)
            if wanted is None or _as_bool(actual) is not wanted:
                return False
        return True


def build_reference_matches(build: Build, reference: str) -> bool:
    """
    Check a textual build reference against a build.

    The reference is compared as a number first; if it is not a number or
    the number differs, it is compared to the build id and then to the
    display name.
    """
    try:
        if int(reference) == build.number:
            return True
    except ValueError:
        pass
    return reference == build.id or reference == build.display_name
