"""Selector and filter construction utilities.

This module translates CLI arguments into concrete BuildSelector and
BuildFilter instances. It centralizes validation and composition so the
commands work with a single selector and a single filter.
"""

from typing import Iterable

from buildcopy.core.config import UpstreamFilterStrategy
from buildcopy.core.filters import (
    AndBuildFilter,
    BuildFilter,
    DownstreamBuildFilter,
    NoBuildFilter,
    NotBuildFilter,
    OrBuildFilter,
    ParameterizedBuildFilter,
    ParametersBuildFilter,
    SavedBuildFilter,
)
from buildcopy.core.selectors import (
    BuildSelector,
    FallbackBuildSelector,
    LastBuildWithArtifactSelector,
    LastCompletedBuildSelector,
    ParameterizedBuildSelector,
    PermalinkBuildSelector,
    SavedBuildSelector,
    SpecificBuildSelector,
    StatusBuildSelector,
    TriggeringBuildSelector,
)

_SIMPLE_SELECTORS = {
    "lastcompleted": LastCompletedBuildSelector,
    "lastsuccessful": lambda: StatusBuildSelector(stable_only=False),
    "laststable": lambda: StatusBuildSelector(stable_only=True),
    "saved": SavedBuildSelector,
    "lastwithartifacts": LastBuildWithArtifactSelector,
}

_STRATEGIES = {
    "newest": UpstreamFilterStrategy.USE_NEWEST,
    "oldest": UpstreamFilterStrategy.USE_OLDEST,
    "global": UpstreamFilterStrategy.USE_GLOBAL_SETTING,
}


def parse_selector(text: str) -> BuildSelector:
    """
    Build one selector from a `kind[:argument]` string.

    Raises:
        ValueError: If the selector is unknown or misses its argument.
    """
    kind, _, arg = text.strip().partition(":")
    key = kind.strip().lower()

    if key in _SIMPLE_SELECTORS:
        if arg:
            raise ValueError(f"Selector '{kind}' takes no argument")
        return _SIMPLE_SELECTORS[key]()

    if key == "triggered":
        strategy = UpstreamFilterStrategy.USE_GLOBAL_SETTING
        allow_dependencies = False
        for part in filter(None, (p.strip().lower() for p in arg.split(":"))):
            if part == "deps":
                allow_dependencies = True
            elif part in _STRATEGIES:
                strategy = _STRATEGIES[part]
            else:
                raise ValueError(f"Invalid triggered selector option: '{part}' (expected newest, oldest, global or deps)")
        return TriggeringBuildSelector(
            upstream_filter_strategy=strategy,
            allow_upstream_dependencies=allow_dependencies,
        )

    if key == "specific":
        if not arg.strip():
            raise ValueError("Selector 'specific' requires a build: specific:<number|id|name>")
        return SpecificBuildSelector(arg.strip())

    if key == "permalink":
        if not arg.strip():
            raise ValueError("Selector 'permalink' requires an id: permalink:<id>")
        return PermalinkBuildSelector(arg.strip())

    if key == "parameter":
        if not arg.strip():
            raise ValueError("Selector 'parameter' requires a variable name: parameter:<NAME>")
        return ParameterizedBuildSelector(arg.strip())

    raise ValueError(f"Unknown selector: '{text}'")


def build_selector(texts: Iterable[str]) -> BuildSelector:
    """
    Build the selector for a list of selector strings.

    No selector means "last successful build". Several selectors are tried in
    order through a FallbackBuildSelector.

    Raises:
        ValueError: If a selector is invalid.
    """
    selectors = [parse_selector(text) for text in texts if text.strip()]
    if not selectors:
        return StatusBuildSelector(stable_only=False)
    if len(selectors) == 1:
        return selectors[0]
    return FallbackBuildSelector(selectors)


def build_filter(
    *,
    saved: bool = False,
    downstream: str | None = None,
    params: Iterable[str] = (),
    filter_xml: str | None = None,
    use_or: bool = False,
    negate: bool = False,
) -> BuildFilter:
    """
    Build a composite BuildFilter from user-provided criteria.

    Args:
        saved: Only keep-forever builds.
        downstream: `PROJECT#REFERENCE` of an upstream build.
        params: `key=value` parameter criteria, all of which must match.
        filter_xml: Serialized filter document, decoded at selection time.
        use_or: Combine criteria with OR instead of AND.
        negate: Invert the combined filter.

    Returns:
        NoBuildFilter when no criterion is given.

    Raises:
        ValueError: If a criterion is malformed.
    """
    filters: list[BuildFilter] = []

    if saved:
        filters.append(SavedBuildFilter())

    if downstream:
        project, sep, reference = downstream.rpartition("#")
        if not sep or not project.strip() or not reference.strip():
            raise ValueError(f"Invalid downstream filter: '{downstream}' (expected PROJECT#NUMBER)")
        filters.append(DownstreamBuildFilter(project, reference))

    param_filters: list[BuildFilter] = []
    for param in (p.strip() for p in params if p.strip()):
        if "=" not in param:
            raise ValueError(f"Invalid parameter filter: '{param}' (expected key=value)")
        if "," in param:
            raise ValueError(f"Invalid parameter filter: '{param}' (',' separates criteria)")
        param_filters.append(ParametersBuildFilter(param))
    if len(param_filters) == 1:
        filters.append(param_filters[0])
    elif param_filters:
        filters.append(AndBuildFilter(param_filters))

    if filter_xml:
        filters.append(ParameterizedBuildFilter(filter_xml))

    if not filters:
        combined: BuildFilter = NoBuildFilter()
    elif len(filters) == 1:
        combined = filters[0]
    else:
        combined = OrBuildFilter(filters) if use_or else AndBuildFilter(filters)

    return NotBuildFilter(combined) if negate else combined


def parse_assignments(items: Iterable[str]) -> dict[str, str]:
    """
    Parse `key=value` strings.

    Raises:
        ValueError: If an item has no `=`.
    """
    values: dict[str, str] = {}
    for item in items:
        if "=" not in item:
            raise ValueError(f"Invalid variable: '{item}' (expected key=value)")
        key, value = item.split("=", 1)
        values[key.strip()] = value
    return values
