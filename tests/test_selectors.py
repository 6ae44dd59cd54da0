import pytest

from buildcopy.core.adapters.memory import MemoryBuildRegistry
from buildcopy.core.builds import Build, BuildResult
from buildcopy.core.context import EnvVars, PickContext
from buildcopy.core.files import ZipVirtualFile
from buildcopy.core.filter_codec import FilterConfigError, default_codec
from buildcopy.core.filters import AndBuildFilter, BuildFilter, NoBuildFilter, SavedBuildFilter
from buildcopy.core.selectors import (
    BuildSelector,
    FallbackBuildSelector,
    FallbackEntry,
    LastBuildWithArtifactSelector,
    LastCompletedBuildSelector,
    ParameterizedBuildSelector,
    PermalinkBuildSelector,
    SavedBuildSelector,
    SpecificBuildSelector,
    StatusBuildSelector,
)


class _AlwaysTrue(BuildFilter):
    def is_selectable(self, candidate, context):
        return True


class _NoneSelector(BuildSelector):
    def get_next_build(self, job, context):
        return None


class _FixedSelector(BuildSelector):
    def __init__(self, build):
        self.build = build
        self.seen_filters = []

    def get_next_build(self, job, context):
        self.seen_filters.append(context.build_filter)
        if context.last_match_build is not None:
            return None
        return self.build


def _registry():
    registry = MemoryBuildRegistry()
    job = registry.add_job("app")
    registry.add_build(Build("app", 1, result=BuildResult.SUCCESS))
    registry.add_build(Build("app", 2, result=BuildResult.UNSTABLE, keep_forever=True))
    registry.add_build(Build("app", 3, result=BuildResult.FAILURE))
    registry.add_build(Build("app", 4, result=None))
    return registry, job


def _context(registry, build_filter=None, env=None):
    return PickContext(
        registry=registry,
        copier_build=Build("copier", 1),
        build_filter=build_filter,
        env=EnvVars(env or {}),
    )


def test_last_completed_skips_running_builds():
    registry, job = _registry()

    assert LastCompletedBuildSelector().pick_build_to_copy_from(job, _context(registry)).number == 3


def test_status_selectors():
    registry, job = _registry()

    assert StatusBuildSelector().pick_build_to_copy_from(job, _context(registry)).number == 2
    assert StatusBuildSelector(stable_only=True).pick_build_to_copy_from(job, _context(registry)).number == 1


def test_saved_selector():
    registry, job = _registry()

    assert SavedBuildSelector().pick_build_to_copy_from(job, _context(registry)).number == 2


def test_history_selector_continues_after_filter_rejection():
    registry, job = _registry()
    registry.add_build(Build("app", 5, keep_forever=False))
    ctx = _context(registry, build_filter=SavedBuildFilter())

    picked = LastCompletedBuildSelector().pick_build_to_copy_from(job, ctx)

    assert picked.number == 2
    assert ctx.last_match_build.number == 2


def test_history_selector_skips_unreadable_builds():
    registry, job = _registry()
    registry.deny(registry.get_build("app", 3))

    assert LastCompletedBuildSelector().pick_build_to_copy_from(job, _context(registry)).number == 2


def test_selection_returns_none_when_exhausted():
    registry, job = _registry()

    class _Never(BuildFilter):
        def is_selectable(self, candidate, context):
            return False

    assert LastCompletedBuildSelector().pick_build_to_copy_from(job, _context(registry, _Never())) is None


def test_last_build_with_artifacts(tmp_path):
    registry, job = _registry()
    artifacts = tmp_path / "archive"
    (artifacts / "lib").mkdir(parents=True)
    (artifacts / "lib" / "app.jar").write_text("jar")
    registry.get_build("app", 1).artifacts_dir = artifacts
    registry.get_build("app", 2).artifacts_dir = tmp_path / "missing"

    assert LastBuildWithArtifactSelector().pick_build_to_copy_from(job, _context(registry)).number == 1


def test_last_build_with_artifacts_skips_corrupt_archive(tmp_path):
    registry, job = _registry()
    artifacts = tmp_path / "archive"
    artifacts.mkdir()
    (artifacts / "app.jar").write_text("jar")
    corrupt = tmp_path / "archive.zip"
    corrupt.write_bytes(b"garbage")
    registry.get_build("app", 1).artifacts_dir = artifacts
    registry.get_build("app", 2).artifact_root = ZipVirtualFile(corrupt)

    assert LastBuildWithArtifactSelector().pick_build_to_copy_from(job, _context(registry)).number == 1


@pytest.mark.parametrize("reference, expected", [("2", 2), ("$NUM", 3), ("release", 1), ("nightly-id", 1)])
def test_specific_selector_resolves_number_id_and_display_name(reference, expected):
    registry, job = _registry()
    registry.add_build(Build("app", 1, id="nightly-id", display_name="release"))

    picked = SpecificBuildSelector(reference).pick_build_to_copy_from(job, _context(registry, env={"NUM": "3"}))

    assert picked.number == expected


def test_specific_selector_proposes_a_single_candidate():
    registry, job = _registry()
    selector = SpecificBuildSelector("1")
    ctx = _context(registry, build_filter=SavedBuildFilter())

    assert selector.pick_build_to_copy_from(job, ctx) is None
    assert ctx.last_match_build.number == 1


@pytest.mark.parametrize("reference", ["", "99", "$UNSET_EMPTY"])
def test_specific_selector_not_found(reference):
    registry, job = _registry()

    assert SpecificBuildSelector(reference).pick_build_to_copy_from(job, _context(registry, env={"UNSET_EMPTY": ""})) is None


@pytest.mark.parametrize(
    "permalink, expected",
    [
        ("lastBuild", 4),
        ("lastCompletedBuild", 3),
        ("lastSuccessfulBuild", 2),
        ("lastStableBuild", 1),
        ("lastFailedBuild", 3),
        ("lastUnstableBuild", 2),
        ("lastUnsuccessfulBuild", 3),
        ("nope", None),
    ],
)
def test_permalink_selector(permalink, expected):
    registry, job = _registry()

    picked = PermalinkBuildSelector(permalink).pick_build_to_copy_from(job, _context(registry))

    assert (picked.number if picked else None) == expected


def test_fallback_returns_first_found():
    registry, job = _registry()
    build = registry.get_build("app", 1)
    build.keep_forever = True

    selector = FallbackBuildSelector(
        [FallbackEntry(_NoneSelector()), FallbackEntry(_FixedSelector(build), SavedBuildFilter())]
    )

    assert selector.pick_build_to_copy_from(job, _context(registry)) is build


def test_fallback_combines_caller_and_entry_filters():
    registry, job = _registry()
    caller_filter = _AlwaysTrue()
    entry_filter = _AlwaysTrue()
    fixed = _FixedSelector(registry.get_build("app", 1))

    FallbackBuildSelector([FallbackEntry(fixed, entry_filter)]).pick_build_to_copy_from(
        job, _context(registry, build_filter=caller_filter)
    )

    assert fixed.seen_filters[0] == AndBuildFilter([caller_filter, entry_filter])


def test_fallback_keeps_single_side_filters():
    registry, job = _registry()
    caller_filter = _AlwaysTrue()
    entry_filter = _AlwaysTrue()
    only_caller = _FixedSelector(registry.get_build("app", 1))
    only_entry = _FixedSelector(registry.get_build("app", 1))

    FallbackBuildSelector([FallbackEntry(only_caller)]).pick_build_to_copy_from(
        job, _context(registry, build_filter=caller_filter)
    )
    FallbackBuildSelector([FallbackEntry(only_entry, entry_filter)]).pick_build_to_copy_from(job, _context(registry))

    assert only_caller.seen_filters[0] is caller_filter
    assert only_entry.seen_filters[0] is entry_filter


def test_fallback_does_not_treat_always_true_filter_as_no_filter():
    registry, job = _registry()
    caller_filter = SavedBuildFilter()
    always = _AlwaysTrue()
    fixed = _FixedSelector(registry.get_build("app", 2))

    FallbackBuildSelector([FallbackEntry(fixed, always)]).pick_build_to_copy_from(
        job, _context(registry, build_filter=caller_filter)
    )

    assert isinstance(fixed.seen_filters[0], AndBuildFilter)


def test_fallback_resets_last_match_for_each_entry():
    registry, job = _registry()
    ctx = _context(registry)
    ctx.last_match_build = registry.get_build("app", 3)
    fixed = _FixedSelector(registry.get_build("app", 1))

    picked = FallbackBuildSelector([fixed]).pick_build_to_copy_from(job, ctx)

    assert picked.number == 1
    assert ctx.last_match_build.number == 3
    assert isinstance(ctx.build_filter, NoBuildFilter)


def test_parameterized_selector_uses_selector_from_variable():
    registry, job = _registry()
    env = {"SELECTOR": default_codec().encode(SavedBuildSelector())}

    picked = ParameterizedBuildSelector("SELECTOR").pick_build_to_copy_from(job, _context(registry, env=env))

    assert picked.number == 2


def test_parameterized_selector_keeps_the_context_filter():
    registry, job = _registry()
    env = {"SELECTOR": default_codec().encode(LastCompletedBuildSelector())}
    ctx = _context(registry, build_filter=SavedBuildFilter(), env=env)

    assert ParameterizedBuildSelector("SELECTOR").pick_build_to_copy_from(job, ctx).number == 2


@pytest.mark.parametrize("env", [{}, {"SELECTOR": "  "}, {"SELECTOR": '<ParameterizedBuildSelector><parameter_name>SELECTOR</parameter_name></ParameterizedBuildSelector>'}])
def test_parameterized_selector_without_usable_selector_picks_nothing(env):
    registry, job = _registry()

    assert ParameterizedBuildSelector("SELECTOR").pick_build_to_copy_from(job, _context(registry, env=env)) is None


@pytest.mark.parametrize("text, message", [("<StatusBuildSelector", "Malformed"), ("<SavedBuildFilter/>", "not a build selector")])
def test_parameterized_selector_rejects_invalid_documents(text, message):
    registry, job = _registry()

    with pytest.raises(FilterConfigError, match=message):
        ParameterizedBuildSelector("SELECTOR").pick_build_to_copy_from(job, _context(registry, env={"SELECTOR": text}))
