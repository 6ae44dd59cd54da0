from buildcopy.core.adapters.memory import MemoryBuildRegistry
from buildcopy.core.builds import Build, Job, JobKind, UpstreamCause
from buildcopy.core.config import Settings, UpstreamFilterStrategy
from buildcopy.core.context import PickContext
from buildcopy.core.filters import BuildFilter
from buildcopy.core.selectors import TriggeringBuildSelector


class _Reject(BuildFilter):
    def __init__(self, numbers):
        self.numbers = set(numbers)

    def is_selectable(self, candidate, context):
        return candidate.number not in self.numbers


def _setup(causes, **copier_kwargs):
    registry = MemoryBuildRegistry()
    lib = registry.add_job("lib")
    for n in (1, 3, 5, 7, 8):
        registry.add_build(Build("lib", n))
    copier = registry.add_build(Build("app", 10, causes=causes, **copier_kwargs))
    return registry, lib, copier


def _context(registry, copier, build_filter=None, strategy=UpstreamFilterStrategy.USE_OLDEST):
    return PickContext(
        registry=registry,
        copier_build=copier,
        build_filter=build_filter,
        settings=Settings(upstream_filter_strategy=strategy),
    )


def _enumerate(selector, job, context):
    numbers = []
    while (build := selector.get_next_build(job, context)) is not None:
        numbers.append(build.number)
    return numbers


_CAUSES = [UpstreamCause("lib", 3), UpstreamCause("lib", 5), UpstreamCause("lib", 1)]


def test_newest_enumerates_descending():
    registry, lib, copier = _setup(_CAUSES)
    selector = TriggeringBuildSelector(UpstreamFilterStrategy.USE_NEWEST)

    assert _enumerate(selector, lib, _context(registry, copier)) == [5, 3, 1]


def test_oldest_enumerates_ascending():
    registry, lib, copier = _setup(_CAUSES)
    selector = TriggeringBuildSelector(UpstreamFilterStrategy.USE_OLDEST)

    assert _enumerate(selector, lib, _context(registry, copier)) == [1, 3, 5]


def test_global_setting_is_used_when_requested():
    registry, lib, copier = _setup(_CAUSES)
    selector = TriggeringBuildSelector(UpstreamFilterStrategy.USE_GLOBAL_SETTING)

    ctx = _context(registry, copier, strategy=UpstreamFilterStrategy.USE_NEWEST)

    assert selector.is_use_newest(ctx) is True
    assert _enumerate(selector, lib, ctx) == [5, 3, 1]


def test_pick_skips_rejected_candidates():
    registry, lib, copier = _setup(_CAUSES)
    selector = TriggeringBuildSelector(UpstreamFilterStrategy.USE_NEWEST)

    picked = selector.pick_build_to_copy_from(lib, _context(registry, copier, build_filter=_Reject([5])))

    assert picked.number == 3


def test_duplicate_causes_are_enumerated_once():
    registry, lib, copier = _setup([UpstreamCause("lib", 3), UpstreamCause("lib", 3)])

    assert _enumerate(TriggeringBuildSelector(), lib, _context(registry, copier)) == [3]


def test_transitive_upstream_builds_are_found():
    registry, lib, _ = _setup([])
    registry.add_build(Build("middle", 2, causes=[UpstreamCause("lib", 7)]))
    copier = registry.add_build(Build("app", 11, causes=[UpstreamCause("middle", 2)]))

    assert _enumerate(TriggeringBuildSelector(), lib, _context(registry, copier)) == [7]


def test_cyclic_causes_terminate():
    registry, lib, _ = _setup([])
    registry.add_build(Build("ping", 1, causes=[UpstreamCause("pong", 1)]))
    registry.add_build(Build("pong", 1, causes=[UpstreamCause("ping", 1), UpstreamCause("lib", 5)]))
    copier = registry.add_build(Build("app", 11, causes=[UpstreamCause("ping", 1)]))

    assert _enumerate(TriggeringBuildSelector(), lib, _context(registry, copier)) == [5]


def test_upstream_dependencies_only_when_allowed():
    registry, lib, copier = _setup([UpstreamCause("lib", 1)], upstream_builds={"lib": 8})

    assert _enumerate(TriggeringBuildSelector(), lib, _context(registry, copier)) == [1]
    assert _enumerate(
        TriggeringBuildSelector(allow_upstream_dependencies=True), lib, _context(registry, copier)
    ) == [1, 8]


def test_workflow_builds_expose_no_dependencies():
    registry, lib, _ = _setup([])
    copier = registry.add_build(
        Build("pipeline", 1, kind=JobKind.WORKFLOW, causes=[UpstreamCause("lib", 1)], upstream_builds={"lib": 8})
    )

    selector = TriggeringBuildSelector(allow_upstream_dependencies=True)

    assert _enumerate(selector, lib, _context(registry, copier)) == [1]


def test_unreadable_upstream_builds_are_skipped():
    registry, lib, copier = _setup(_CAUSES)
    registry.deny(registry.get_build("lib", 3))

    assert _enumerate(TriggeringBuildSelector(), lib, _context(registry, copier)) == [1, 5]


def test_matrix_configuration_is_found_through_the_matrix_build():
    registry = MemoryBuildRegistry()
    registry.add_job("matrix", kind=JobKind.MATRIX)
    config = registry.add_job(Job("matrix/os=linux", kind=JobKind.MATRIX_CONFIG, root_name="matrix"))
    registry.add_build(Build("matrix", 4, kind=JobKind.MATRIX))
    registry.add_build(Build("matrix/os=linux", 4, kind=JobKind.MATRIX_CONFIG))
    copier = registry.add_build(Build("app", 1, causes=[UpstreamCause("matrix", 4)]))

    picked = TriggeringBuildSelector().pick_build_to_copy_from(config, _context(registry, copier))

    assert picked.key == ("matrix/os=linux", 4)


def test_no_upstream_means_no_build():
    registry, lib, copier = _setup([])

    assert TriggeringBuildSelector().pick_build_to_copy_from(lib, _context(registry, copier)) is None
