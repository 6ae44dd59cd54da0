import json
import zipfile

from buildcopy.core.adapters.filesystem import FileSystemRegistry
from buildcopy.core.builds import BuildResult, CopiedArtifactsAction, JobKind, UpstreamCause, UserCause
from buildcopy.core.files import ZipVirtualFile


def _job(home, name, **data):
    path = home / "jobs" / name / "job.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


def _build(home, job, number, **data):
    path = home / "jobs" / job / "builds" / str(number) / "build.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))
    return path.parent


def test_loads_jobs_builds_and_causes(tmp_path):
    _job(tmp_path, "folder/lib")
    _job(tmp_path, "app")
    _build(tmp_path, "folder/lib", 3, result="UNSTABLE", keep_forever=True, parameters={"FLAG": True})
    _build(
        tmp_path,
        "app",
        1,
        causes=[{"upstream_project": "folder/lib", "upstream_build": 3}, {"user": "alice"}],
        upstream_builds={"folder/lib": 3},
    )
    _build(tmp_path, "app", 2, result=None, readable=False)

    registry = FileSystemRegistry(tmp_path)

    lib = registry.get_job("lib", base="folder/other")
    assert lib.full_name == "folder/lib"
    build = registry.get_build("folder/lib", 3)
    assert build.result is BuildResult.UNSTABLE
    assert build.keep_forever is True
    assert build.parameters == {"FLAG": "True"}
    assert build.artifacts_dir == tmp_path / "jobs" / "folder" / "lib" / "builds" / "3" / "archive"

    app1 = registry.get_build("app", 1)
    assert app1.causes == [UpstreamCause("folder/lib", 3), UserCause("alice")]
    assert app1.upstream_builds == {"folder/lib": 3}
    assert registry.upstream_relationship_build(app1, lib) is build

    app2 = registry.get_build("app", 2)
    assert app2.result is None
    assert registry.can_read(app2) is False
    assert [b.number for b in registry.list_builds("app")] == [2, 1]


def test_unreadable_job(tmp_path):
    _job(tmp_path, "secret", readable=False)

    registry = FileSystemRegistry(tmp_path)

    assert registry.can_read(registry.get_job("secret")) is False


def test_matrix_runs_and_modules_are_wired(tmp_path):
    _job(tmp_path, "matrix", kind="matrix")
    _job(tmp_path, "matrix/os=linux", kind="matrix_config")
    _job(tmp_path, "matrix/os=mac", kind="matrix_config")
    _job(tmp_path, "set", kind="module_set")
    _job(tmp_path, "set/core", kind="module")
    for job in ("matrix", "matrix/os=linux", "matrix/os=mac"):
        _build(tmp_path, job, 1)
    _build(tmp_path, "set", 2, modules={"set/core": 5})
    _build(tmp_path, "set/core", 5)

    registry = FileSystemRegistry(tmp_path)

    config = registry.get_job("matrix/os=linux")
    assert config.kind is JobKind.MATRIX_CONFIG
    assert config.root_full_name == "matrix"
    assert [r.job_name for r in registry.get_build("matrix", 1).runs] == ["matrix/os=linux", "matrix/os=mac"]
    assert registry.get_build("set", 2).module_builds == {"set/core": registry.get_build("set/core", 5)}


def test_workflow_builds_have_no_dependency_map(tmp_path):
    _job(tmp_path, "pipeline", kind="workflow")
    _build(tmp_path, "pipeline", 1, upstream_builds={"x": 1})

    assert FileSystemRegistry(tmp_path).get_build("pipeline", 1).upstream_builds is None


def test_zip_archive_becomes_artifact_root(tmp_path):
    _job(tmp_path, "lib")
    build_dir = _build(tmp_path, "lib", 1)
    with zipfile.ZipFile(build_dir / "archive.zip", "w") as zf:
        zf.writestr("a.jar", "a")

    build = FileSystemRegistry(tmp_path).get_build("lib", 1)

    assert isinstance(build.artifact_root, ZipVirtualFile)
    assert build.has_artifacts is True


def test_save_build_persists_actions(tmp_path):
    _job(tmp_path, "app")
    build_dir = _build(tmp_path, "app", 1, display_name="first")
    registry = FileSystemRegistry(tmp_path)
    build = registry.get_build("app", 1)
    build.add_fingerprints({"a.jar": "abc"})

    build.copied_artifacts = CopiedArtifactsAction()
    build.copied_artifacts.record_source_file(registry.get_build("app", 1), "a.jar")

    registry.save_build(build)

    data = json.loads((build_dir / "build.json").read_text())
    assert data["display_name"] == "first"
    assert data["fingerprints"] == {"a.jar": "abc"}
    assert data["copied_artifacts"] == [{"job": "app", "number": 1, "files": ["a.jar"]}]
    reloaded = FileSystemRegistry(tmp_path).get_build("app", 1)
    assert reloaded.fingerprint_action.records == {"a.jar": "abc"}
    assert reloaded.copied_artifacts.copied_artifacts() == [("app", 1, ["a.jar"])]


def test_missing_home_is_empty(tmp_path):
    registry = FileSystemRegistry(tmp_path / "nope")

    assert registry.jobs == {}
    assert len(registry.load_fingerprints()) == 0
