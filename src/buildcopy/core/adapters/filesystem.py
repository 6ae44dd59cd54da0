"""Build registry loaded from JSON files below `BUILDCOPY_HOME`."""

from __future__ import annotations

import json
from pathlib import Path

from buildcopy.core.adapters.memory import MemoryBuildRegistry
from buildcopy.core.builds import (
    Build,
    BuildResult,
    Cause,
    CopiedArtifactsAction,
    FingerprintAction,
    Job,
    JobKind,
    UpstreamCause,
    UserCause,
)
from buildcopy.core.files import ZipVirtualFile
from buildcopy.core.fingerprints import FingerprintMap


class FileSystemRegistry(MemoryBuildRegistry):
    """
    Registry backed by a directory of JSON files.

    Layout below `home`:

        jobs/<full/job/name>/job.json
        jobs/<full/job/name>/builds/<n>/build.json
        jobs/<full/job/name>/builds/<n>/archive/       artifacts directory
        jobs/<full/job/name>/builds/<n>/archive.zip    archived artifacts
        jobs/<full/job/name>/builds/<n>/workspace/
        fingerprints.json

    Matrix configurations are sub-jobs of the matrix job; a matrix build's
    runs are the configuration builds with the same number.
    """

    _JOB_FILE = "job.json"
    _BUILD_FILE = "build.json"
    _FINGERPRINTS_FILE = "fingerprints.json"

    def __init__(self, home: Path):
        """Create a registry and load every job and build below `home`."""
        super().__init__()
        self.home = home
        self.jobs_dir = home / "jobs"
        self._load()

    @property
    def fingerprints_path(self) -> Path:
        return self.home / self._FINGERPRINTS_FILE

    def job_dir(self, job_name: str) -> Path:
        return self.jobs_dir.joinpath(*job_name.split("/"))

    def build_dir(self, job_name: str, number: int) -> Path:
        return self.job_dir(job_name) / "builds" / str(number)

    def load_fingerprints(self) -> FingerprintMap:
        return FingerprintMap.load(self.fingerprints_path)

    def save_fingerprints(self, fingerprints: FingerprintMap) -> None:
        fingerprints.save(self.fingerprints_path)

    def _load(self) -> None:
        if not self.jobs_dir.is_dir():
            return
        self._load_jobs(self.jobs_dir, parent=None)

        module_refs: dict[tuple[str, int], dict[str, int]] = {}
        for job in list(self.jobs.values()):
            builds_dir = self.job_dir(job.full_name) / "builds"
            if not builds_dir.is_dir():
                continue
            for build_dir in builds_dir.iterdir():
                if build_dir.name.isdigit() and (build_dir / self._BUILD_FILE).is_file():
                    build, modules = self._load_build(job, build_dir)
                    self.add_build(build)
                    if modules:
                        module_refs[build.key] = modules

        self._wire_composites(module_refs)

    def _load_jobs(self, directory: Path, parent: Job | None) -> None:
        for child in sorted(directory.iterdir()):
            if not child.is_dir() or child.name == "builds":
                continue
            job_file = child / self._JOB_FILE
            current = parent
            if job_file.is_file():
                current = self._load_job(job_file, parent)
            self._load_jobs(child, current)

    def _load_job(self, job_file: Path, parent: Job | None) -> Job:
        data = json.loads(job_file.read_text(encoding="utf-8"))
        full_name = job_file.parent.relative_to(self.jobs_dir).as_posix()
        kind = JobKind(data.get("kind", JobKind.STANDARD.value))
        root_name = None
        if kind is JobKind.MATRIX_CONFIG and parent is not None:
            root_name = parent.full_name
        job = self.add_job(
            Job(full_name=full_name, kind=kind, root_name=root_name, display_name=data.get("display_name"))
        )
        if not data.get("readable", True):
            self.deny(job)
        return job

    def _load_build(self, job: Job, build_dir: Path) -> tuple[Build, dict[str, int]]:
        data = json.loads((build_dir / self._BUILD_FILE).read_text(encoding="utf-8"))
        number = int(build_dir.name)

        result = data.get("result", BuildResult.SUCCESS.value)
        workspace = data.get("workspace")
        archive_zip = build_dir / "archive.zip"
        build = Build(
            job_name=job.full_name,
            number=number,
            kind=job.kind,
            id=data.get("id"),
            display_name=data.get("display_name"),
            result=BuildResult(result) if result is not None else None,
            keep_forever=bool(data.get("keep_forever", False)),
            causes=[_parse_cause(c) for c in data.get("causes", [])],
            upstream_builds=_parse_upstream_builds(job, data),
            parameters={k: str(v) for k, v in data.get("parameters", {}).items()},
            workspace=(build_dir / workspace) if workspace else build_dir / "workspace",
            artifacts_dir=build_dir / "archive",
            artifact_root=ZipVirtualFile(archive_zip) if archive_zip.is_file() else None,
        )
        if data.get("fingerprints"):
            build.fingerprint_action = FingerprintAction(dict(data["fingerprints"]))
        if data.get("copied_artifacts"):
            action = CopiedArtifactsAction()
            for entry in data["copied_artifacts"]:
                for filename in entry.get("files", []):
                    action.sources.setdefault((entry["job"], int(entry["number"])), set()).add(filename)
            build.copied_artifacts = action
        if not data.get("readable", True):
            self.deny(build)
        modules = {name.strip("/"): int(n) for name, n in data.get("modules", {}).items()}
        return build, modules

    def _wire_composites(self, module_refs: dict[tuple[str, int], dict[str, int]]) -> None:
        for job in self.jobs.values():
            if job.kind is not JobKind.MATRIX_CONFIG or job.root_name is None:
                continue
            for number, run in sorted(self.builds.get(job.full_name, {}).items()):
                parent = self.get_build(job.root_name, number)
                if parent is not None:
                    parent.runs.append(run)

        for (job_name, number), modules in module_refs.items():
            build = self.get_build(job_name, number)
            for module_name, module_number in sorted(modules.items()):
                module_build = self.get_build(module_name, module_number)
                if build is not None and module_build is not None:
                    build.module_builds[module_name] = module_build

    def save_build(self, build: Build) -> None:
        """Persist the fingerprint and provenance actions of `build`."""
        path = self.build_dir(build.job_name, build.number) / self._BUILD_FILE
        data = json.loads(path.read_text(encoding="utf-8")) if path.is_file() else {}
        if build.fingerprint_action is not None:
            data["fingerprints"] = dict(sorted(build.fingerprint_action.records.items()))
        if build.copied_artifacts is not None:
            data["copied_artifacts"] = [
                {"job": job, "number": number, "files": files}
                for job, number, files in build.copied_artifacts.copied_artifacts()
            ]
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def _parse_cause(data: dict) -> Cause:
    if "upstream_project" in data:
        return UpstreamCause(upstream_project=data["upstream_project"].strip("/"), upstream_build=int(data["upstream_build"]))
    return UserCause(user=data.get("user", ""))


def _parse_upstream_builds(job: Job, data: dict) -> dict[str, int] | None:
    if not job.kind.tracks_upstream:
        return None
    return {name.strip("/"): int(n) for name, n in data.get("upstream_builds", {}).items()}
