"""In-memory build registry, used directly in tests and as the base of the on-disk registry."""

from __future__ import annotations

from collections import deque

from buildcopy.core.builds import Build, Job, JobKind, UpstreamCause, candidate_job_names


class MemoryBuildRegistry:
    """In-memory job/build registry."""

    def __init__(self):
        self.jobs: dict[str, Job] = {}
        self.builds: dict[str, dict[int, Build]] = {}
        self._denied_jobs: set[str] = set()
        self._denied_builds: set[tuple[str, int]] = set()

    def add_job(self, job: Job | str, kind: JobKind = JobKind.STANDARD) -> Job:
        """Register a job (by instance or full name) and return it."""
        if isinstance(job, str):
            job = Job(full_name=job.strip("/"), kind=kind)
        self.jobs[job.full_name] = job
        self.builds.setdefault(job.full_name, {})
        return job

    def add_build(self, build: Build) -> Build:
        """Register a build, creating its job when unknown."""
        if build.job_name not in self.jobs:
            self.add_job(build.job_name, kind=build.kind)
        self.builds[build.job_name][build.number] = build
        return build

    def deny(self, item: Job | Build) -> None:
        """Make a job or build unreadable."""
        if isinstance(item, Job):
            self._denied_jobs.add(item.full_name)
        else:
            self._denied_builds.add(item.key)

    def get_job(self, name: str, base: str | None = None) -> Job | None:
        for full_name in candidate_job_names(name, base):
            job = self.jobs.get(full_name)
            if job is not None:
                return job
        return None

    def get_build(self, job_name: str, number: int) -> Build | None:
        return self.builds.get(job_name, {}).get(number)

    def list_builds(self, job_name: str, *, newest_first: bool = True) -> list[Build]:
        builds = self.builds.get(job_name, {})
        return [builds[n] for n in sorted(builds, reverse=newest_first)]

    def can_read(self, item: Job | Build) -> bool:
        if isinstance(item, Job):
            return item.full_name not in self._denied_jobs
        return item.key not in self._denied_builds

    def upstream_relationship_build(self, build: Build, upstream_job: Job) -> Build | None:
        """
        Return the newest build of `upstream_job` reachable from `build`.

        Upstream builds are reached through trigger causes and recorded
        dependency maps, transitively.
        """
        found: Build | None = None
        visited: set[tuple[str, int]] = {build.key}
        queue = deque([build])
        while queue:
            current = queue.popleft()
            for upstream in self._direct_upstreams(current):
                if upstream.key in visited:
                    continue
                visited.add(upstream.key)
                if upstream.job_name == upstream_job.full_name:
                    if found is None or upstream.number > found.number:
                        found = upstream
                queue.append(upstream)
        return found

    def _direct_upstreams(self, build: Build) -> list[Build]:
        refs = [(c.upstream_project, c.upstream_build) for c in build.causes if isinstance(c, UpstreamCause)]
        refs.extend((build.upstream_builds or {}).items())
        upstreams = []
        for job_name, number in refs:
            upstream = self.get_build(job_name.strip("/"), int(number))
            if upstream is not None:
                upstreams.append(upstream)
        return upstreams
