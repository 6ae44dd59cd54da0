"""Commands for inspecting builds and build selection."""

import typer

from buildcopy.cli.common.context import AppContext, resolve_build
from buildcopy.cli.common.exits import die, warn_exit
from buildcopy.cli.common.options import (
    DownstreamOpt,
    EnvOpt,
    FilterXmlOpt,
    LimitOpt,
    NegateOpt,
    ParamOpt,
    SavedOpt,
    SelectorOpt,
    UseOrOpt,
)
from buildcopy.cli.common.output import out
from buildcopy.cli.common.selector_builder import build_filter, build_selector, parse_assignments
from buildcopy.core.builds import Build
from buildcopy.core.context import EnvVars, PickContext
from buildcopy.core.filter_codec import FilterConfigError

app = typer.Typer(
    help="List builds and preview build selection",
    no_args_is_help=True,
)


@app.command("list")
def list_builds(
    ctx: typer.Context,
    job: str = typer.Argument(..., help="Job full name"),
    limit: int = LimitOpt,
):
    """
    List the builds of a job, newest first.
    """
    appctx: AppContext = ctx.obj

    found = appctx.registry.get_job(job)
    if found is None or not appctx.registry.can_read(found):
        die(f"Job not found: {job}")

    builds = [b for b in appctx.registry.list_builds(found.full_name) if appctx.registry.can_read(b)]
    if not builds:
        warn_exit(f"No builds for {found.full_name}", code=0)

    out.builds_table(builds[:limit], title=found.full_name)


@app.command()
def pick(
    ctx: typer.Context,
    job: str = typer.Argument(..., help="Job to pick a build from"),
    copier: str | None = typer.Option(
        None, "--copier", help="Build performing the selection, as JOB#NUMBER"
    ),
    selector: list[str] = SelectorOpt,
    saved: bool = SavedOpt,
    downstream: str | None = DownstreamOpt,
    param: list[str] = ParamOpt,
    filter_xml: str | None = FilterXmlOpt,
    use_or: bool = UseOrOpt,
    negate: bool = NegateOpt,
    env: list[str] = EnvOpt,
):
    """
    Show the build a copy would use.
    """
    appctx: AppContext = ctx.obj

    try:
        chosen_selector = build_selector(selector)
        chosen_filter = build_filter(
            saved=saved,
            downstream=downstream,
            params=param,
            filter_xml=filter_xml,
            use_or=use_or,
            negate=negate,
        )
        variables = EnvVars(parse_assignments(env))
    except ValueError as e:
        die(str(e), code=2)

    found = appctx.registry.get_job(job)
    if found is None or not appctx.registry.can_read(found):
        die(f"Job not found: {job}")

    copier_build = resolve_build(appctx, copier) if copier else Build(job_name=found.full_name, number=0)
    context = PickContext(
        registry=appctx.registry,
        copier_build=copier_build,
        env=variables,
        settings=appctx.settings,
        project_name=found.full_name,
        build_filter=chosen_filter,
    )

    try:
        picked = chosen_selector.pick_build_to_copy_from(found, context)
    except FilterConfigError as e:
        die(str(e), code=2)

    if picked is None:
        warn_exit(f"No build of {found.full_name} matches", code=1)

    out.success(f"Selected {picked.full_display_name}")
    out.kv(
        {
            "number": picked.number,
            "id": picked.id,
            "result": picked.result.value if picked.result else "running",
            "keep forever": "yes" if picked.keep_forever else "no",
            "parameters": ", ".join(f"{k}={v}" for k, v in sorted(picked.parameters.items())) or "-",
        }
    )
