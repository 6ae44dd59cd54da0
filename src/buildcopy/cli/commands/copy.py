"""Command copying files from a selected build into another build's workspace."""

from pathlib import Path

import typer

from buildcopy.cli.common.context import AppContext, resolve_build
from buildcopy.cli.common.exits import die, exit_from_exc, ok_exit, warn_exit
from buildcopy.cli.common.options import (
    ConfirmOpt,
    CopierOpt,
    DownstreamOpt,
    EnvOpt,
    ExcludeOpt,
    FilterXmlOpt,
    FingerprintOpt,
    FlattenOpt,
    IncludeOpt,
    NegateOpt,
    OptionalOpt,
    ParamOpt,
    ResultSuffixOpt,
    SavedOpt,
    SelectorOpt,
    SourceOpt,
    SrcBaseDirOpt,
    TargetOpt,
    UseOrOpt,
    WorkspaceOpt,
)
from buildcopy.cli.common.output import out
from buildcopy.cli.common.selector_builder import build_filter, build_selector, parse_assignments
from buildcopy.core.builds import Build
from buildcopy.core.context import EnvVars
from buildcopy.core.copier import CopyArtifactError, CopyRequest, copy_artifacts
from buildcopy.core.filter_codec import FilterConfigError
from buildcopy.core.operations import (
    CopyArtifactFiles,
    CopyInterrupted,
    CopyLegacyArtifactFiles,
    CopyOperation,
    CopyWorkspaceFiles,
)

_OPERATIONS: dict[str, type[CopyOperation]] = {
    "artifacts": CopyArtifactFiles,
    "legacy": CopyLegacyArtifactFiles,
    "workspace": CopyWorkspaceFiles,
}


def _copier_env(copier_build: Build, assignments: list[str]) -> EnvVars:
    """Variables of the copier build, overridden by --env assignments."""
    env = EnvVars(copier_build.parameters)
    env["JOB_NAME"] = copier_build.job_name
    env["BUILD_NUMBER"] = str(copier_build.number)
    env.update(parse_assignments(assignments))
    return env


def copy(
    ctx: typer.Context,
    project: str = typer.Argument(..., help="Job to copy from"),
    copier: str = CopierOpt,
    selector: list[str] = SelectorOpt,
    saved: bool = SavedOpt,
    downstream: str | None = DownstreamOpt,
    param: list[str] = ParamOpt,
    filter_xml: str | None = FilterXmlOpt,
    use_or: bool = UseOrOpt,
    negate: bool = NegateOpt,
    source: str = SourceOpt,
    include: str = IncludeOpt,
    exclude: str = ExcludeOpt,
    target: str = TargetOpt,
    src_base_dir: str = SrcBaseDirOpt,
    workspace: Path | None = WorkspaceOpt,
    flatten: bool = FlattenOpt,
    fingerprint: bool = FingerprintOpt,
    optional: bool = OptionalOpt,
    result_suffix: str = ResultSuffixOpt,
    env: list[str] = EnvOpt,
    confirm: bool = ConfirmOpt,
):
    """
    Copy files from a selected build of PROJECT into the copier's workspace.
    """
    appctx: AppContext = ctx.obj

    operation_type = _OPERATIONS.get(source.strip().lower())
    if operation_type is None:
        die(f"Invalid source: '{source}' (expected one of {', '.join(_OPERATIONS)})", code=2)

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
        parse_assignments(env)
    except ValueError as e:
        die(str(e), code=2)

    copier_build = resolve_build(appctx, copier)
    target_workspace = workspace or copier_build.workspace
    if target_workspace is None:
        die(f"No workspace for {copier_build.full_display_name} (use --workspace)")

    request = CopyRequest(
        project_name=project,
        selector=chosen_selector,
        build_filter=chosen_filter,
        operation=operation_type(
            target_dir=target,
            src_base_dir=src_base_dir,
            includes=include,
            excludes=exclude,
            flatten=flatten,
            fingerprint_artifacts=fingerprint,
        ),
        optional=optional,
        result_variable_suffix=result_suffix,
    )

    out.kv(
        {
            "project": project,
            "copier": copier_build.full_display_name,
            "workspace": target_workspace,
            "source": operation_type.display_name,
        }
    )
    if confirm and not out.confirm("Copy the selected build's files?"):
        ok_exit("Cancelled")

    registry = appctx.registry
    fingerprints = registry.load_fingerprints()
    variables = _copier_env(copier_build, env)
    try:
        outcome = copy_artifacts(
            request,
            registry=registry,
            copier_build=copier_build,
            workspace=target_workspace,
            env=variables,
            settings=appctx.settings,
            fingerprint_store=fingerprints,
        )
    except (CopyArtifactError, FilterConfigError) as e:
        die(str(e))
    except CopyInterrupted as e:
        exit_from_exc(e, message=str(e), code=130)
    except OSError as e:
        exit_from_exc(e, message=f"Failed to copy artifacts: {e}")

    if outcome.build is None:
        warn_exit(f"No build of {project} selected (optional copy)", code=0)

    for build in (outcome.build, *outcome.build.runs, *outcome.build.module_builds.values(), copier_build):
        registry.save_build(build)
    registry.save_fingerprints(fingerprints)

    out.success(f"Copied from {outcome.build.full_display_name} ({outcome.result.value})")
    if copier_build.copied_artifacts is not None:
        out.copied_table(copier_build.copied_artifacts.copied_artifacts())
    if copier_build.fingerprint_action is not None:
        out.fingerprints_table(copier_build.fingerprint_action.records)
    out.kv({outcome.variable: variables[outcome.variable]})
