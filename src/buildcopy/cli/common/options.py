"""Common CLI options for the CLI."""

import typer

HomeOpt = typer.Option(
    None,
    "--home",
    help="Registry root directory (default: $BUILDCOPY_HOME or ~/.buildcopy)",
    file_okay=False,
)

VerboseOpt = typer.Option(
    False,
    "--verbose",
    "-v",
    help="Show debug logging of selection and copy decisions",
)

SelectorOpt = typer.Option(
    [],
    "--selector",
    "-s",
    help=(
        "Build selector: lastCompleted, lastSuccessful, lastStable, saved, "
        "lastWithArtifacts, triggered[:newest|oldest|global][:deps], "
        "specific:<n>, permalink:<id>, parameter:<NAME>. Repeat to fall back in order."
    ),
    show_default=False,
)

SavedOpt = typer.Option(
    False,
    "--saved",
    help="Only builds marked keep-forever",
)

DownstreamOpt = typer.Option(
    None,
    "--downstream",
    help="Only builds downstream of PROJECT#NUMBER (number, id or display name)",
)

ParamOpt = typer.Option(
    [],
    "--param",
    help="Build parameter filter (key=value). This is reusable.",
    show_default=False,
)

FilterXmlOpt = typer.Option(
    None,
    "--filter-xml",
    help="Serialized filter document (variables are expanded)",
)

UseOrOpt = typer.Option(
    False,
    "--or",
    help="Use OR instead of AND between filters",
)

NegateOpt = typer.Option(
    False,
    "--not",
    help="Invert the combined filter",
)

CopierOpt = typer.Option(
    ...,
    "--copier",
    help="Build receiving the files, as JOB#NUMBER (or JOB to pick interactively)",
)

SourceOpt = typer.Option(
    "artifacts",
    "--source",
    help="Copy from: artifacts, legacy (artifacts directory) or workspace",
)

IncludeOpt = typer.Option(
    "",
    "--include",
    help="Comma-separated include globs (default: everything)",
)

ExcludeOpt = typer.Option(
    "",
    "--exclude",
    help="Comma-separated exclude globs",
)

TargetOpt = typer.Option(
    "",
    "--target",
    help="Directory below the copier's workspace to copy into",
)

SrcBaseDirOpt = typer.Option(
    "",
    "--src-base-dir",
    help="Directory below the source root to copy from",
)

WorkspaceOpt = typer.Option(
    None,
    "--workspace",
    help="Override the copier build's workspace directory",
    file_okay=False,
)

FlattenOpt = typer.Option(
    False,
    "--flatten",
    help="Ignore directory structure of copied files",
)

FingerprintOpt = typer.Option(
    True,
    "--fingerprint/--no-fingerprint",
    help="Record MD5 fingerprints of copied files",
)

OptionalOpt = typer.Option(
    False,
    "--optional",
    help="Do not fail when no build or no file is found",
)

ResultSuffixOpt = typer.Option(
    "",
    "--result-suffix",
    help="Suffix of the COPYARTIFACT_BUILD_NUMBER_ variable",
)

EnvOpt = typer.Option(
    [],
    "--env",
    "-e",
    help="Variable used for expansion (key=value). This is reusable.",
    show_default=False,
)

ConfirmOpt = typer.Option(
    False,
    "--confirm/--no-confirm",
    help="Ask for confirmation before copying",
)

LimitOpt = typer.Option(
    20,
    "--limit",
    "-n",
    help="Number of builds to show",
)
