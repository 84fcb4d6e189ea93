import logging
import os
import sys
import tempfile
import time
from collections.abc import Callable, Sequence
from typing import Any

import click

from revbuild.exceptions import (
    InvalidRevisionKindError,
    ProjectNotFoundError,
    RegistrationError,
)
from revbuild.models import (
    FailurePolicy,
    RevisionKind,
    RevisionRequest,
)
from revbuild.orchestrator import (
    Orchestrator,
    RunResult,
)
from revbuild.packaging import DotnetPackager
from revbuild.publishing import (
    CopyPublisher,
    NugetPushPublisher,
    register_package_references,
)
from revbuild.status import ExitCodes
from revbuild.utils import config, metrics
from revbuild.utils.binary import (
    MissingBinaryError,
    binary,
    check_binaries,
)
from revbuild.utils.cancellation import (
    CancellationToken,
    cancel_on_signals,
)
from revbuild.utils.environment import (
    LOG_LEVELS,
    REVBUILD_CONFIG,
    init_env,
)
from revbuild.utils.msbuild import find_project_file

REVISION_FLAGS = {
    "-b": RevisionKind.BRANCH,
    "--branch": RevisionKind.BRANCH,
    "-t": RevisionKind.TAG,
    "--tag": RevisionKind.TAG,
    "-c": RevisionKind.COMMIT,
    "--commit": RevisionKind.COMMIT,
}
OPTION_FLAGS = ("-o", "--option")


def config_file(function: Callable) -> Callable:
    help_msg = "Path to configuration file in toml format."
    function = click.option(
        "--config",
        "configfile",
        default=lambda: os.environ.get(REVBUILD_CONFIG),
        help=help_msg,
    )(function)
    return function


def log_level(function: Callable) -> Callable:
    function = click.option(
        "--log-level",
        help="log-level of the command. Defaults to INFO.",
        type=click.Choice(LOG_LEVELS),
    )(function)
    return function


def threaded(function: Callable) -> Callable:
    opt = "--thread-pool-size"
    msg = "number of threads to run in parallel (overrides the config file)."
    function = click.option(opt, type=click.IntRange(min=1), help=msg)(function)
    return function


def failure_policy(function: Callable) -> Callable:
    help_msg = (
        "what a repository does when packing one revision fails: "
        "stop and build nothing more (fail-fast) or skip it and go on (continue)."
    )
    function = click.option(
        "--failure-policy",
        type=click.Choice([p.value for p in FailurePolicy]),
        help=help_msg,
    )(function)
    return function


def metrics_file(function: Callable) -> Callable:
    help_msg = "write run metrics in prometheus text format to this file."
    function = click.option(
        "--metrics-file",
        type=click.Path(dir_okay=False, writable=True),
        help=help_msg,
    )(function)
    return function


def parse_revision_args(
    args: Sequence[str],
) -> list[tuple[RevisionKind, str, str | None]]:
    """Parse "(-c|-b|-t NAME [-o OPTION])..." keeping the given order."""
    revisions = []
    i = 0
    while i < len(args):
        flag = args[i]
        if flag.startswith("--kind="):
            try:
                kind = RevisionKind.parse(flag.split("=", 1)[1])
            except InvalidRevisionKindError as e:
                raise click.BadParameter(str(e), param_hint="REVISIONS") from None
        elif flag in REVISION_FLAGS:
            kind = REVISION_FLAGS[flag]
        else:
            raise click.BadParameter(
                f"expected one of {', '.join(REVISION_FLAGS)}, got {flag!r}",
                param_hint="REVISIONS",
            )
        if i + 1 >= len(args) or not args[i + 1].strip():
            raise click.BadParameter(
                f"{flag} requires a revision name", param_hint="REVISIONS"
            )
        name = args[i + 1]
        i += 2
        option = None
        if i + 1 < len(args) and args[i] in OPTION_FLAGS:
            option = args[i + 1]
            i += 2
        revisions.append((kind, name, option))
    if not revisions:
        raise click.BadParameter("no revision requested", param_hint="REVISIONS")
    return revisions


def report(result: RunResult) -> None:
    for e in result.errors:
        click.echo(f"error: {e}", err=True)
    for artifact in result.published:
        click.echo(f"published: {artifact.file_name}", err=True)
    if result.ok:
        status = "run succeeded"
    else:
        status = f"run failed ({len(result.errors)} error(s))"
    click.echo(status, err=True)


def finish(ctx: click.Context, result: RunResult, started: float) -> None:
    metrics.run_time.set(time.monotonic() - started)
    if path := ctx.obj.get("metrics_file"):
        metrics.write(path)
    report(result)
    sys.exit(result.exit_code)


def make_token() -> CancellationToken:
    token = CancellationToken()
    cancel_on_signals(token)
    return token


@click.group()
@config_file
@log_level
@threaded
@failure_policy
@click.option("--package-version", help="version stamped on every built package.")
@metrics_file
@click.pass_context
def root(
    ctx: click.Context,
    configfile: str | None,
    log_level: str | None,
    thread_pool_size: int | None,
    failure_policy: str | None,
    package_version: str | None,
    metrics_file: str | None,
) -> None:
    """Build packages from historical revisions of git repositories."""
    ctx.ensure_object(dict)
    init_env(log_level=log_level)
    try:
        config.init_from_toml(configfile)
        settings = config.override(
            thread_pool_size=thread_pool_size,
            failure_policy=failure_policy,
            package_version=package_version,
        ).build
    except (config.ConfigNotFound, config.InvalidConfig) as e:
        raise click.UsageError(str(e)) from None
    ctx.obj["settings"] = settings
    ctx.obj["metrics_file"] = metrics_file


@root.command(
    context_settings={"ignore_unknown_options": True},
    short_help="Build listed revisions of one project.",
)
@click.argument("project", type=click.Path(exists=True))
@click.argument("output_dir", type=click.Path(file_okay=False))
@click.argument("revisions", nargs=-1, type=click.UNPROCESSED)
@binary(["git"])
@click.pass_context
def pack(
    ctx: click.Context, project: str, output_dir: str, revisions: Sequence[str]
) -> None:
    """Build PROJECT at every listed revision and copy the packages to
    OUTPUT_DIR.

    REVISIONS is a sequence of "-c COMMIT", "-b BRANCH", "-t TAG" or
    "--kind=KIND NAME", each optionally followed by "-o OPTION" with extra
    arguments for dotnet pack.
    """
    settings: config.BuildSettings = ctx.obj["settings"]
    parsed = parse_revision_args(revisions)
    _check_dotnet(settings)
    requests = [
        RevisionRequest(
            project_locator=project, commit_id=name, pack_option=option, kind=kind
        )
        for kind, name, option in parsed
    ]

    started = time.monotonic()
    with tempfile.TemporaryDirectory(prefix="revbuild-") as build_dir:
        orchestrator = Orchestrator(
            settings,
            DotnetPackager(settings, build_dir, reuse_dirs=[output_dir]),
            publisher=CopyPublisher(output_dir),
            token=make_token(),
        )
        result = orchestrator.build(requests)
    finish(ctx, result, started)


@root.command(short_help="Build every revision referenced by a benchmark project.")
@click.argument("project", type=click.Path(exists=True))
@click.argument("feed")
@click.option(
    "--overwrite",
    "overwrite_target",
    type=click.Path(dir_okay=False),
    help="project or props file that receives the package references. "
    "Defaults to the project file of PROJECT.",
)
@click.option(
    "--default-project",
    type=click.Path(exists=True),
    default=lambda: os.getcwd(),
    help="project built for directives without ProjectPath. "
    "Defaults to the current directory.",
)
@binary(["git"])
@click.pass_context
def csproj(
    ctx: click.Context,
    project: str,
    feed: str,
    overwrite_target: str | None,
    default_project: str,
) -> None:
    """Scan PROJECT for BenchmarkTemplate attributes, build every requested
    revision, push the packages to the FEED nuget source and reference them
    from the project."""
    settings: config.BuildSettings = ctx.obj["settings"]
    _check_dotnet(settings)
    try:
        project_file = find_project_file(project)
    except ProjectNotFoundError as e:
        raise click.BadParameter(str(e), param_hint="PROJECT") from None
    project_dir = os.path.dirname(project_file)
    overwrite_target = overwrite_target or project_file

    started = time.monotonic()
    with tempfile.TemporaryDirectory(prefix="revbuild-") as build_dir:
        orchestrator = Orchestrator(
            settings,
            DotnetPackager(settings, build_dir),
            publisher=NugetPushPublisher(feed, dotnet_binary=settings.dotnet),
            token=make_token(),
        )
        result = orchestrator.execute(project_dir, default_project)
    if result.published:
        try:
            register_package_references(overwrite_target, result.published)
        except RegistrationError as e:
            logging.error(str(e))
            result.errors.append(e)
    finish(ctx, result, started)


def _check_dotnet(settings: config.BuildSettings) -> None:
    try:
        check_binaries([settings.dotnet])
    except MissingBinaryError as e:
        raise click.ClickException(str(e)) from None


def main(*args: Any, **kwargs: Any) -> None:
    try:
        root(*args, **kwargs)
    except MissingBinaryError as e:
        click.echo(str(e), err=True)
        sys.exit(ExitCodes.ERROR)
