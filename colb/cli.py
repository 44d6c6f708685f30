"""Command line interface for colb.

``main`` is the only place where errors become exit codes: resolution
errors are printed as ``Error: ...`` with exit code 2, a failed step
passes its own exit code through unchanged.
"""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Iterable, Set
import os
import shlex
import sys

from . import __version__
from .command_runner import CommandRunner, RecordingCommandRunner, SubprocessCommandRunner
from .config import BUILD_TYPES, CONFIG_FILENAME, EffectiveConfig, config_path, load, write_defaults
from .console import Console
from .dependencies import make_query
from .emitter import CommandEmitter, PlanExecutor
from .errors import ColbError, ExternalCommandFailed, WorkspaceNotFoundError
from .planner import InvocationPlanner, PlanRequest, Verb
from .workspace import PackageIndex, WorkspaceRoot, locate, resolve_packages

EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def _make_runner(dry_run: bool) -> SubprocessCommandRunner | RecordingCommandRunner:
    return RecordingCommandRunner() if dry_run else SubprocessCommandRunner()


def _make_query_runner() -> CommandRunner:
    return SubprocessCommandRunner()


def _dependency_source(config: EffectiveConfig, dry_run: bool) -> str:
    # colcon list is a process too, dry runs answer from the manifests
    if dry_run:
        return "manifest"
    return config.dependency_source


def _make_console(args: Namespace) -> Console:
    if getattr(args, "quiet", False):
        return Console("error")
    if getattr(args, "verbose", False):
        return Console("debug")
    return Console("info")


def _emit_dry_run_output(runner: RecordingCommandRunner, *, workspace: Path) -> None:
    for line in runner.iter_formatted(workspace=workspace):
        print(line)


def _add_package_arguments(parser: ArgumentParser) -> None:
    parser.add_argument(
        "packages",
        nargs="*",
        metavar="PACKAGE",
        help="Packages to work on (default: the package containing the current directory, also '.')",
    )
    parser.add_argument("-s", "--single", action="store_true", help="Do not rebuild dependencies")
    parser.add_argument("-r", "--recursive", action="store_true", help="Rebuild dependencies first")
    parser.add_argument("-n", "--dry-run", action="store_true", help="Print commands without executing them")


def _build_parser() -> ArgumentParser:
    parser = ArgumentParser(prog="colb", description="A colcon wrapper for faster change/compile/test cycles")
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-w", "--workspace", help="Workspace root (default: search upwards for .colb.toml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug output")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only print errors")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser("build", help="Build one or more packages")
    _add_package_arguments(build_parser)
    build_parser.add_argument("-t", "--skip-tests", action="store_true", help="Do not build tests")
    build_parser.add_argument("-b", "--build-type", choices=BUILD_TYPES, help="Override the configured build type")

    test_parser = subparsers.add_parser("test", help="Run the tests of a package")
    _add_package_arguments(test_parser)
    test_parser.add_argument(
        "-t",
        "--test",
        dest="test_filter",
        metavar="NAME",
        help="Build and run only this test, directly through ctest",
    )
    test_parser.add_argument("--no-build", dest="skip_rebuild", action="store_true", help="Do not rebuild the package")

    init_parser = subparsers.add_parser("init", help="Write the default configuration file")
    init_parser.add_argument("-f", "--force", action="store_true", help="Overwrite an existing configuration file")

    subparsers.add_parser("config", help="Open the configuration file in $EDITOR")

    help_parser = subparsers.add_parser("help", help="Show help for colb or one of its commands")
    help_parser.add_argument("topic", nargs="?", metavar="COMMAND", help="Command to describe")
    parser.set_defaults(subparsers=subparsers)

    return parser


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(sys.argv[1:] if argv is None else argv))
    console = _make_console(args)
    start_dir = Path.cwd()

    try:
        if args.command == "build":
            return _handle_build(args, start_dir, console)
        if args.command == "test":
            return _handle_test(args, start_dir, console)
        if args.command == "init":
            return _handle_init(args, start_dir, console)
        if args.command == "config":
            return _handle_config(args, start_dir, console)
        if args.command == "help":
            return _handle_help(args, parser)
        raise ValueError(f"Unknown command: {args.command}")
    except ExternalCommandFailed as exc:
        console.debug(str(exc))
        return exc.exit_code
    except ColbError as exc:
        console.error(str(exc))
        return EXIT_USAGE
    except KeyboardInterrupt:
        console.error("Interrupted")
        return EXIT_INTERRUPTED


def _resolve_root(args: Namespace, start_dir: Path) -> WorkspaceRoot:
    explicit = getattr(args, "workspace", None)
    if explicit:
        return WorkspaceRoot.explicit(start_dir / explicit)
    return locate(start_dir)


def _handle_build(args: Namespace, start_dir: Path, console: Console) -> int:
    request_options = dict(
        single=args.single,
        recursive=args.recursive,
        build_type=getattr(args, "build_type", None),
        skip_tests=getattr(args, "skip_tests", False),
    )
    return _run_verb(Verb.BUILD, args, start_dir, console, **request_options)


def _handle_test(args: Namespace, start_dir: Path, console: Console) -> int:
    request_options = dict(
        single=args.single,
        recursive=args.recursive,
        test_filter=getattr(args, "test_filter", None),
        skip_rebuild=getattr(args, "skip_rebuild", False),
    )
    return _run_verb(Verb.TEST, args, start_dir, console, **request_options)


def _run_verb(verb: Verb, args: Namespace, start_dir: Path, console: Console, **request_options: object) -> int:
    root = _resolve_root(args, start_dir)
    config = load(root.path)

    console.header("Workspace")
    if root.marker is not None:
        console.context(f"{root.path} (Using configuration from {root.marker.name})")
    else:
        console.context(f"{root.path} (Unconfigured)")

    index = PackageIndex.scan(root, skip=(config.build_base, config.install_base, "log"))
    console.debug(f"Packages in workspace: {', '.join(index.names()) or '<none>'}")
    packages = resolve_packages(root, start_dir, args.packages, index=index)
    request = PlanRequest(verb=verb, packages=packages, **request_options)

    planner = InvocationPlanner(root=root, config=config)
    planner.preflight(request)

    dependencies: Set[str] = set()
    if planner.wants_dependencies(request):
        source = _dependency_source(config, args.dry_run)
        query_runner = _make_query_runner() if source == "colcon" else None
        query = make_query(source, index, query_runner)
        dependencies = query.dependencies_of(packages)
        console.debug(f"Dependencies ({source}): {', '.join(sorted(dependencies)) or '<none>'}")

    plan = planner.plan(request, dependencies)

    runner = _make_runner(args.dry_run)
    emitter_console = Console("none") if args.dry_run else console
    emitter = CommandEmitter(root=root, runner=runner, console=emitter_console)
    report = PlanExecutor(emitter).run(plan)
    if isinstance(runner, RecordingCommandRunner):
        _emit_dry_run_output(runner, workspace=root.path)
    report.raise_for_status()
    return 0


def _root_or_start_dir(args: Namespace, start_dir: Path) -> WorkspaceRoot:
    """Like :func:`_resolve_root`, but outside a workspace ``start_dir`` becomes the root."""

    try:
        return _resolve_root(args, start_dir)
    except WorkspaceNotFoundError:
        if getattr(args, "workspace", None):
            raise
        return WorkspaceRoot(path=start_dir.resolve())


def _handle_init(args: Namespace, start_dir: Path, console: Console) -> int:
    root = _root_or_start_dir(args, start_dir)
    try:
        path = write_defaults(root.path, force=args.force)
    except OSError as exc:
        raise ColbError(f"Could not create '{root.path / CONFIG_FILENAME}': {exc}") from exc
    console.info(f"Initialized default configuration at '{path}'")
    return 0


def _handle_config(args: Namespace, start_dir: Path, console: Console) -> int:
    root = _root_or_start_dir(args, start_dir)
    path = config_path(root.path) or root.path / CONFIG_FILENAME
    editor = os.environ.get("EDITOR", "").strip()
    if not editor:
        raise ColbError("Couldn't read $EDITOR, set it to open the configuration file")
    command = [*shlex.split(editor), str(path)]
    try:
        return _make_runner(False).stream(command)
    except OSError as exc:
        raise ColbError(f"Couldn't run $EDITOR '{editor}': {exc}") from exc


def _handle_help(args: Namespace, parser: ArgumentParser) -> int:
    topic = getattr(args, "topic", None)
    if not topic:
        parser.print_help()
        return 0
    choices = args.subparsers.choices
    if topic not in choices:
        raise ColbError(f"Unknown command '{topic}'. Available commands: {', '.join(sorted(choices))}")
    choices[topic].print_help()
    return 0


__all__ = ["main"]
