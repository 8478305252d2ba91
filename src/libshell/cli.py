"""CLI entry point: argparse setup and command dispatch."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from libshell import __version__
from libshell.compose import compose, library_dirs
from libshell.manifest import (
    MANIFEST_FILENAME,
    Manifest,
    ManifestError,
    build_resolver,
    find_manifest,
    load_manifest,
    write_default_manifest,
)
from libshell.resolver import ResolutionError
from libshell.shell import (
    SHELLS,
    compose_environment,
    default_command,
    install_hook,
    launch_session,
    remove_hook,
    render_hook,
    resolve_library_dirs,
)
from libshell.utils import error, info, print_table


def get_manifest(args: argparse.Namespace) -> Manifest:
    """Load --manifest, else the nearest libshell.toml, else the defaults."""
    if args.manifest:
        return load_manifest(Path(args.manifest).expanduser())
    found = find_manifest()
    if found is None:
        return Manifest()
    return load_manifest(found)


def cmd_init(args: argparse.Namespace) -> int:
    """Write a default libshell.toml."""
    path = Path(args.path or MANIFEST_FILENAME).expanduser()
    if path.exists() and not args.force:
        info(f"{path} already exists.")
        info("Use --force to overwrite.")
        return 0

    manifest = write_default_manifest(path)
    info(f"Wrote {path} ({len(manifest.packages)} packages, variable {manifest.variable}).")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """Resolve every declared package and show its library directory."""
    manifest = get_manifest(args)
    resolver = build_resolver(manifest)

    names = list(manifest.packages)
    names += [n for n in manifest.native_packages if n not in names]

    rows = []
    failed = 0
    for name in names:
        kinds = []
        if name in manifest.packages:
            kinds.append("runtime")
        if name in manifest.native_packages:
            kinds.append("native")
        try:
            prefix = resolver.resolve(name)
            location = library_dirs([prefix], manifest.subdir)[0]
        except ResolutionError as e:
            failed += 1
            location = f"(unresolved: {e.reason})"
        rows.append([name, "+".join(kinds), location])

    print_table(["Package", "Kind", "Library directory"], rows)
    info(f"\n{len(names)} package(s), {failed} unresolved")
    return 1 if failed else 0


def cmd_compose(args: argparse.Namespace) -> int:
    """Print the composed variable value."""
    manifest = get_manifest(args)
    dirs = resolve_library_dirs(manifest, build_resolver(manifest))

    existing = args.existing if args.existing is not None else os.environ.get(manifest.variable)
    value = compose(existing, dirs)
    if args.export:
        info(f"{manifest.variable}={value}")
    else:
        info(value)
    return 0


def cmd_hook(args: argparse.Namespace) -> int:
    """Print the shell hook, or install/remove it in an rc file."""
    if args.remove:
        rc_path = Path(args.remove).expanduser()
        if remove_hook(rc_path):
            info(f"Removed libshell block from {rc_path}.")
        else:
            info(f"{rc_path} has no libshell block.")
        return 0

    manifest = get_manifest(args)
    dirs = resolve_library_dirs(manifest, build_resolver(manifest))
    snippet = render_hook(manifest.variable, dirs, args.shell)

    if args.write:
        rc_path = Path(args.write).expanduser()
        if install_hook(snippet, rc_path):
            info(f"Updated {rc_path} with {manifest.variable} entries.")
        else:
            info(f"{rc_path} is already up to date.")
    else:
        info(snippet)
    return 0


def cmd_shell(args: argparse.Namespace) -> int:
    """Launch a session with the composed variable in its environment."""
    manifest = get_manifest(args)
    resolver = build_resolver(manifest)
    value = compose_environment(manifest, resolver)

    command = list(args.argv)
    if command and command[0] == "--":
        command = command[1:]
    command = command or default_command(os.environ)
    try:
        return launch_session(manifest.variable, value, command)
    except OSError as e:
        error(f"cannot run {command[0]}: {e.strerror}")
        return 126 if isinstance(e, PermissionError) else 127


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="libshell",
        description="Compose dynamic-linker library paths for a development shell",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument("--manifest", help=f"Path to manifest (default: nearest {MANIFEST_FILENAME})")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init
    p_init = subparsers.add_parser("init", help="Write a default manifest")
    p_init.add_argument("--path", help=f"Where to write it (default: ./{MANIFEST_FILENAME})")
    p_init.add_argument("--force", action="store_true", help="Overwrite an existing manifest")

    # list
    subparsers.add_parser("list", help="List declared packages and their library directories")

    # compose
    p_compose = subparsers.add_parser("compose", help="Print the composed variable value")
    p_compose.add_argument("--existing", help="Existing value (default: current environment)")
    p_compose.add_argument("--export", action="store_true", help="Print as NAME=VALUE")

    # hook
    p_hook = subparsers.add_parser("hook", help="Print or install the shell hook")
    p_hook.add_argument("--shell", choices=SHELLS, default="bash", help="Hook syntax")
    group = p_hook.add_mutually_exclusive_group()
    group.add_argument("--write", metavar="RC", help="Install the hook into an rc file")
    group.add_argument("--remove", metavar="RC", help="Remove the hook from an rc file")

    # shell
    p_shell = subparsers.add_parser("shell", help="Launch a shell with the composed variable")
    p_shell.add_argument(
        "argv", nargs=argparse.REMAINDER, metavar="COMMAND", help="Command to run (default: $SHELL)"
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    dispatch = {
        "init": cmd_init,
        "list": cmd_list,
        "compose": cmd_compose,
        "hook": cmd_hook,
        "shell": cmd_shell,
    }

    handler = dispatch.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    try:
        code = handler(args)
    except (ManifestError, ResolutionError) as e:
        error(str(e))
        code = 1
    sys.exit(code)
