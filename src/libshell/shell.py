"""Session launching, hook rendering, and rc-file management of the hook block."""

from __future__ import annotations

import os
import shlex
import shutil
import subprocess
from collections.abc import Mapping
from pathlib import Path

from libshell.compose import compose, library_dirs
from libshell.manifest import Manifest
from libshell.resolver import Resolver

START_MARKER = "# >>> libshell managed >>>"
END_MARKER = "# <<< libshell managed <<<"

SHELLS = ("bash", "fish")


def resolve_library_dirs(manifest: Manifest, resolver: Resolver) -> list[str]:
    """Library directories of the manifest's runtime packages, in declaration order."""
    resolved = resolver.resolve_all(manifest.packages)
    return library_dirs((r.prefix for r in resolved), manifest.subdir)


def compose_environment(
    manifest: Manifest,
    resolver: Resolver,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Resolve the manifest's packages and compose the new variable value.

    Raises ResolutionError if any package cannot be resolved.
    """
    environ = os.environ if environ is None else environ
    return compose(environ.get(manifest.variable), resolve_library_dirs(manifest, resolver))


def default_command(environ: Mapping[str, str]) -> list[str]:
    return [environ.get("SHELL") or "/bin/sh"]


def launch_session(
    variable: str,
    value: str,
    command: list[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> int:
    """Run command (default: the user's shell) with variable set to value.

    The caller's environment is copied, never modified. Returns the exit code.
    """
    env = dict(os.environ if environ is None else environ)
    env[variable] = value
    cmd = command or default_command(env)
    return subprocess.run(cmd, env=env).returncode


def render_hook(variable: str, paths: list[str], shell: str = "bash") -> str:
    """Render a shell snippet that appends paths to variable when sourced."""
    if shell not in SHELLS:
        raise ValueError(f"unsupported shell: {shell} (expected one of {', '.join(SHELLS)})")
    if not any(paths):
        return f"# libshell: no library paths for {variable}"
    if shell == "bash":
        joined = shlex.quote(os.pathsep.join(p for p in paths if p))
        # ${VAR:+$VAR:} keeps the old value as a prefix without a leading ':'
        return f'export {variable}="${{{variable}:+${variable}{os.pathsep}}}"{joined}'
    quoted = " ".join(shlex.quote(p) for p in paths if p)
    return f"set -gx --path {variable} ${variable} {quoted}"


def _split_block(content: str) -> tuple[str, str | None, str]:
    """Split rc content into (before, managed block or None, after)."""
    start = content.find(START_MARKER)
    end = content.find(END_MARKER, start) if start != -1 else -1
    if end == -1:
        return content, None, ""
    end += len(END_MARKER)
    if content.startswith("\n", end):
        end += 1
    return content[:start], content[start:end], content[end:]


def install_hook(snippet: str, rc_path: Path) -> bool:
    """Write snippet into rc_path inside the managed block. Returns True if modified.

    An existing block is replaced where it stands; otherwise the block is
    appended. The first modification leaves a .libshell-backup copy.
    """
    content = rc_path.read_text() if rc_path.exists() else ""
    before, current, after = _split_block(content)
    block = f"{START_MARKER}\n{snippet}\n{END_MARKER}\n"
    if current == block:
        return False

    backup_path = rc_path.with_name(f"{rc_path.name}.libshell-backup")
    if rc_path.exists() and not backup_path.exists():
        shutil.copy2(rc_path, backup_path)

    if current is not None:
        rc_path.write_text(before + block + after)
    elif before:
        rc_path.write_text(before.rstrip("\n") + "\n\n" + block)
    else:
        rc_path.write_text(block)
    return True


def remove_hook(rc_path: Path) -> bool:
    """Remove the managed block from rc_path. Returns True if modified."""
    if not rc_path.exists():
        return False
    before, current, after = _split_block(rc_path.read_text())
    if current is None:
        return False
    rc_path.write_text(before + after)
    return True
