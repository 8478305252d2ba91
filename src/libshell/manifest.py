"""libshell.toml manifest: declared dependencies and shell settings."""

from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from libshell.compose import linker_variable
from libshell.resolver import ChainResolver, NixResolver, Resolver, StaticResolver

MANIFEST_FILENAME = "libshell.toml"

DEFAULT_NATIVE_PACKAGES = ["pkg-config"]

DEFAULT_PACKAGES = [
    "pkg-config",
    "xorg.libX11",
    "xorg.libXcursor",
    "xorg.libXrandr",
    "xorg.libXi",
    "xorg.libxcb",
    "libxkbcommon",
    "vulkan-loader",
    "wayland",
    "pulseaudio",
    "linuxPackages.perf",
]

_SHELL_KEYS = {"packages", "native", "variable", "flake", "system", "subdir"}


class ManifestError(Exception):
    """The manifest file is missing, unreadable, or malformed."""


@dataclass
class Manifest:
    packages: list[str] = field(default_factory=lambda: list(DEFAULT_PACKAGES))
    native_packages: list[str] = field(default_factory=lambda: list(DEFAULT_NATIVE_PACKAGES))
    variable: str = field(default_factory=linker_variable)
    flake: str = "nixpkgs"
    system: str | None = None
    subdir: str = "lib"
    paths: dict[str, str] = field(default_factory=dict)
    source: Path | None = None


def _string_list(data: dict, key: str, default: list[str]) -> list[str]:
    value = data.get(key, default)
    if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
        raise ManifestError(f"[shell].{key} must be a list of non-empty strings")
    return list(value)


def _string(data: dict, key: str, default: str | None) -> str | None:
    value = data.get(key, default)
    if value is not None and not isinstance(value, str):
        raise ManifestError(f"[shell].{key} must be a string")
    return value


def parse_manifest(data: dict, source: Path | None = None) -> Manifest:
    """Build a Manifest from decoded TOML data."""
    unknown = set(data) - {"shell", "paths"}
    if unknown:
        raise ManifestError(f"unknown table(s): {', '.join(sorted(unknown))}")

    shell = data.get("shell", {})
    if not isinstance(shell, dict):
        raise ManifestError("[shell] must be a table")
    unknown = set(shell) - _SHELL_KEYS
    if unknown:
        raise ManifestError(f"unknown [shell] key(s): {', '.join(sorted(unknown))}")

    paths = data.get("paths", {})
    if not isinstance(paths, dict) or not all(isinstance(v, str) for v in paths.values()):
        raise ManifestError("[paths] must map package names to directory strings")
    for name, prefix in paths.items():
        if not prefix or not PurePosixPath(prefix).is_absolute():
            raise ManifestError(f"[paths].{name} must be an absolute directory, got {prefix!r}")

    return Manifest(
        packages=_string_list(shell, "packages", DEFAULT_PACKAGES),
        native_packages=_string_list(shell, "native", DEFAULT_NATIVE_PACKAGES),
        variable=_string(shell, "variable", None) or linker_variable(),
        flake=_string(shell, "flake", None) or "nixpkgs",
        system=_string(shell, "system", None) or None,
        subdir=_string(shell, "subdir", "lib"),
        paths=dict(paths),
        source=source,
    )


def load_manifest(path: Path) -> Manifest:
    """Read and validate a manifest file."""
    if not path.exists():
        raise ManifestError(f"{path} not found. Run 'libshell init' first.")
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ManifestError(f"{path}: {e}") from e
    return parse_manifest(data, source=path)


def find_manifest(start: Path | None = None) -> Path | None:
    """Look for libshell.toml in start and each of its parents."""
    start = (start or Path.cwd()).resolve()
    for directory in (start, *start.parents):
        candidate = directory / MANIFEST_FILENAME
        if candidate.is_file():
            return candidate
    return None


def _toml_str(value: str) -> str:
    # TOML basic strings take raw non-ASCII but not DEL
    return json.dumps(value, ensure_ascii=False).replace("\x7f", "\\u007f")


def _toml_list(values: list[str]) -> str:
    if not values:
        return "[]"
    items = "".join(f"    {_toml_str(v)},\n" for v in values)
    return f"[\n{items}]"


def render_manifest(manifest: Manifest) -> str:
    """Serialize a manifest back to TOML text."""
    lines = [
        "[shell]",
        f"variable = {_toml_str(manifest.variable)}",
        f"flake = {_toml_str(manifest.flake)}",
    ]
    if manifest.system:
        lines.append(f"system = {_toml_str(manifest.system)}")
    lines += [
        f"subdir = {_toml_str(manifest.subdir)}",
        f"native = {_toml_list(manifest.native_packages)}",
        f"packages = {_toml_list(manifest.packages)}",
        "",
        "# Static prefixes take precedence over nix, e.g.",
        '# wayland = "/opt/wayland"',
        "[paths]",
    ]
    lines += [f"{_toml_str(k)} = {_toml_str(v)}" for k, v in manifest.paths.items()]
    return "\n".join(lines) + "\n"


def write_default_manifest(path: Path) -> Manifest:
    manifest = Manifest(source=path)
    path.write_text(render_manifest(manifest), encoding="utf-8")
    return manifest


def build_resolver(manifest: Manifest) -> Resolver:
    """Static [paths] overrides first, then nix."""
    return ChainResolver(
        StaticResolver(manifest.paths),
        NixResolver(flake=manifest.flake, system=manifest.system),
    )
