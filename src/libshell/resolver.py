"""Dependency resolution: map package names to store prefixes via nix or a static table."""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import PurePosixPath


class ResolutionError(Exception):
    """A declared dependency could not be resolved to a directory."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"cannot resolve {name}: {reason}")
        self.name = name
        self.reason = reason


@dataclass(frozen=True)
class Resolution:
    name: str
    prefix: str


def _check_prefix(name: str, prefix: str) -> str:
    prefix = prefix.strip()
    if not prefix:
        raise ResolutionError(name, "resolved to an empty path")
    if not PurePosixPath(prefix).is_absolute():
        raise ResolutionError(name, f"resolved to a relative path: {prefix}")
    return prefix


class Resolver:
    """Base resolver. Subclasses implement resolve()."""

    def resolve(self, name: str) -> str:
        raise NotImplementedError

    def resolve_all(self, names: Iterable[str]) -> list[Resolution]:
        """Resolve every name in declaration order. Stops at the first failure."""
        return [Resolution(name, self.resolve(name)) for name in names]


class StaticResolver(Resolver):
    """Resolve names from a fixed {name: prefix} table."""

    def __init__(self, mapping: Mapping[str, str] | None = None) -> None:
        self.mapping = dict(mapping or {})

    def resolve(self, name: str) -> str:
        if name not in self.mapping:
            raise ResolutionError(name, "no entry in static table")
        return _check_prefix(name, self.mapping[name])


class NixResolver(Resolver):
    """Resolve nixpkgs attribute paths (e.g. "xorg.libX11") with the nix CLI.

    The library output is preferred when the package has one, the default
    output otherwise. The chosen output is realised in the store so the
    returned prefix exists on disk.
    """

    NIX_FLAGS = ["--extra-experimental-features", "nix-command flakes"]

    def __init__(
        self,
        flake: str = "nixpkgs",
        system: str | None = None,
        nix: str = "nix",
    ) -> None:
        self.flake = flake
        self.system = system
        self.nix = nix

    def installable(self, name: str) -> str:
        if self.system:
            return f"{self.flake}#legacyPackages.{self.system}.{name}"
        return f"{self.flake}#{name}"

    def _run(self, name: str, args: list[str]) -> str:
        if shutil.which(self.nix) is None:
            raise ResolutionError(name, f"'{self.nix}' executable not found")
        cmd = [self.nix, *self.NIX_FLAGS, *args]
        result = subprocess.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            detail = result.stderr.strip().splitlines()
            reason = detail[-1] if detail else f"exit status {result.returncode}"
            raise ResolutionError(name, reason)
        return result.stdout.strip()

    def library_output(self, name: str) -> str:
        """Return "lib" if the package has a lib output, else "out"."""
        return self._run(name, [
            "eval", "--raw", self.installable(name),
            "--apply", 'p: if builtins.elem "lib" (p.outputs or []) then "lib" else "out"',
        ]) or "out"

    def resolve(self, name: str) -> str:
        output = self.library_output(name)
        out = self._run(name, [
            "build", "--no-link", "--print-out-paths",
            f"{self.installable(name)}^{output}",
        ])
        # One path per line; a single output was requested.
        first = out.splitlines()[0] if out else ""
        return _check_prefix(name, first)


class ChainResolver(Resolver):
    """Try each resolver in order; the first success wins."""

    def __init__(self, *resolvers: Resolver) -> None:
        self.resolvers = list(resolvers)

    def resolve(self, name: str) -> str:
        reasons = []
        for resolver in self.resolvers:
            try:
                return resolver.resolve(name)
            except ResolutionError as e:
                reasons.append(e.reason)
        raise ResolutionError(name, "; ".join(reasons) or "no resolvers configured")
