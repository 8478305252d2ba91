"""Library search path composition for dynamic-linker environment variables."""

from __future__ import annotations

import os
import sys
from collections.abc import Iterable, Sequence
from pathlib import PurePosixPath


def linker_variable(platform: str | None = None) -> str:
    """Return the dynamic-linker search variable for a platform."""
    platform = sys.platform if platform is None else platform
    if platform == "darwin":
        return "DYLD_LIBRARY_PATH"
    return "LD_LIBRARY_PATH"


def library_dirs(prefixes: Iterable[str], subdir: str = "lib") -> list[str]:
    """Map package prefixes to their library directories, keeping order.

    "/nix/store/aaa-libX11" -> "/nix/store/aaa-libX11/lib"
    """
    return [str(PurePosixPath(prefix) / subdir) for prefix in prefixes if prefix]


def compose(
    existing: str | None,
    paths: Sequence[str],
    separator: str = os.pathsep,
) -> str:
    """Merge library directories into an existing path-list value.

    The existing value is kept verbatim as a prefix. Entries keep their order
    and are not deduplicated. Empty entries are dropped so the result never
    gains an empty segment from them. A trailing separator already present
    in ``existing`` is left alone.
    """
    joined = separator.join(p for p in paths if p)
    if not existing:
        return joined
    if not joined:
        return existing
    return f"{existing}{separator}{joined}"
