import subprocess

import pytest

from libshell import shell as shell_mod
from libshell.manifest import Manifest
from libshell.resolver import ResolutionError, StaticResolver
from libshell.shell import (
    END_MARKER,
    START_MARKER,
    compose_environment,
    install_hook,
    launch_session,
    remove_hook,
    render_hook,
)


@pytest.fixture
def manifest():
    return Manifest(packages=["xorg.libX11", "wayland"], variable="LD_LIBRARY_PATH")


@pytest.fixture
def resolver():
    return StaticResolver({
        "xorg.libX11": "/nix/store/aaa-libX11",
        "wayland": "/nix/store/bbb-wayland",
    })


def test_compose_environment_fresh(manifest, resolver):
    value = compose_environment(manifest, resolver, environ={})
    assert value == "/nix/store/aaa-libX11/lib:/nix/store/bbb-wayland/lib"


def test_compose_environment_keeps_existing(manifest, resolver):
    environ = {"LD_LIBRARY_PATH": "/usr/local/lib"}
    value = compose_environment(manifest, resolver, environ=environ)
    assert value == "/usr/local/lib:/nix/store/aaa-libX11/lib:/nix/store/bbb-wayland/lib"
    assert environ == {"LD_LIBRARY_PATH": "/usr/local/lib"}


def test_compose_environment_resolution_failure(manifest):
    with pytest.raises(ResolutionError):
        compose_environment(manifest, StaticResolver({"wayland": "/x"}), environ={})


def test_launch_session_sets_variable_on_copy(monkeypatch):
    seen = {}

    def fake_run(cmd, env=None, **kwargs):
        seen["cmd"] = cmd
        seen["env"] = env
        return subprocess.CompletedProcess(cmd, 3)

    monkeypatch.setattr(shell_mod.subprocess, "run", fake_run)
    environ = {"SHELL": "/bin/zsh", "LD_LIBRARY_PATH": "/old"}
    code = launch_session("LD_LIBRARY_PATH", "/old:/new", environ=environ)
    assert code == 3
    assert seen["cmd"] == ["/bin/zsh"]
    assert seen["env"]["LD_LIBRARY_PATH"] == "/old:/new"
    assert environ["LD_LIBRARY_PATH"] == "/old"


def record_run(monkeypatch):
    seen = {}

    def fake_run(cmd, env=None, **kwargs):
        seen["cmd"] = cmd
        return subprocess.CompletedProcess(cmd, 0)

    monkeypatch.setattr(shell_mod.subprocess, "run", fake_run)
    return seen


def test_launch_session_explicit_command(monkeypatch):
    seen = record_run(monkeypatch)
    assert launch_session("X", "/a", ["cargo", "run"], environ={}) == 0
    assert seen["cmd"] == ["cargo", "run"]


def test_launch_session_falls_back_to_sh(monkeypatch):
    seen = record_run(monkeypatch)
    launch_session("X", "/a", environ={})
    assert seen["cmd"] == ["/bin/sh"]


def test_render_bash_hook():
    hook = render_hook("LD_LIBRARY_PATH", ["/a/lib", "/b/lib"])
    assert hook == 'export LD_LIBRARY_PATH="${LD_LIBRARY_PATH:+$LD_LIBRARY_PATH:}"/a/lib:/b/lib'


def test_render_bash_hook_quotes_spaces():
    hook = render_hook("LD_LIBRARY_PATH", ["/my libs/lib"])
    assert hook.endswith("'/my libs/lib'")


def test_render_fish_hook():
    hook = render_hook("LD_LIBRARY_PATH", ["/a/lib", "/b/lib"], "fish")
    assert hook == "set -gx --path LD_LIBRARY_PATH $LD_LIBRARY_PATH /a/lib /b/lib"


def test_render_hook_without_paths():
    assert render_hook("LD_LIBRARY_PATH", []).startswith("#")


def test_render_hook_unknown_shell():
    with pytest.raises(ValueError):
        render_hook("LD_LIBRARY_PATH", ["/a"], "tcsh")


def test_install_hook_appends_block_and_backs_up(tmp_path):
    rc = tmp_path / ".bashrc"
    rc.write_text("alias ll='ls -l'")
    assert install_hook("export A=1", rc) is True
    content = rc.read_text()
    assert content.startswith("alias ll='ls -l'\n")
    assert f"{START_MARKER}\nexport A=1\n{END_MARKER}\n" in content
    assert (tmp_path / ".bashrc.libshell-backup").read_text() == "alias ll='ls -l'"


def test_install_hook_idempotent_and_replaces(tmp_path):
    rc = tmp_path / ".bashrc"
    assert install_hook("export A=1", rc) is True
    assert install_hook("export A=1", rc) is False
    assert install_hook("export A=2", rc) is True
    content = rc.read_text()
    assert "export A=1" not in content
    assert content.count(START_MARKER) == 1


def test_remove_hook(tmp_path):
    rc = tmp_path / ".bashrc"
    rc.write_text("keep\n")
    install_hook("export A=1", rc)
    assert remove_hook(rc) is True
    assert START_MARKER not in rc.read_text()
    assert "keep" in rc.read_text()
    assert remove_hook(rc) is False


def test_install_hook_replaces_block_in_place(tmp_path):
    rc = tmp_path / ".bashrc"
    rc.write_text(f"first\n{START_MARKER}\nexport A=1\n{END_MARKER}\nlast\n")
    assert install_hook("export A=2", rc) is True
    assert rc.read_text() == f"first\n{START_MARKER}\nexport A=2\n{END_MARKER}\nlast\n"
    assert remove_hook(rc) is True
    assert rc.read_text() == "first\nlast\n"
