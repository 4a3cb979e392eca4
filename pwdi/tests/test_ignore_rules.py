from __future__ import annotations

import os
from pathlib import Path

import pytest

from pwdi.core.errors import BundleError
from pwdi.core.ignore import IGNORE_FILE_NAME, load_ignore_rules, parse_ignore_lines, walk_files


def _touch(root: Path, rel: str, data: str = "x") -> None:
    p = root / rel
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(data, encoding="utf-8")


def _walk(root: Path) -> set:
    return {rel for _, rel in walk_files(root, load_ignore_rules(root))}


def test_default_rules_prune_git_directories(tmp_path: Path) -> None:
    _touch(tmp_path, "a.txt")
    _touch(tmp_path, "sub/b.txt")
    _touch(tmp_path, ".git/config")
    _touch(tmp_path, "sub/.git/HEAD")
    _touch(tmp_path, ".gitignore")

    assert _walk(tmp_path) == {"a.txt", "sub/b.txt", ".gitignore"}


def test_relative_paths_use_forward_slashes(tmp_path: Path) -> None:
    _touch(tmp_path, "one/two/three.txt")
    paths = list(walk_files(tmp_path, load_ignore_rules(tmp_path)))
    assert [rel for _, rel in paths] == ["one/two/three.txt"]
    assert paths[0][0] == tmp_path / "one" / "two" / "three.txt"


def test_empty_directory_yields_nothing(tmp_path: Path) -> None:
    (tmp_path / "empty").mkdir()
    assert _walk(tmp_path) == set()


def test_ignore_file_patterns(tmp_path: Path) -> None:
    _touch(tmp_path, IGNORE_FILE_NAME, "# logs\n*.log\n!keep.log\nbuild/\n/top.txt\n")
    _touch(tmp_path, "a.txt")
    _touch(tmp_path, "b.log")
    _touch(tmp_path, "keep.log")
    _touch(tmp_path, "build/out.bin")
    _touch(tmp_path, "top.txt")
    _touch(tmp_path, "sub/top.txt")
    _touch(tmp_path, "sub/deep.log")

    assert _walk(tmp_path) == {IGNORE_FILE_NAME, "a.txt", "keep.log", "sub/top.txt"}


def test_ignore_file_replaces_default_rule(tmp_path: Path) -> None:
    # With an ignore file present, .git is only skipped if a pattern says so.
    _touch(tmp_path, IGNORE_FILE_NAME, "*.tmp\n")
    _touch(tmp_path, ".git/config")
    assert ".git/config" in _walk(tmp_path)

    _touch(tmp_path, IGNORE_FILE_NAME, ".git/\n")
    assert ".git/config" not in _walk(tmp_path)


def test_rules_never_prune_directories_when_ignore_file_present() -> None:
    rules = parse_ignore_lines(["build/", "*.log"])
    assert rules.ignores("build", is_dir=True) is False
    assert rules.ignores("build/x.o", is_dir=False) is True
    assert rules.ignores("x.log", is_dir=False) is True
    assert rules.ignores("x.txt", is_dir=False) is False


def test_unreadable_ignore_file_is_an_error(tmp_path: Path) -> None:
    (tmp_path / IGNORE_FILE_NAME).mkdir()
    with pytest.raises(BundleError):
        load_ignore_rules(tmp_path)


def test_symlink_cycles_terminate(tmp_path: Path) -> None:
    _touch(tmp_path, "a/file.txt")
    try:
        os.symlink(tmp_path, tmp_path / "a" / "loop", target_is_directory=True)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported")

    found = _walk(tmp_path)
    assert "a/file.txt" in found
    assert not any(rel.count("loop") > 1 for rel in found)
