from __future__ import annotations

import os
import stat as stat_mod
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import FrozenSet, Iterator, List, Optional, Set, Tuple

import pathspec

from pwdi.core.errors import BundleError

IGNORE_FILE_NAME = ".pwdiignore"

# Pruned by name when no ignore file exists.
DEFAULT_PRUNED_NAMES: FrozenSet[str] = frozenset({".git"})


@dataclass(frozen=True)
class IgnoreRules:
    """Exclusion rules for one bundling run.

    Two modes:
    - `patterns` set: parsed `.pwdiignore`. Directories are never pruned, each file
      is matched by its root-relative path.
    - `patterns` unset: any node whose name is in `pruned_names` is skipped along
      with everything below it.

    """

    patterns: Optional[pathspec.GitIgnoreSpec] = None
    pruned_names: FrozenSet[str] = DEFAULT_PRUNED_NAMES

    def ignores(self, relpath: str, *, is_dir: bool) -> bool:
        """Return True if the node at `relpath` must be skipped."""

        if self.patterns is None:
            return PurePosixPath(relpath).name in self.pruned_names
        if is_dir:
            return False
        return self.patterns.match_file(relpath)


def parse_ignore_lines(lines: List[str]) -> IgnoreRules:
    """Build rules from gitignore-style lines (comments, `!`, `/` anchors)."""

    return IgnoreRules(patterns=pathspec.GitIgnoreSpec.from_lines(lines))


def load_ignore_rules(root: Path) -> IgnoreRules:
    """Load the rules for `root`, falling back to the default when the
    ignore file is absent."""

    ignore_file = Path(root) / IGNORE_FILE_NAME
    try:
        text = ignore_file.read_text(encoding="utf-8")
    except FileNotFoundError:
        return IgnoreRules()
    except (OSError, UnicodeDecodeError) as e:
        raise BundleError(
            f"Couldn't read ignore file: {e}", path=str(ignore_file), operation="read-ignore"
        ) from e
    return parse_ignore_lines(text.splitlines())


def walk_files(root: Path, rules: IgnoreRules) -> Iterator[Tuple[Path, str]]:
    """Yield `(path, relpath)` for every file under `root` the rules keep.

    Depth-first over an explicit stack. Symlinked directories are followed,
    but each real directory is entered once so link cycles terminate. The
    root itself is never tested against the rules.

    Time:  O(n) over visited nodes
    Space: O(d * w) for stack depth d and directory width w
    """

    root = Path(root)
    seen: Set[Tuple[int, int]] = set()
    stack: List[Tuple[Path, str]] = [(root, "")]

    while stack:
        path, rel = stack.pop()
        try:
            st = path.stat()
        except OSError as e:
            raise BundleError(f"Couldn't stat {path}: {e}", path=str(path), operation="walk") from e

        if stat_mod.S_ISDIR(st.st_mode):
            key = (st.st_dev, st.st_ino)
            if key in seen:
                continue
            seen.add(key)
            try:
                with os.scandir(path) as it:
                    names = [entry.name for entry in it]
            except OSError as e:
                raise BundleError(
                    f"Failed to read directory {path}: {e}", path=str(path), operation="walk"
                ) from e
            for name in names:
                child = path / name
                child_rel = f"{rel}/{name}" if rel else name
                if rules.ignores(child_rel, is_dir=child.is_dir()):
                    continue
                stack.append((child, child_rel))
        elif rel and stat_mod.S_ISREG(st.st_mode):
            yield path, rel
