from __future__ import annotations

import logging
import os
import tarfile
import tempfile
from pathlib import Path, PurePosixPath
from threading import Lock
from typing import IO, Any, List, Optional, Union

from pwdi.core.errors import BundleError, BundleLimitError, UnsafeBundleEntryError
from pwdi.core.ignore import load_ignore_rules, walk_files

log = logging.getLogger("pwdi.bundler")

DEFAULT_MAX_EXTRACT_ENTRIES = 200_000
DEFAULT_MAX_EXTRACT_BYTES = 16 * 1024 * 1024 * 1024

PathLike = Union[str, "os.PathLike[str]"]


class Bundler:
    """Builds and extracts directory bundles (gzip-compressed tar files).

    Bundles are written to named temporary files which the bundler keeps open,
    so a caller holding only the returned path cannot have the file vanish
    under it. They are removed by `clear()`, by leaving a `with` block, or
    when the bundler is garbage-collected.

    Not thread-safe. Use `SharedBundler` when several threads share one.

    Security notes:
    - Every archive entry is validated before anything is written; entries
      escaping the target or that are not plain files/directories fail the
      whole extraction.
    - Entry count and total size are bounded to limit decompression bombs.

    """

    def __init__(
        self,
        *,
        max_extract_entries: int = DEFAULT_MAX_EXTRACT_ENTRIES,
        max_extract_bytes: int = DEFAULT_MAX_EXTRACT_BYTES,
    ):
        self._files: List[IO[bytes]] = []
        self._max_entries = int(max_extract_entries)
        self._max_bytes = int(max_extract_bytes)

    def __enter__(self) -> "Bundler":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.clear()

    @property
    def pending(self) -> List[Path]:
        """Paths of bundles produced and not yet cleared."""

        return [Path(f.name) for f in self._files]

    def clear(self) -> None:
        """Delete every retained bundle. Safe to call repeatedly."""

        while self._files:
            handle = self._files.pop()
            try:
                handle.close()
            except FileNotFoundError:
                pass
            log.debug("bundle_cleared", extra={"bundle_path": handle.name})

    def make(self, source: PathLike) -> Path:
        """Make a bundle of `source` in a temporary location and return its path.

        Honors `.pwdiignore` at the root of `source`, or skips `.git` when
        there is none.

        Time:  O(total_bytes)
        Space: O(d * w) for the traversal stack
        """

        root = Path(source)
        if not root.is_dir():
            raise BundleError(
                "Bundle source must be an existing directory", path=str(root), operation="make"
            )

        rules = load_ignore_rules(root)
        try:
            target = tempfile.NamedTemporaryFile(prefix="pwdi_bundle_", suffix=".tar.gz")
        except OSError as e:
            raise BundleError(
                f"Couldn't create temporary file to hold the bundle: {e}", operation="make"
            ) from e

        count = 0
        try:
            with tarfile.open(fileobj=target, mode="w|gz", dereference=True) as tar:
                for path, rel in walk_files(root, rules):
                    try:
                        tar.add(str(path), arcname=rel, recursive=False)
                    except OSError as e:
                        raise BundleError(
                            f"Couldn't add file to bundle: {e}", path=str(path), operation="make"
                        ) from e
                    count += 1
            target.flush()
        except BundleError:
            target.close()
            raise
        except (OSError, tarfile.TarError) as e:
            target.close()
            raise BundleError(
                f"Couldn't finish bundle: {e}", path=str(root), operation="make"
            ) from e

        self._files.append(target)
        log.info("bundle_created", extra={"source": str(root), "files": count})
        return Path(target.name)

    def extract(self, bundle_path: PathLike, target_directory: PathLike) -> None:
        """Extract the bundle at `bundle_path` into `target_directory`.

        The target is created if missing. Existing files with the same
        relative path are overwritten.

        Time:  O(total_bytes)
        Space: O(entries) for the member list
        """

        bundle = Path(bundle_path)
        target = Path(target_directory)
        try:
            tar = tarfile.open(str(bundle), mode="r:gz")
        except (OSError, tarfile.TarError) as e:
            raise BundleError(
                f"Couldn't open bundle: {e}", path=str(bundle), operation="extract"
            ) from e

        with tar:
            try:
                members = tar.getmembers()
            except (OSError, EOFError, tarfile.TarError) as e:
                raise BundleError(
                    f"Couldn't read bundle: {e}", path=str(bundle), operation="extract"
                ) from e

            self._check_members(members, target)

            try:
                target.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise BundleError(
                    f"Couldn't create target directory: {e}", path=str(target), operation="extract"
                ) from e

            try:
                tar.extractall(path=str(target), members=members, filter="data")
            except tarfile.FilterError as e:
                raise UnsafeBundleEntryError(
                    f"Refusing unsafe bundle entry: {e}", path=str(bundle), operation="extract"
                ) from e
            except (OSError, EOFError, tarfile.TarError) as e:
                raise BundleError(
                    f"Couldn't unpack bundle: {e}", path=str(bundle), operation="extract"
                ) from e

        log.info("bundle_extracted", extra={"target": str(target), "entries": len(members)})

    def _check_members(self, members: List[tarfile.TarInfo], target: Path) -> None:
        """Reject the whole archive if any entry is unsafe or limits are exceeded."""

        if len(members) > self._max_entries:
            raise BundleLimitError(
                f"Bundle has too many entries: {len(members)} > {self._max_entries}",
                operation="extract",
            )

        base = os.path.realpath(str(target))
        total = 0
        for member in members:
            name = member.name
            if not (member.isfile() or member.isdir()):
                raise UnsafeBundleEntryError(
                    f"Refusing bundle entry that is not a file or directory: {name!r}",
                    operation="extract",
                )
            if name.startswith("/") or ".." in PurePosixPath(name).parts:
                raise UnsafeBundleEntryError(
                    f"Refusing bundle entry with unsafe path: {name!r}", operation="extract"
                )
            dest = os.path.realpath(os.path.join(base, name))
            if os.path.commonpath([base, dest]) != base:
                raise UnsafeBundleEntryError(
                    f"Refusing bundle entry outside the target: {name!r}", operation="extract"
                )

            total += int(member.size)
            if total > self._max_bytes:
                raise BundleLimitError(
                    f"Bundle total too large: {total} > {self._max_bytes}", operation="extract"
                )


class SharedBundler:
    """A `Bundler` guarded by a lock.

    Each call holds the lock for its whole duration, so concurrent requests
    are serialized.
    """

    def __init__(self, bundler: Optional[Bundler] = None):
        self._bundler = bundler if bundler is not None else Bundler()
        self._lock = Lock()

    @property
    def pending(self) -> List[Path]:
        with self._lock:
            return self._bundler.pending

    def make(self, source: PathLike) -> Path:
        with self._lock:
            return self._bundler.make(source)

    def extract(self, bundle_path: PathLike, target_directory: PathLike) -> None:
        with self._lock:
            self._bundler.extract(bundle_path, target_directory)

    def clear(self) -> None:
        with self._lock:
            self._bundler.clear()
