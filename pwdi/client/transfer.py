from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from pwdi.client.http import PwdiClientError, PwdiHttpClient
from pwdi.core.bundler import Bundler
from pwdi.core.errors import BundleError

log = logging.getLogger("pwdi.client")

# Receives progress lines meant for the user.
Progress = Callable[[str], None]


@dataclass(frozen=True, slots=True)
class TransferResult:
    """Outcome of a push or pull, ready to show to a user."""

    ok: bool
    message: str
    status: int = 0


def push_directory(
    client: PwdiHttpClient,
    bundler: Bundler,
    working_directory: Union[str, Path],
    progress: Optional[Progress] = None,
) -> TransferResult:
    """Bundle `working_directory` and push it to the server (expects 201)."""

    try:
        bundle = bundler.make(working_directory)
    except BundleError as e:
        return TransferResult(ok=False, message=f"Couldn't make a bundle of the directory: {e}")

    if progress is not None:
        progress("Pushing bundle to server...")
    try:
        response = client.push(bundle)
    except (PwdiClientError, OSError) as e:
        return TransferResult(ok=False, message=f"There were issues with the push request: {e}")

    if response.status == 201:
        return TransferResult(ok=True, message="Push accepted!", status=response.status)
    return TransferResult(
        ok=False,
        message=f"There were issues with the push request: status {response.status}",
        status=response.status,
    )


def pull_directory(
    client: PwdiHttpClient,
    bundler: Bundler,
    working_directory: Union[str, Path],
    progress: Optional[Progress] = None,
) -> TransferResult:
    """Pull the server's bundle and extract it over `working_directory` (expects 200)."""

    with tempfile.TemporaryDirectory(prefix="pwdi_pull_") as tmp:
        dest = Path(tmp) / "bundle.tar.gz"
        try:
            response = client.pull(dest)
        except (PwdiClientError, OSError) as e:
            return TransferResult(ok=False, message=f"There were issues with the pull request: {e}")

        if response.status != 200:
            return TransferResult(
                ok=False,
                message=f"There were issues with the pull request: status {response.status}",
                status=response.status,
            )

        log.debug("bundle_pulled", extra={"bytes": dest.stat().st_size})
        if progress is not None:
            progress("Extracting bundle...")
        try:
            bundler.extract(dest, working_directory)
        except BundleError as e:
            return TransferResult(
                ok=False,
                message=f"Couldn't extract the pulled bundle: {e}",
                status=response.status,
            )

    return TransferResult(ok=True, message="Pull done!", status=200)
