from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pwdi.core.bundler import DEFAULT_MAX_EXTRACT_BYTES, DEFAULT_MAX_EXTRACT_ENTRIES

_DEFAULT_MAX_UPLOAD_BYTES = 1024 * 1024 * 1024


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """Configuration for the bundle server.

    Built once at startup and handed to `create_app`; handlers read it from
    there instead of from process globals.

    Security notes:
    - `secret` is the shared secret clients salt into their tokens. It is
      never logged by the server.

    """

    base_path: Path
    secret: str
    max_upload_bytes: int = _DEFAULT_MAX_UPLOAD_BYTES
    max_extract_entries: int = DEFAULT_MAX_EXTRACT_ENTRIES
    max_extract_bytes: int = DEFAULT_MAX_EXTRACT_BYTES

    def __post_init__(self) -> None:
        if not self.secret:
            raise ValueError("secret must be non-empty")


@dataclass(frozen=True, slots=True)
class FileServerConfig:
    """Configuration for the file drop server."""

    base_path: Path
    user_id: str
    password: str
    max_upload_bytes: int = _DEFAULT_MAX_UPLOAD_BYTES

    def __post_init__(self) -> None:
        if not self.user_id or not self.password:
            raise ValueError("user_id and password must be non-empty")


def env_int(name: str, default: int) -> int:
    """Read an integer environment variable.

    Security notes:
    - Env vars are treated as trusted server configuration.

    """

    raw = os.environ.get(name, "").strip()
    if not raw:
        return int(default)
    try:
        return int(raw)
    except ValueError:
        return int(default)


def server_config_from_env(*, secret: Optional[str] = None) -> ServerConfig:
    """Build a `ServerConfig` from the environment.

    Reads:
    - PWDI_TOKEN: shared secret (required unless `secret` is given)
    - PWDI_PATH: directory to serve (default: current directory)
    - PWDI_MAX_UPLOAD_BYTES

    """

    secret = secret or os.environ.get("PWDI_TOKEN", "").strip()
    if not secret:
        raise ValueError("PWDI_TOKEN must be set")
    base_path = Path(os.environ.get("PWDI_PATH", "").strip() or ".")
    if not base_path.is_dir():
        raise ValueError(f"PWDI_PATH must point to an existing directory (given: {base_path})")
    return ServerConfig(
        base_path=base_path,
        secret=secret,
        max_upload_bytes=env_int("PWDI_MAX_UPLOAD_BYTES", _DEFAULT_MAX_UPLOAD_BYTES),
    )
