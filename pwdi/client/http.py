from __future__ import annotations

import base64
import os
import shutil
import ssl
import time
import uuid
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Iterator, Mapping, Optional, Tuple, Union
from urllib.error import HTTPError, URLError
from urllib.request import HTTPSHandler, OpenerDirector, ProxyHandler, Request, build_opener

from pwdi.core.token import Clock, salt_timed

_CHUNK = 1024 * 1024


def _package_version() -> str:
    try:
        return version("pwdi")
    except PackageNotFoundError:
        return "0.1.0"


USER_AGENT = f"pwdi/{_package_version()}"


class PwdiClientError(RuntimeError):
    """Raised when a request cannot be made or completed."""


@dataclass(frozen=True, slots=True)
class HttpResponse:
    """HTTP response wrapper.

    Security notes:
    - Treat `body_bytes` as untrusted.

    """

    status: int
    headers: Mapping[str, str]
    body_bytes: bytes

    def text(self) -> str:
        return self.body_bytes.decode("utf-8", errors="replace")


def basic_auth_header(user_id: str, password: str = "") -> str:
    """Render an HTTP Basic `Authorization` header value."""

    raw = f"{user_id}:{password}".encode("utf-8")
    return "Basic " + base64.b64encode(raw).decode("ascii")


class PwdiHttpClient:
    """Minimal stdlib-only HTTP client for a pwdi bundle server.

    Every request carries a fresh timed token, computed from the shared
    secret, as the Basic user id.

    Security notes:
    - Does NOT disable TLS verification.
    - The secret itself never leaves this process; only salted tokens do.

    """

    def __init__(
        self,
        server_url: str,
        secret: str,
        *,
        use_proxy: bool = False,
        timeout: float = 30.0,
        clock: Clock = time.time,
    ):
        self.server_url = server_url
        self.secret = secret
        self.use_proxy = bool(use_proxy)
        self.timeout = float(timeout)
        self._clock = clock
        self._opener = _build_opener(self.use_proxy)

    def auth_header(self) -> str:
        """Authorization header value for the current time window."""

        token = salt_timed(self.secret, clock=self._clock)
        if token is None:
            raise PwdiClientError("Couldn't produce an authentication token")
        return basic_auth_header(token)

    def _request(self, method: str, *, data=None, headers: Optional[Mapping[str, str]] = None) -> Request:
        req = Request(url=self.server_url, data=data, method=method)
        req.add_header("User-Agent", USER_AGENT)
        req.add_header("Authorization", self.auth_header())
        for k, v in (headers or {}).items():
            req.add_header(k, v)
        return req

    def pull(self, dest_path: Union[str, Path]) -> HttpResponse:
        """GET the server's bundle and stream it into `dest_path`.

        On success `body_bytes` is empty; the bundle is on disk.
        """

        req = self._request("GET")
        try:
            with self._opener.open(req, timeout=self.timeout) as resp:
                headers = {k: v for k, v in resp.headers.items()}
                with open(dest_path, "wb") as f:
                    shutil.copyfileobj(resp, f, _CHUNK)
                return HttpResponse(status=int(resp.status), headers=headers, body_bytes=b"")
        except HTTPError as e:
            return _error_response(e)
        except (URLError, TimeoutError, ConnectionError) as e:
            raise PwdiClientError(f"network error: {e}") from e

    def push(self, bundle_path: Union[str, Path]) -> HttpResponse:
        """POST a bundle as the multipart field `file`.

        The body is streamed from disk rather than built in memory.
        """

        body, length, boundary = _multipart_file_body("file", os.path.basename(str(bundle_path)), Path(bundle_path))
        req = self._request(
            "POST",
            data=body,
            headers={
                "Content-Type": f"multipart/form-data; boundary={boundary}",
                "Content-Length": str(length),
            },
        )
        return self._do_request(req)

    def _do_request(self, req: Request) -> HttpResponse:
        """Execute a request and buffer the response body."""

        try:
            with self._opener.open(req, timeout=self.timeout) as resp:
                body = resp.read()
                headers = {k: v for k, v in resp.headers.items()}
                return HttpResponse(status=int(resp.status), headers=headers, body_bytes=body)
        except HTTPError as e:
            return _error_response(e)
        except (URLError, TimeoutError, ConnectionError) as e:
            raise PwdiClientError(f"network error: {e}") from e


def _build_opener(use_proxy: bool) -> OpenerDirector:
    """Build an opener with TLS verification on.

    Without `use_proxy`, system proxy settings are ignored.
    """

    handlers = [HTTPSHandler(context=ssl.create_default_context())]
    if not use_proxy:
        handlers.append(ProxyHandler({}))
    return build_opener(*handlers)


def _error_response(e: HTTPError) -> HttpResponse:
    body = e.read() if hasattr(e, "read") else b""
    headers = dict(getattr(e, "headers", {}) or {})
    return HttpResponse(status=int(getattr(e, "code", 0) or 0), headers=headers, body_bytes=body)


def _multipart_file_body(field_name: str, filename: str, path: Path) -> Tuple[Iterator[bytes], int, str]:
    """Encode a single-file multipart/form-data body as a chunk iterator.

    Returns (chunks, content_length, boundary).
    """

    boundary = "----pwdi-" + uuid.uuid4().hex
    crlf = "\r\n"
    head = (
        f"--{boundary}{crlf}"
        f'Content-Disposition: form-data; name="{field_name}"; filename="{filename}"{crlf}'
        f"Content-Type: application/gzip{crlf}{crlf}"
    ).encode("utf-8")
    tail = f"{crlf}--{boundary}--{crlf}".encode("utf-8")
    size = path.stat().st_size

    def chunks() -> Iterator[bytes]:
        yield head
        with path.open("rb") as f:
            while True:
                chunk = f.read(_CHUNK)
                if not chunk:
                    break
                yield chunk
        yield tail

    return chunks(), len(head) + size + len(tail), boundary
