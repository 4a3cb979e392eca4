from __future__ import annotations

import logging
import time
from typing import Callable, Mapping, Optional
from uuid import uuid4

from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

log = logging.getLogger("pwdi.api")

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LEN = 128


def clean_request_id(raw: Optional[str], *, max_len: int = MAX_REQUEST_ID_LEN) -> str:
    """Keep a client-supplied request id only if it is fit for a log line."""

    if raw and len(raw) <= max_len and raw.isprintable():
        return raw
    return uuid4().hex


def _content_length(headers: Headers) -> Optional[int]:
    try:
        return int(headers["content-length"])
    except (KeyError, ValueError):
        return None


class TransferLogMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id and write one log line per transfer.

    `actions` names the transfer behind each HTTP method (for the bundle
    server, GET is a pull and POST a push) so log lines read as operations
    rather than routes. Byte counts come from Content-Length and are None
    for streamed bodies without one.

    Security notes:
    - Credentials, bodies and client file names are never logged.
    - The id is echoed in X-Request-ID; a client one that is long or not
      printable is replaced to keep it out of log lines.

    """

    def __init__(self, app, *, actions: Mapping[str, str]):
        super().__init__(app)
        self._actions = dict(actions)

    async def dispatch(self, request: Request, call_next: Callable):
        rid = clean_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = rid

        start = time.monotonic()
        response: Optional[Response] = None
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = rid
            return response
        finally:
            client = request.client
            log.info(
                "api_request",
                extra={
                    "request_id": rid,
                    "action": self._actions.get(request.method, request.method.lower()),
                    "client_host": client.host if client else None,
                    "authenticated": bool(getattr(request.state, "authenticated", False)),
                    "path": request.url.path,
                    "status_code": response.status_code if response is not None else None,
                    "bytes_in": _content_length(request.headers),
                    "bytes_out": _content_length(response.headers) if response is not None else None,
                    "duration_ms": int((time.monotonic() - start) * 1000),
                },
            )
