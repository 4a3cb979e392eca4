from __future__ import annotations

import logging
import os
import shutil
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import FileResponse, JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.requests import Request

from pwdi.api.auth import require_token
from pwdi.api.config import ServerConfig, server_config_from_env
from pwdi.api.middleware import TransferLogMiddleware
from pwdi.api.models import ApiError, PushOut
from pwdi.core.bundler import Bundler, SharedBundler
from pwdi.core.errors import BundleError, BundleLimitError, UnsafeBundleEntryError

log = logging.getLogger("pwdi.api")

_CHUNK = 1024 * 1024


def _bundle_error_response(exc: BundleError) -> JSONResponse:
    """Map a bundle failure to an HTTP error.

    Security notes:
    - Unsafe archives are the client's fault (400), never a server error.

    """

    if isinstance(exc, UnsafeBundleEntryError):
        status, error = 400, "unsafe_bundle"
    elif isinstance(exc, BundleLimitError):
        status, error = 413, "bundle_too_large"
    else:
        status, error = 500, "bundle_failed"
    return JSONResponse(
        status_code=status, content=ApiError(error=error, detail=str(exc)).model_dump()
    )


def create_app(cfg: ServerConfig, *, bundler: Optional[SharedBundler] = None) -> FastAPI:
    """Create the bundle server app.

    Routes (all token-authenticated):
    - GET  /  pull: bundle `cfg.base_path` and return it
    - POST /  push: extract an uploaded bundle into `cfg.base_path`

    """

    shared = bundler if bundler is not None else SharedBundler(
        Bundler(
            max_extract_entries=cfg.max_extract_entries,
            max_extract_bytes=cfg.max_extract_bytes,
        )
    )

    # Logging: safe defaults (no request bodies), can be configured by host app.
    log.setLevel(os.environ.get("PWDI_LOG_LEVEL", "INFO").upper())

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            # Bundles are kept alive for the responses streaming them.
            shared.clear()

    app = FastAPI(title="pwdi", version="0.1", lifespan=lifespan)

    app.state.cfg = cfg
    app.state.bundler = shared

    app.add_middleware(TransferLogMiddleware, actions={"GET": "pull", "POST": "push"})

    @app.exception_handler(BundleError)
    async def bundle_error_handler(request: Request, exc: BundleError) -> JSONResponse:
        log.warning(
            "bundle_error",
            extra={
                "request_id": getattr(request.state, "request_id", None),
                "operation": exc.operation,
                "error": str(exc),
            },
        )
        return _bundle_error_response(exc)

    auth = require_token(cfg.secret)

    def _save_upload_to_temp(upload: UploadFile) -> Path:
        """Persist an UploadFile to a temporary file on disk.

        Security notes:
        - Never trust the client filename; a fixed name in a fresh temp dir is used.
        - Reads in chunks and enforces the upload cap.

        """

        tmpdir = Path(tempfile.mkdtemp(prefix="pwdi_push_"))
        out = tmpdir / "bundle.tar.gz"
        total = 0
        with out.open("wb") as f:
            while True:
                chunk = upload.file.read(_CHUNK)
                if not chunk:
                    break
                total += len(chunk)
                if total > cfg.max_upload_bytes:
                    shutil.rmtree(tmpdir, ignore_errors=True)
                    raise HTTPException(status_code=413, detail="upload_too_large")
                f.write(chunk)
        return out

    @app.get("/", dependencies=[Depends(auth)])
    def pull() -> FileResponse:
        """Bundle the served directory and send it back."""

        bundle = shared.make(cfg.base_path)
        return FileResponse(
            str(bundle),
            media_type="application/gzip",
            filename="bundle.tar.gz",
        )

    @app.post("/", status_code=201, response_model=PushOut, dependencies=[Depends(auth)])
    async def push(request: Request) -> PushOut:
        """Receive a bundle and unpack it over the served directory.

        The first file field of the multipart body is the bundle, whatever
        its name (the client sends `file`).

        Security notes:
        - The bundle is untrusted; extraction refuses entries escaping the
          served directory before writing anything.

        """

        form = await request.form()
        try:
            upload = next(
                (v for _, v in form.multi_items() if isinstance(v, UploadFile)), None
            )
            if upload is None:
                raise HTTPException(status_code=400, detail="Expected a file in push message")
            path = await run_in_threadpool(_save_upload_to_temp, upload)
        finally:
            await form.close()

        try:
            await run_in_threadpool(shared.extract, path, cfg.base_path)
        finally:
            shutil.rmtree(path.parent, ignore_errors=True)
        return PushOut()

    return app


def app_from_env() -> FastAPI:
    """Factory used by Uvicorn (`uvicorn --factory pwdi.api.server:app_from_env`).

    Reads PWDI_TOKEN, PWDI_PATH and PWDI_MAX_UPLOAD_BYTES.
    """

    return create_app(server_config_from_env())
