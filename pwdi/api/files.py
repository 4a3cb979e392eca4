from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import FileResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.requests import Request

from pwdi.api.auth import require_password
from pwdi.api.config import FileServerConfig
from pwdi.api.middleware import TransferLogMiddleware
from pwdi.api.models import StoredFileOut, UploadOut
from pwdi.core.token import generate_secret

log = logging.getLogger("pwdi.api")

# Random bytes in a stored file name.
STORED_NAME_BYTES = 21

_CHUNK = 1024 * 1024


def _store_upload(upload: UploadFile, dest: Path, max_bytes: int) -> int:
    """Copy an upload to `dest` in chunks, enforcing the size cap."""

    total = 0
    with dest.open("wb") as f:
        while True:
            chunk = upload.file.read(_CHUNK)
            if not chunk:
                break
            total += len(chunk)
            if total > max_bytes:
                break
            f.write(chunk)
    if total > max_bytes:
        dest.unlink(missing_ok=True)
        raise HTTPException(status_code=413, detail="upload_too_large")
    return total


def _resolve_served_file(base: Path, relpath: str) -> Path:
    """Resolve a request path under `base`.

    Security notes:
    - Paths escaping the base directory are reported as missing (404).
    - Directories are not listed.

    """

    root = os.path.realpath(str(base))
    candidate = os.path.realpath(os.path.join(root, relpath))
    if os.path.commonpath([root, candidate]) != root or not os.path.isfile(candidate):
        raise HTTPException(status_code=404, detail="not_found")
    return Path(candidate)


def create_files_app(cfg: FileServerConfig) -> FastAPI:
    """Create the file drop app.

    Routes (all password-authenticated):
    - POST /        store every uploaded file under a random name
    - GET  /{path}  download a stored file

    """

    log.setLevel(os.environ.get("PWDI_LOG_LEVEL", "INFO").upper())

    app = FastAPI(title="pwdi files", version="0.1")
    app.state.cfg = cfg

    app.add_middleware(TransferLogMiddleware, actions={"GET": "download", "POST": "upload"})

    auth = require_password(cfg.user_id, cfg.password)

    @app.post("/", status_code=201, response_model=UploadOut, dependencies=[Depends(auth)])
    async def upload(request: Request) -> UploadOut:
        """Store each file field of a multipart upload.

        Security notes:
        - Client file names are reported back but never used on disk.

        """

        form = await request.form()
        stored: List[StoredFileOut] = []
        try:
            for _, value in form.multi_items():
                if not isinstance(value, UploadFile):
                    continue
                name = generate_secret(STORED_NAME_BYTES)
                await run_in_threadpool(
                    _store_upload, value, Path(cfg.base_path) / name, cfg.max_upload_bytes
                )
                stored.append(StoredFileOut(filename=value.filename or None, stored_as=name))
        finally:
            await form.close()

        log.info("files_stored", extra={"count": len(stored)})
        return UploadOut(files=stored, text="\n".join(s.render() for s in stored))

    @app.get("/{relpath:path}", dependencies=[Depends(auth)])
    def download(relpath: str) -> FileResponse:
        return FileResponse(str(_resolve_served_file(Path(cfg.base_path), relpath)))

    return app
