"""HTTP front end: index page and single-file upload endpoint returning the JSON report."""
import asyncio
import os
import uuid

from pathlib import Path
from typing import Optional

from starlette.applications import Starlette
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException
from starlette.requests import Request
from starlette.responses import FileResponse, JSONResponse
from starlette.routing import Route

from filetriage.config import (
    logger, load_settings, Settings, INDEX_HTML_PATH, UPLOAD_CHUNK_SIZE, MAX_CONCURRENT_ANALYSES,
)
from filetriage.report import analyze_file, AnalysisError
from filetriage.utils import sanitize_filename, format_size

# Client-facing body for fatal analysis failures.
_ANALYSIS_FAILED = "[analyze_file] The uploaded file could not be analyzed."


class UploadError(Exception):
    """The request does not carry a usable file upload."""

    def __init__(self, msg: str, status_code: int = 400):
        super().__init__(msg)
        self.status_code = status_code


def ensure_upload_dir(upload_dir: str) -> Path:
    """Create the upload root. Safe to call when it already exists."""
    path = Path(upload_dir).resolve()
    path.mkdir(parents=True, exist_ok=True)
    return path


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


async def _read_upload_field(request: Request) -> UploadFile:
    content_type = request.headers.get("content-type", "")
    if not content_type.lower().startswith("multipart/form-data"):
        raise UploadError("[upload] Expected a multipart/form-data upload.")
    try:
        form = await request.form(max_files=1)
    except (MultiPartException, HTTPException, ValueError) as e:
        detail = getattr(e, "message", None) or getattr(e, "detail", None) or str(e)
        raise UploadError(f"[upload] Malformed multipart body: {detail}")

    for _, value in form.multi_items():
        if isinstance(value, UploadFile):
            if not value.filename:
                raise UploadError("[upload] Upload is missing a filename.")
            return value
    raise UploadError("[upload] No file part found in the upload.")


async def _store_upload(upload: UploadFile, upload_root: Path, max_bytes: int) -> str:
    """Copy the upload to a unique path under *upload_root* in chunks; returns the path."""
    target = upload_root / f"{uuid.uuid4().hex}_{sanitize_filename(upload.filename)}"
    written = 0
    out = await asyncio.to_thread(open, target, "wb")
    try:
        while True:
            chunk = await upload.read(UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if written > max_bytes:
                raise UploadError(f"[upload] Upload exceeds the {format_size(max_bytes)} limit.", status_code=413)
            await asyncio.to_thread(out.write, chunk)
    except BaseException:
        out.close()
        target.unlink(missing_ok=True)
        raise
    # The artifact must be complete on disk before analysis starts.
    await asyncio.to_thread(out.close)
    logger.info(f"Stored upload '{upload.filename}' as '{target}' ({written} bytes)")
    return str(target)


async def index(request: Request):
    return FileResponse(request.app.state.index_path, media_type="text/html")


async def health(request: Request):
    settings: Settings = request.app.state.settings
    return JSONResponse({"status": "ok", "probes": list(settings.enabled_probes)})


async def upload(request: Request):
    settings: Settings = request.app.state.settings
    try:
        field = await _read_upload_field(request)
        try:
            filepath = await _store_upload(field, request.app.state.upload_root, settings.max_upload_bytes)
        finally:
            await field.close()
    except UploadError as e:
        logger.warning(f"Rejected upload: {e}")
        return _error(str(e), e.status_code)

    try:
        async with request.app.state.analysis_semaphore:
            report = await analyze_file(filepath, settings)
    except AnalysisError as e:
        # Server-side paths stay in the log.
        logger.error(str(e))
        return _error(_ANALYSIS_FAILED, 500)
    except Exception as e:
        logger.error(f"Unexpected failure analyzing '{filepath}': {type(e).__name__}: {e}", exc_info=True)
        return _error(_ANALYSIS_FAILED, 500)
    finally:
        if settings.delete_after_analysis:
            try:
                os.remove(filepath)
            except OSError as e:
                logger.warning(f"Could not delete '{filepath}' after analysis: {e}")

    return JSONResponse(report.to_dict())


def create_app(settings: Optional[Settings] = None, index_path: Optional[str] = None) -> Starlette:
    """Build the ASGI app. Creates the upload directory once, before any request is served."""
    settings = settings or load_settings()
    app = Starlette(routes=[
        Route("/", index, methods=["GET"]),
        Route("/health", health, methods=["GET"]),
        Route("/upload", upload, methods=["POST"]),
    ])
    app.state.settings = settings
    app.state.upload_root = ensure_upload_dir(settings.upload_dir)
    app.state.index_path = str(index_path or INDEX_HTML_PATH)
    app.state.analysis_semaphore = asyncio.Semaphore(MAX_CONCURRENT_ANALYSES)
    logger.info(f"Upload directory: {app.state.upload_root}")
    logger.info(f"Enabled probes: {', '.join(settings.enabled_probes) or '(none)'}")
    return app
