"""
FastAPI layer for the PosterMaker editor.

Endpoints:
 - GET /healthz
 - OPTIONS /api/removebg
 - POST /api/removebg
 - GET /* (built editor, SPA fallback to index.html)
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.responses import FileResponse, PlainTextResponse, Response
from starlette.concurrency import run_in_threadpool

from . import config
from .model_loader import ModelHandle, get_model_handle
from .pipeline import process_image_bytes
from .remote import MissingApiKeyError, RemoteRemovalError, remove_background_remote

logger = logging.getLogger(__name__)

CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}
PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@dataclass
class Upload:
    data: bytes
    filename: Optional[str]
    content_type: Optional[str]
    size: str = "auto"
    format: str = "png"


class UploadTooLarge(Exception):
    """The request body exceeds MAX_UPLOAD_BYTES."""


def _plain_error(status_code: int, message: str) -> PlainTextResponse:
    return PlainTextResponse(message, status_code=status_code, headers=CORS_HEADERS)


def _declared_length(request: Request) -> Optional[int]:
    raw = request.headers.get("content-length", "")
    return int(raw) if raw.isdigit() else None


async def _read_limited_body(request: Request, limit: int) -> bytes:
    """Read a raw body, giving up as soon as it grows past `limit`."""
    chunks = []
    total = 0
    async for chunk in request.stream():
        total += len(chunk)
        if total > limit:
            raise UploadTooLarge()
        chunks.append(chunk)
    return b"".join(chunks)


async def _read_upload(request: Request, limit: int) -> Optional[Upload]:
    """Accept either a multipart `image_file` field or a raw `image/*` body."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        async with request.form() as form:
            image_file = form.get("image_file")
            if image_file is None or isinstance(image_file, str):
                return None
            if image_file.size is not None and image_file.size > limit:
                raise UploadTooLarge()
            data = await image_file.read()
            return Upload(
                data=data,
                filename=image_file.filename,
                content_type=image_file.content_type,
                size=str(form.get("size") or "auto"),
                format=str(form.get("format") or "png"),
            )

    if not content_type.startswith("image/"):
        return None
    body = await _read_limited_body(request, limit)
    if not body:
        return None
    return Upload(
        data=body,
        filename=None,
        content_type=content_type.split(";")[0].strip(),
    )


def _resolve_static(static_dir: Path, full_path: str) -> Tuple[Optional[Path], Path]:
    """Return (file under static_dir or None, index.html path)."""
    root = static_dir.resolve()
    index = root / "index.html"
    if not full_path:
        return None, index
    candidate = (root / full_path).resolve()
    if root in candidate.parents and candidate.is_file():
        return candidate, index
    return None, index


def create_app(
    settings: Optional[config.Settings] = None,
    model_handle: Optional[ModelHandle] = None,
) -> FastAPI:
    settings = settings or config.get_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))

    app = FastAPI(title="PosterMaker Background Removal Service", version="0.1.0")
    app.state.model_handle = model_handle or get_model_handle()
    logger.info("Background removal backend: %s", settings.removal_backend)

    @app.get("/healthz", response_class=PlainTextResponse)
    def healthz():
        return "OK"

    @app.options("/api/removebg")
    def removebg_preflight():
        return Response(status_code=204, headers=PREFLIGHT_HEADERS)

    @app.post("/api/removebg")
    async def removebg(request: Request):
        if settings.removal_backend == "remote" and not settings.remove_bg_api_key:
            return _plain_error(500, "Missing REMOVE_BG_API_KEY")
        declared = _declared_length(request)
        if declared is not None and declared > settings.max_upload_bytes:
            return _plain_error(413, "Image too large")
        try:
            upload = await _read_upload(request, settings.max_upload_bytes)
        except UploadTooLarge:
            return _plain_error(413, "Image too large")
        if upload is None or not upload.data:
            return _plain_error(400, "Missing image_file")

        if settings.removal_backend == "remote":
            try:
                png_bytes = await run_in_threadpool(
                    remove_background_remote,
                    upload.data,
                    upload.filename,
                    upload.content_type,
                    upload.size,
                    upload.format,
                    settings,
                )
            except MissingApiKeyError:
                return _plain_error(500, "Missing REMOVE_BG_API_KEY")
            except RemoteRemovalError as exc:
                return _plain_error(exc.status_code, exc.detail)
            except Exception as exc:  # noqa: BLE001
                logger.exception("proxy error: %s", exc)
                return _plain_error(500, "Proxy error")
        else:
            handle = request.app.state.model_handle
            try:
                png_bytes = await run_in_threadpool(process_image_bytes, upload.data, handle, settings)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Local background removal failed: %s", exc)
                return _plain_error(500, "Internal Server Error")

        return Response(
            content=png_bytes,
            media_type="image/png",
            headers={**CORS_HEADERS, "Cache-Control": "no-store"},
        )

    @app.get("/{full_path:path}")
    def editor(full_path: str):
        static_file, index = _resolve_static(Path(settings.static_dir), full_path)
        if static_file is not None:
            return FileResponse(static_file)
        if index.is_file():
            return FileResponse(index)
        return PlainTextResponse("Not Found", status_code=404)

    return app


app = create_app()
