"""
remove.bg proxy client.

Forwards the uploaded photo as multipart form data and returns the PNG the
API sends back. Upstream error bodies are surfaced unchanged so the editor
can show them.
"""

from __future__ import annotations

import logging
from typing import Optional

import requests

from . import config

logger = logging.getLogger(__name__)


class MissingApiKeyError(RuntimeError):
    """REMOVE_BG_API_KEY is not configured."""


class RemoteRemovalError(RuntimeError):
    """remove.bg answered with a non-success status."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(f"remove.bg error {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


def remove_background_remote(
    image_bytes: bytes,
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
    size: str = "auto",
    output_format: str = "png",
    settings: Optional[config.Settings] = None,
) -> bytes:
    settings = settings or config.get_settings()
    if not settings.remove_bg_api_key:
        raise MissingApiKeyError("Missing REMOVE_BG_API_KEY")

    files = {
        "image_file": (
            filename or "upload.jpg",
            image_bytes,
            content_type or "image/jpeg",
        )
    }
    data = {"size": size or "auto", "format": output_format or "png"}

    resp = requests.post(
        settings.remove_bg_api_url,
        headers={"X-Api-Key": settings.remove_bg_api_key},
        files=files,
        data=data,
        timeout=(5, settings.request_timeout_seconds),
    )
    if not resp.ok:
        detail = resp.text or "remove.bg error"
        logger.error("remove.bg error %s: %s", resp.status_code, detail[:200])
        raise RemoteRemovalError(resp.status_code, detail)

    logger.info("remove.bg success - %d bytes", len(resp.content))
    return resp.content
