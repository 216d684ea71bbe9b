"""Download proxy endpoint."""

from __future__ import annotations

import re
from typing import Annotated
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Response, status

from kvault.api.deps import get_context
from kvault.context import AppContext
from kvault.exceptions import MappingNotFoundError
from kvault.services.proxy_service import download_proxy

router = APIRouter(prefix="/api/file", tags=["files"])

_UNSAFE_HEADER_CHARS_RE = re.compile(r"[^\w .\-]", re.ASCII)


def content_disposition(file_name: str) -> str:
    """Inline disposition with an ASCII fallback and an RFC 5987 UTF-8 name."""
    ascii_name = _UNSAFE_HEADER_CHARS_RE.sub("_", file_name or "")
    return f"inline; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(file_name, safe='')}"


@router.get("/{file_path:path}")
async def get_file(
    file_path: str,
    ctx: Annotated[AppContext, Depends(get_context)],
) -> Response:
    """Serve a file by Cloudreve path, restoring it from Telegram if needed.

    The bytes are fetched server-side; no Telegram URL is ever sent to the client.
    """
    try:
        served = await download_proxy(ctx, "/" + file_path.lstrip("/"))
    except MappingNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return Response(
        content=served.data,
        media_type=served.mime_type,
        headers={
            "Content-Disposition": content_disposition(served.file_name),
            "Cache-Control": "private, no-store",
        },
    )
