"""Media origin: serves staged files to the automated browser page."""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, StreamingResponse

from app.config import Settings, get_settings
from services.media_files import (
    RangeNotSatisfiable,
    content_type_for,
    iter_file_range,
    parse_range,
    resolve_media_path,
)

router = APIRouter(tags=["media"])
logger = logging.getLogger(__name__)

BASE_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Cache-Control": "no-cache",
    "Accept-Ranges": "bytes",
}


@router.get("/media/{name}")
def get_media(name: str, request: Request, settings: Settings = Depends(get_settings)):
    path = resolve_media_path(settings.media_dir, name)
    if path is None:
        logger.warning("[media] %s not found in %s", name, settings.media_dir)
        return PlainTextResponse("Media not found", status_code=404, headers=BASE_HEADERS)

    file_size = path.stat().st_size
    content_type = content_type_for(path.name)
    range_header = request.headers.get("range")
    logger.debug("[media] GET %s size=%d range=%s", name, file_size, range_header or "none")

    if not range_header:
        headers = {**BASE_HEADERS, "Content-Length": str(file_size)}
        return StreamingResponse(
            iter_file_range(path, 0, file_size - 1),
            status_code=200,
            media_type=content_type,
            headers=headers,
        )

    try:
        start, end = parse_range(range_header, file_size)
    except RangeNotSatisfiable as e:
        logger.info("[media] 416 for %s: %s", name, e)
        return PlainTextResponse(
            "Range not satisfiable",
            status_code=416,
            headers={**BASE_HEADERS, "Content-Range": f"bytes */{file_size}"},
        )

    headers = {
        **BASE_HEADERS,
        "Content-Range": f"bytes {start}-{end}/{file_size}",
        "Content-Length": str(end - start + 1),
    }
    return StreamingResponse(
        iter_file_range(path, start, end),
        status_code=206,
        media_type=content_type,
        headers=headers,
    )
