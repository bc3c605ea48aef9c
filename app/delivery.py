"""
Streams file paste bytes to the caller, from local disk or remote storage.
"""
import itertools
import logging
from urllib.parse import quote

import httpx
from fastapi import BackgroundTasks
from fastapi.responses import FileResponse, StreamingResponse
from starlette.responses import Response

from errors import StorageError
from file_storage import resolve_local_path
from models import PasteRecord
from remote_storage import RemoteObjectResolver
from security import header_filename

logger = logging.getLogger(__name__)

DISPOSITION_MODES = ("attachment", "inline")
# Upstream answers that mean "try the next candidate" rather than "give up".
FALLBACK_STATUSES = (401, 403, 404)


def normalize_disposition(value) -> str:
    mode = str(value or "attachment").strip().lower()
    return mode if mode in DISPOSITION_MODES else "attachment"


def content_disposition(mode: str, file_name) -> str:
    safe_name = header_filename(file_name)
    quoted = quote(safe_name)
    if quoted != safe_name:
        return f"{mode}; filename*=utf-8''{quoted}"
    return f'{mode}; filename="{safe_name}"'


async def _relay(upstream: httpx.Response):
    try:
        async for chunk in upstream.aiter_bytes():
            yield chunk
    finally:
        await upstream.aclose()


async def stream_remote(
    resolver: RemoteObjectResolver,
    record: PasteRecord,
    mode: str,
    background: BackgroundTasks,
) -> Response:
    candidates = resolver.candidate_urls(record)
    selected = await resolver.select_first_accessible_url(candidates)
    if selected is None:
        logger.error(f"[download] no accessible remote URL for {record.id}")
        raise StorageError()

    client = resolver.http_client
    # The selected URL first, then whatever candidates were not probed yet.
    for url in itertools.chain([selected], candidates):
        try:
            upstream = await client.send(client.build_request("GET", url), stream=True, follow_redirects=True)
        except httpx.HTTPError as e:
            logger.warning(f"[download] remote fetch error for {record.id}: {e}")
            continue

        status = upstream.status_code
        if 200 <= status < 300:
            return StreamingResponse(
                _relay(upstream),
                media_type=record.mime_type or "application/octet-stream",
                headers={"Content-Disposition": content_disposition(mode, record.file_name)},
                background=background,
            )

        await upstream.aclose()
        logger.error(f"[download] remote fetch failed status={status} id={record.id}")
        if status not in FALLBACK_STATUSES:
            raise StorageError()

    raise StorageError()


async def deliver_file(
    record: PasteRecord,
    disposition: str,
    resolver: RemoteObjectResolver,
    background: BackgroundTasks,
) -> Response:
    """Local copy first; remote candidates only when there is no usable local copy."""
    mode = normalize_disposition(disposition)

    local_path = resolve_local_path(record.local_path)
    if local_path is not None:
        return FileResponse(
            path=local_path,
            media_type=record.mime_type or "application/octet-stream",
            filename=header_filename(record.file_name),
            content_disposition_type=mode,
            background=background,
        )

    if record.local_path:
        logger.warning(f"[download] local copy missing for {record.id}")

    if record.remote is not None:
        return await stream_remote(resolver, record, mode, background)

    raise StorageError("File not available")
