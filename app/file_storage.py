"""
Local upload directory and storage dispatch for new file pastes.
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

import config
from errors import FileTooLarge, StorageError
from models import RemoteLocator, UploadedFile
from remote_storage import S3ObjectStorage
from security import normalize_mime_type, sanitize_filename, validate_path_traversal
from utils.code_generator import generate_id

logger = logging.getLogger(__name__)

UPLOAD_DIR = config.UPLOAD_DIR
CHUNK_SIZE = 64 * 1024


@dataclass
class StoredFile:
    local_path: Optional[str] = None
    remote: Optional[RemoteLocator] = None


async def read_upload(upload: UploadFile, max_size: Optional[int] = None) -> UploadedFile:
    """Read a multipart upload fully, refusing anything past max_size."""
    limit = config.MAX_FILE_SIZE if max_size is None else max_size
    chunks = []
    received = 0
    try:
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk:
                break
            received += len(chunk)
            if received > limit:
                raise FileTooLarge(limit)
            chunks.append(chunk)
    finally:
        await upload.close()
    return UploadedFile(
        filename=upload.filename or "unnamed_file",
        content_type=normalize_mime_type(upload.content_type),
        data=b"".join(chunks),
    )


def write_local_copy(upload: UploadedFile) -> str:
    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    file_path = UPLOAD_DIR / f"{generate_id()}-{sanitize_filename(upload.filename)}"
    with open(file_path, "wb") as f:
        f.write(upload.data)
    return str(file_path)


def remove_local_file(local_path: Optional[str]) -> None:
    """Remove a stored file; a file that is already gone is fine."""
    if not local_path:
        return
    try:
        os.remove(local_path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error(f"Error deleting file {local_path}: {e}")


def resolve_local_path(local_path: Optional[str]) -> Optional[Path]:
    """Stored path if it is inside the upload directory and present on disk."""
    if not local_path:
        return None
    try:
        path = validate_path_traversal(UPLOAD_DIR, local_path)
    except ValueError:
        return None
    return path if path.is_file() else None


async def store_upload(upload: UploadedFile, remote: S3ObjectStorage) -> StoredFile:
    """
    Put an uploaded file where the configured provider wants it.

    With remote storage enabled the file goes to the object store and,
    when KEEP_LOCAL_COPY is on, a local fallback copy is written too.
    Anything written before a failure is removed again.
    """
    stored = StoredFile()
    try:
        if remote.enabled:
            object_name = f"{generate_id()}-{sanitize_filename(upload.filename)}"
            stored.remote = await remote.upload(object_name, upload.data, upload.content_type)
            if config.KEEP_LOCAL_COPY:
                stored.local_path = write_local_copy(upload)
        else:
            stored.local_path = write_local_copy(upload)
    except Exception as e:
        logger.error(f"Storing upload {upload.filename!r} failed: {e}")
        await discard_stored(stored, remote)
        raise StorageError("Upload failed", status_code=500) from e
    return stored


async def discard_stored(stored: StoredFile, remote: S3ObjectStorage) -> None:
    remove_local_file(stored.local_path)
    if stored.remote is not None:
        try:
            await remote.delete(stored.remote)
        except Exception as e:
            logger.error(f"Remote cleanup after failed upload failed: {e}")
