"""
Paste lifecycle manager: creation, reads, downloads and deletion.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from fastapi import BackgroundTasks
from starlette.responses import Response

import config
import database
from access_gate import AccessGate
from delivery import deliver_file
from errors import AuthorizationError, NotFound, PasteError, StorageError, ValidationError
from file_storage import StoredFile, discard_stored, remove_local_file, store_upload
from models import CreatePasteInput, PasteKind, PasteRecord, PasteView, from_iso, to_iso, utcnow
from remote_storage import RemoteObjectResolver, S3ObjectStorage
from security import (
    hash_password,
    is_mime_allowed,
    log_security_event,
    normalize_mime_type,
    verify_password,
)
from utils.code_generator import ensure_unique_id

logger = logging.getLogger(__name__)


@dataclass
class CreatedPaste:
    id: str
    share_url: str
    expires_at: datetime
    kind: PasteKind


def parse_positive_int(value, field_name: str) -> Optional[int]:
    """Whole numbers only, whether sent as a JSON number or a form string."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a positive integer")
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{field_name} must be a positive integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a positive integer")
    if number < 1:
        raise ValidationError(f"{field_name} must be a positive integer")
    return number


def parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("true", "1", "yes", "on")


def calculate_expiry(expiry_minutes, expires_at: Optional[str], now: datetime) -> datetime:
    """Absolute timestamp wins; otherwise an offset from now (default constant)."""
    if expires_at:
        try:
            parsed = from_iso(str(expires_at).strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError("Invalid expiresAt value")
    else:
        # Zero means "not set", matching an omitted field.
        if str(expiry_minutes).strip() in ("0", "0.0"):
            expiry_minutes = None
        minutes = parse_positive_int(expiry_minutes, "expiryMinutes") or config.DEFAULT_EXPIRY_MINUTES
        parsed = now + timedelta(minutes=minutes)

    if parsed <= now:
        raise ValidationError("Expiry must be in the future")
    return parsed


def build_share_url(base_url: str, paste_id: str) -> str:
    root = config.FRONTEND_URL or base_url
    return f"{root.rstrip('/')}/p/{paste_id}"


class PasteManager:
    """
    Owns the life of a paste from upload to purge.

    All destruction paths (explicit delete, lazy expiry, view exhaustion,
    one-time consumption and the reaper) go through purge().
    """

    def __init__(self, remote: Optional[S3ObjectStorage] = None,
                 resolver: Optional[RemoteObjectResolver] = None):
        self.remote = remote or S3ObjectStorage()
        self.resolver = resolver or RemoteObjectResolver(self.remote)
        self.gate = AccessGate(purge=self.purge)

    async def create(self, data: CreatePasteInput, base_url: str = "") -> CreatedPaste:
        has_text = bool(data.text)
        has_file = data.file is not None
        if not has_text and not has_file:
            raise ValidationError("Either text or file must be provided")
        if has_text and has_file:
            raise ValidationError("Cannot upload both text and file simultaneously")

        now = utcnow()
        expires_at = calculate_expiry(data.expiry_minutes, data.expires_at, now)
        max_views = parse_positive_int(data.max_views, "maxViews")

        if has_file:
            data.file.content_type = normalize_mime_type(data.file.content_type)
        if has_file and not is_mime_allowed(data.file.content_type):
            log_security_event("blocked_file_type", {"filename": data.file.filename,
                                                     "mime_type": data.file.content_type})
            raise ValidationError("File type not allowed")

        paste_id = await ensure_unique_id(database.paste_exists)
        common = dict(
            id=paste_id,
            created_at=now,
            expires_at=expires_at,
            password_hash=hash_password(data.password) if data.password else None,
            max_views=max_views,
            one_time_view=parse_bool(data.one_time_view),
            owner_id=data.owner_id,
        )

        if has_text:
            record = PasteRecord(kind=PasteKind.TEXT, content=data.text, **common)
            await database.create_paste(record)
        else:
            stored = await store_upload(data.file, self.remote)
            record = PasteRecord(
                kind=PasteKind.FILE,
                file_name=data.file.filename,
                file_size=data.file.size,
                mime_type=data.file.content_type,
                local_path=stored.local_path,
                remote=stored.remote,
                **common,
            )
            await self._persist_file_record(record, stored)

        logger.info(f"Created {record.kind.value} paste {paste_id} expiring {to_iso(expires_at)}")
        return CreatedPaste(
            id=paste_id,
            share_url=build_share_url(base_url, paste_id),
            expires_at=expires_at,
            kind=record.kind,
        )

    async def _persist_file_record(self, record: PasteRecord, stored: StoredFile):
        try:
            await database.create_paste(record)
        except Exception as e:
            logger.error(f"Persisting paste {record.id} failed: {e}")
            await discard_stored(stored, self.remote)
            raise StorageError("Upload failed", status_code=500) from e

    async def get(self, paste_id: str, password: Optional[str],
                  after_response: BackgroundTasks) -> PasteView:
        admission = await self.gate.admit(paste_id, password)
        if admission.delete_after_response:
            after_response.add_task(self.purge, admission.record)
        return PasteView.from_record(admission.record)

    async def download(self, paste_id: str, password: Optional[str], disposition: str,
                       after_response: BackgroundTasks) -> Response:
        admission = await self.gate.admit(paste_id, password, kind=PasteKind.FILE)
        record = admission.record
        try:
            response = await deliver_file(record, disposition, self.resolver, after_response)
        except PasteError:
            if admission.delete_after_response:
                # The one legitimate view was spent on a failed delivery.
                await self.purge(record)
            raise
        if admission.delete_after_response:
            after_response.add_task(self.purge, record)
        return response

    async def delete(self, paste_id: str, password: Optional[str], caller_id: Optional[str]) -> None:
        record = await database.get_paste(paste_id)
        if record is None:
            raise NotFound()

        if record.owner_id:
            if caller_id is None:
                raise AuthorizationError("Authentication required", status_code=401)
            if caller_id != record.owner_id:
                log_security_event("non_owner_delete", {"id": paste_id, "caller": caller_id})
                raise AuthorizationError("Only the owner can delete this content", status_code=403)

        if not verify_password(password, record.password_hash):
            log_security_event("delete_password_mismatch", {"id": paste_id})
            raise AuthorizationError("Invalid password", status_code=401)

        await self.purge(record)

    async def purge(self, record: PasteRecord) -> bool:
        """
        Remove a record with its local file and remote object.

        Safe to call for a record that is already gone; storage cleanup
        failures are logged and never stop the record deletion.
        """
        deleted = await database.delete_paste(record.id)
        if record.kind is PasteKind.FILE:
            remove_local_file(record.local_path)
            await self.resolver.delete_object(record)
        if deleted:
            logger.info(f"Purged paste {record.id}")
        return deleted


paste_manager = PasteManager()
