"""
Access policy applied to every read of a paste.
"""
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import database
from errors import Expired, NotFound, PasswordRequired, ValidationError, ViewLimitExceeded
from models import PasteKind, PasteRecord, utcnow
from security import log_security_event, verify_password


@dataclass
class Admission:
    """A successful pass through the gate."""
    record: PasteRecord
    # The caller must purge the record once the response has been delivered.
    delete_after_response: bool = False


class AccessGate:
    """
    Checks, in order: existence, expiry, password, view limit.

    Expired and exhausted records are purged on the spot. A wrong password
    never mutates the record. On success the view counter is incremented.
    """

    def __init__(self, purge: Callable[[PasteRecord], Awaitable[None]]):
        self._purge = purge

    async def admit(
        self,
        paste_id: str,
        password: Optional[str],
        kind: Optional[PasteKind] = None,
    ) -> Admission:
        record = await database.get_paste(paste_id)
        if record is None:
            raise NotFound()

        if kind is not None and record.kind is not kind:
            raise ValidationError("Not a file upload" if kind is PasteKind.FILE else "Not a text paste")

        if record.is_expired(utcnow()):
            await self._purge(record)
            raise Expired()

        if not verify_password(password, record.password_hash):
            log_security_event("paste_password_mismatch", {"id": paste_id, "supplied": bool(password)})
            raise PasswordRequired()

        if record.is_exhausted:
            await self._purge(record)
            raise ViewLimitExceeded()

        views = await database.increment_views(paste_id)
        if views is None:
            # Lost a race: either another reader took the last view or the
            # record was deleted between the read and the update.
            if await database.paste_exists(paste_id):
                await self._purge(record)
                raise ViewLimitExceeded()
            raise NotFound()

        record.views = views
        return Admission(record=record, delete_after_response=record.one_time_view)
