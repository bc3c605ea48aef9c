"""
Paste records and pydantic models for request/response validation.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """Fixed-precision UTC ISO string; lexical order matches time order."""
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class PasteKind(str, Enum):
    TEXT = "text"
    FILE = "file"


@dataclass(frozen=True)
class RemoteLocator:
    """Where a file lives in external object storage."""
    provider: str
    bucket: str
    key: str
    version_id: Optional[str] = None
    public_url: Optional[str] = None


@dataclass
class PasteRecord:
    """A single shared unit: inline text or an uploaded file."""
    id: str
    kind: PasteKind
    created_at: datetime
    expires_at: datetime
    content: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    local_path: Optional[str] = None
    remote: Optional[RemoteLocator] = None
    password_hash: Optional[str] = None
    max_views: Optional[int] = None
    views: int = 0
    one_time_view: bool = False
    owner_id: Optional[str] = None

    def __post_init__(self):
        self.kind = PasteKind(self.kind)
        has_file = self.local_path is not None or self.remote is not None
        if self.kind is PasteKind.TEXT:
            if self.content is None or has_file or self.file_name is not None:
                raise ValueError("text paste must carry content and no file fields")
        else:
            if self.content is not None or not has_file:
                raise ValueError("file paste must carry a storage locator and no content")

    @property
    def password_protected(self) -> bool:
        return self.password_hash is not None

    @property
    def is_exhausted(self) -> bool:
        return self.max_views is not None and self.views >= self.max_views

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at <= (now or utcnow())

    def to_row(self) -> Dict[str, Any]:
        remote = self.remote
        return {
            "id": self.id,
            "type": self.kind.value,
            "content": self.content,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "local_path": self.local_path,
            "remote_provider": remote.provider if remote else None,
            "remote_bucket": remote.bucket if remote else None,
            "remote_key": remote.key if remote else None,
            "remote_version": remote.version_id if remote else None,
            "file_url": remote.public_url if remote else None,
            "password_hash": self.password_hash,
            "max_views": self.max_views,
            "views": self.views,
            "one_time_view": int(self.one_time_view),
            "owner_id": self.owner_id,
            "created_at": to_iso(self.created_at),
            "expires_at": to_iso(self.expires_at),
        }

    @classmethod
    def from_row(cls, row) -> "PasteRecord":
        remote = None
        if row["remote_key"]:
            remote = RemoteLocator(
                provider=row["remote_provider"],
                bucket=row["remote_bucket"],
                key=row["remote_key"],
                version_id=row["remote_version"],
                public_url=row["file_url"],
            )
        return cls(
            id=row["id"],
            kind=PasteKind(row["type"]),
            created_at=from_iso(row["created_at"]),
            expires_at=from_iso(row["expires_at"]),
            content=row["content"],
            file_name=row["file_name"],
            file_size=row["file_size"],
            mime_type=row["mime_type"],
            local_path=row["local_path"],
            remote=remote,
            password_hash=row["password_hash"],
            max_views=row["max_views"],
            views=row["views"] or 0,
            one_time_view=bool(row["one_time_view"]),
            owner_id=row["owner_id"],
        )


@dataclass
class UploadedFile:
    """A fully received upload, held in memory until dispatched to storage."""
    filename: str
    content_type: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class CreatePasteInput:
    """Everything the lifecycle manager needs to create a paste."""
    text: Optional[str] = None
    file: Optional[UploadedFile] = None
    expiry_minutes: Any = None
    expires_at: Optional[str] = None
    password: Optional[str] = None
    max_views: Any = None
    one_time_view: Any = False
    owner_id: Optional[str] = None


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadRequest(CamelModel):
    """JSON body for text uploads (files go through multipart)."""
    text: Optional[str] = None
    expiry_minutes: Optional[Any] = None
    expires_at: Optional[str] = None
    password: Optional[str] = None
    max_views: Optional[Any] = None
    one_time_view: Optional[Any] = False


class UploadResponse(BaseModel):
    """Response model after creating a paste."""
    success: bool = True
    id: str
    url: str
    expires_at: str = Field(serialization_alias="expiresAt")
    type: PasteKind


class PasteView(CamelModel):
    """What a successful read reveals; never the storage locator."""
    id: str
    type: PasteKind
    created_at: str
    expires_at: str
    views: int
    password_protected: bool
    one_time_view: bool
    content: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None

    @classmethod
    def from_record(cls, record: PasteRecord) -> "PasteView":
        view = cls(
            id=record.id,
            type=record.kind,
            created_at=to_iso(record.created_at),
            expires_at=to_iso(record.expires_at),
            views=record.views,
            password_protected=record.password_protected,
            one_time_view=record.one_time_view,
        )
        if record.kind is PasteKind.TEXT:
            view.content = record.content
        else:
            view.file_name = record.file_name
            view.file_size = record.file_size
            view.mime_type = record.mime_type
        return view


class DeleteRequest(BaseModel):
    password: Optional[str] = None


class Credentials(BaseModel):
    """Request model for register/login."""
    email: str
    password: str


class UserOut(BaseModel):
    id: str
    email: str


class TokenResponse(BaseModel):
    token: str
    user: UserOut
