"""
SQLite async record store for pastes and users.
"""
from datetime import datetime
from typing import List, Optional

import aiosqlite

import config
from models import PasteRecord, to_iso, utcnow

DATABASE_PATH = config.DATABASE_PATH

PASTE_COLUMNS = (
    "id", "type", "content", "file_name", "file_size", "mime_type", "local_path",
    "remote_provider", "remote_bucket", "remote_key", "remote_version", "file_url",
    "password_hash", "max_views", "views", "one_time_view", "owner_id",
    "created_at", "expires_at",
)


async def get_db():
    """Get database connection."""
    db = await aiosqlite.connect(DATABASE_PATH)
    db.row_factory = aiosqlite.Row
    return db


async def init_db():
    """Initialize database with required tables."""
    async with aiosqlite.connect(DATABASE_PATH) as db:
        await db.execute("""
            CREATE TABLE IF NOT EXISTS pastes (
                id TEXT PRIMARY KEY,
                type TEXT NOT NULL,
                content TEXT,
                file_name TEXT,
                file_size INTEGER,
                mime_type TEXT,
                local_path TEXT,
                remote_provider TEXT,
                remote_bucket TEXT,
                remote_key TEXT,
                remote_version TEXT,
                file_url TEXT,
                password_hash TEXT,
                max_views INTEGER,
                views INTEGER NOT NULL DEFAULT 0,
                one_time_view INTEGER NOT NULL DEFAULT 0,
                owner_id TEXT,
                created_at TEXT NOT NULL,
                expires_at TEXT NOT NULL
            )
        """)
        await db.execute("""
            CREATE INDEX IF NOT EXISTS idx_pastes_expires ON pastes(expires_at)
        """)
        await db.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                email TEXT UNIQUE NOT NULL,
                password_hash TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)
        await db.commit()


# ============ PASTES ============

async def create_paste(record: PasteRecord) -> PasteRecord:
    row = record.to_row()
    placeholders = ", ".join("?" for _ in PASTE_COLUMNS)
    db = await get_db()
    try:
        await db.execute(
            f"INSERT INTO pastes ({', '.join(PASTE_COLUMNS)}) VALUES ({placeholders})",
            tuple(row[column] for column in PASTE_COLUMNS),
        )
        await db.commit()
    finally:
        await db.close()
    return record


async def get_paste(paste_id: str) -> Optional[PasteRecord]:
    db = await get_db()
    try:
        cursor = await db.execute("SELECT * FROM pastes WHERE id = ?", (paste_id,))
        row = await cursor.fetchone()
    finally:
        await db.close()
    return PasteRecord.from_row(row) if row else None


async def paste_exists(paste_id: str) -> bool:
    db = await get_db()
    try:
        cursor = await db.execute("SELECT 1 FROM pastes WHERE id = ?", (paste_id,))
        return await cursor.fetchone() is not None
    finally:
        await db.close()


async def increment_views(paste_id: str) -> Optional[int]:
    """
    Count one view atomically.

    The max_views guard lives in the UPDATE itself, so two concurrent readers
    can never both take the last remaining view. Returns the new view count,
    or None when the row is gone or already exhausted.
    """
    db = await get_db()
    try:
        cursor = await db.execute(
            """
            UPDATE pastes
            SET views = views + 1
            WHERE id = ? AND (max_views IS NULL OR views < max_views)
            RETURNING views
            """,
            (paste_id,),
        )
        row = await cursor.fetchone()
        await db.commit()
    finally:
        await db.close()
    return row["views"] if row else None


async def delete_paste(paste_id: str) -> bool:
    """Remove the row. Deleting an id that is already gone is not an error."""
    db = await get_db()
    try:
        cursor = await db.execute("DELETE FROM pastes WHERE id = ?", (paste_id,))
        await db.commit()
        return cursor.rowcount > 0
    finally:
        await db.close()


async def list_expired_pastes(now: Optional[datetime] = None) -> List[PasteRecord]:
    db = await get_db()
    try:
        cursor = await db.execute(
            "SELECT * FROM pastes WHERE expires_at <= ? ORDER BY expires_at",
            (to_iso(now or utcnow()),),
        )
        rows = await cursor.fetchall()
    finally:
        await db.close()
    return [PasteRecord.from_row(row) for row in rows]


# ============ USERS ============

async def create_user(user_id: str, email: str, password_hash: str) -> dict:
    user = {
        "id": user_id,
        "email": email,
        "password_hash": password_hash,
        "created_at": to_iso(utcnow()),
    }
    db = await get_db()
    try:
        await db.execute(
            "INSERT INTO users (id, email, password_hash, created_at) VALUES (?, ?, ?, ?)",
            (user["id"], user["email"], user["password_hash"], user["created_at"]),
        )
        await db.commit()
    finally:
        await db.close()
    return user


async def get_user_by_email(email: str) -> Optional[dict]:
    db = await get_db()
    try:
        cursor = await db.execute("SELECT * FROM users WHERE email = ?", (email,))
        row = await cursor.fetchone()
    finally:
        await db.close()
    return dict(row) if row else None


async def get_user_by_id(user_id: str) -> Optional[dict]:
    db = await get_db()
    try:
        cursor = await db.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        row = await cursor.fetchone()
    finally:
        await db.close()
    return dict(row) if row else None
