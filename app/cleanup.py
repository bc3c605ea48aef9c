"""
Background cleanup worker for expired pastes.
"""
import asyncio
import logging

import config
import database
from paste_manager import paste_manager

logger = logging.getLogger(__name__)


async def cleanup_expired(manager=None) -> int:
    """Purge expired pastes with their files and remote objects."""
    manager = manager or paste_manager
    expired = await database.list_expired_pastes()

    purged = 0
    for record in expired:
        # A concurrent read may have purged it already; that still counts as done.
        if await manager.purge(record):
            purged += 1
            logger.info(f"Cleaned up expired paste: {record.id}")

    if purged:
        logger.info(f"Cleaned up {purged} expired paste(s)")
    return purged


async def cleanup_loop():
    """Run cleanup every CLEANUP_INTERVAL_SECONDS (one minute by default)."""
    while True:
        try:
            await cleanup_expired()
        except Exception as e:
            logger.error(f"Cleanup error: {e}")
        await asyncio.sleep(config.CLEANUP_INTERVAL_SECONDS)
