"""
Tests for the access gate: expiry, password and view-limit policy
"""
from datetime import timedelta

import pytest

import access_gate
import database
from errors import Expired, NotFound, PasswordRequired, ValidationError, ViewLimitExceeded
from models import PasteKind, utcnow


@pytest.mark.asyncio
async def test_unknown_id_is_not_found(manager, db):
    with pytest.raises(NotFound):
        await manager.gate.admit('missing', None)


@pytest.mark.asyncio
async def test_expired_record_is_purged(manager, make_record, isolated_storage):
    record = await make_record(PasteKind.FILE, expires_in=timedelta(seconds=-1))

    with pytest.raises(Expired):
        await manager.gate.admit(record.id, None)

    assert await database.get_paste(record.id) is None
    assert not (isolated_storage / f'{record.id}-report.txt').exists()


@pytest.mark.asyncio
async def test_expiry_checked_against_current_time(manager, make_record, monkeypatch):
    record = await make_record(expires_in=timedelta(minutes=5))
    monkeypatch.setattr(access_gate, 'utcnow', lambda: utcnow() + timedelta(minutes=6))

    with pytest.raises(Expired):
        await manager.gate.admit(record.id, None)


@pytest.mark.asyncio
async def test_wrong_password_does_not_mutate(manager, make_record):
    record = await make_record(password='abc')

    with pytest.raises(PasswordRequired):
        await manager.gate.admit(record.id, None)
    with pytest.raises(PasswordRequired):
        await manager.gate.admit(record.id, 'wrong')

    stored = await database.get_paste(record.id)
    assert stored.views == 0


@pytest.mark.asyncio
async def test_right_password_admits(manager, make_record):
    record = await make_record(password='abc')
    admission = await manager.gate.admit(record.id, 'abc')
    assert admission.record.views == 1


@pytest.mark.asyncio
async def test_view_limit(manager, make_record):
    record = await make_record(max_views=2)

    assert (await manager.gate.admit(record.id, None)).record.views == 1
    assert (await manager.gate.admit(record.id, None)).record.views == 2
    with pytest.raises(ViewLimitExceeded):
        await manager.gate.admit(record.id, None)

    assert await database.get_paste(record.id) is None


@pytest.mark.asyncio
async def test_views_never_exceed_max_when_update_loses_race(manager, make_record, monkeypatch):
    record = await make_record(max_views=1)
    # Another reader took the last view between our read and our update.
    await database.increment_views(record.id)
    stale = record

    async def stale_get(paste_id):
        return stale

    with monkeypatch.context() as m:
        m.setattr(database, 'get_paste', stale_get)
        with pytest.raises(ViewLimitExceeded):
            await manager.gate.admit(record.id, None)

    assert await database.get_paste(record.id) is None


@pytest.mark.asyncio
async def test_record_deleted_during_admission_is_not_found(manager, make_record, monkeypatch):
    record = await make_record()
    await database.delete_paste(record.id)

    async def stale_get(paste_id):
        return record

    monkeypatch.setattr(database, 'get_paste', stale_get)
    with pytest.raises(NotFound):
        await manager.gate.admit(record.id, None)


@pytest.mark.asyncio
async def test_one_time_view_flags_deferred_delete(manager, make_record):
    record = await make_record(one_time_view=True)
    admission = await manager.gate.admit(record.id, None)

    assert admission.delete_after_response
    # Nothing is deleted until the caller runs the post-response step.
    assert await database.get_paste(record.id) is not None


@pytest.mark.asyncio
async def test_kind_mismatch_rejected_without_counting(manager, make_record):
    record = await make_record()
    with pytest.raises(ValidationError):
        await manager.gate.admit(record.id, None, kind=PasteKind.FILE)
    assert (await database.get_paste(record.id)).views == 0
