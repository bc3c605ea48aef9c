"""
LinkVault - Test Configuration and Fixtures
"""
import os
import tempfile
from datetime import timedelta
from typing import AsyncGenerator

# Set testing environment before any app module reads it
_TEST_ROOT = tempfile.mkdtemp(prefix="linkvault-tests-")
os.environ['DATA_DIR'] = os.path.join(_TEST_ROOT, 'data')
os.environ['UPLOAD_DIR'] = os.path.join(_TEST_ROOT, 'uploads')
os.environ['STORAGE_PROVIDER'] = 'local'
os.environ['RATE_LIMIT_ENABLED'] = 'false'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['JWT_SECRET'] = 'test-jwt-secret-key-for-testing'
os.environ['FRONTEND_URL'] = ''
os.environ['ALLOWED_MIME_TYPES'] = ''

import pytest
from httpx import ASGITransport, AsyncClient

import config
import database
import file_storage
from main import app
from models import PasteKind, PasteRecord, RemoteLocator, utcnow
from paste_manager import PasteManager
from security import create_access_token, hash_password


@pytest.fixture(autouse=True)
def isolated_storage(tmp_path, monkeypatch):
    """Fresh database file and upload directory for each test"""
    upload_dir = tmp_path / 'uploads'
    upload_dir.mkdir()
    monkeypatch.setattr(database, 'DATABASE_PATH', tmp_path / 'test.db')
    monkeypatch.setattr(file_storage, 'UPLOAD_DIR', upload_dir)
    monkeypatch.setattr(config, 'REMOTE_STORAGE_ENABLED', False)
    monkeypatch.setattr(config, 'ALLOWED_MIME_TYPES', [])
    return upload_dir


@pytest.fixture
async def db(isolated_storage):
    await database.init_db()
    yield


@pytest.fixture
def manager() -> PasteManager:
    return PasteManager()


@pytest.fixture
async def client(db) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac


@pytest.fixture
def make_record(db, isolated_storage):
    """Insert a paste directly into the store, bypassing creation rules"""
    counter = {'n': 0}

    async def _make(kind=PasteKind.TEXT, expires_in=timedelta(minutes=10),
                    password=None, file_bytes=b'hello file', remote=False, **overrides):
        counter['n'] += 1
        now = utcnow()
        fields = dict(
            id=overrides.pop('id', f'paste{counter["n"]:05d}'),
            kind=kind,
            created_at=now - timedelta(minutes=1),
            expires_at=now + expires_in,
            password_hash=hash_password(password) if password else None,
        )
        if kind is PasteKind.TEXT:
            fields['content'] = overrides.pop('content', 'hello')
        else:
            local_path = None
            if file_bytes is not None:
                path = isolated_storage / f'{fields["id"]}-report.txt'
                path.write_bytes(file_bytes)
                local_path = str(path)
            fields.update(
                file_name='report.txt',
                file_size=len(file_bytes or b''),
                mime_type='text/plain',
                local_path=local_path,
                remote=RemoteLocator(
                    provider='s3',
                    bucket='test-bucket',
                    key=f'linkvault/{fields["id"]}-report.txt',
                    version_id='v1',
                    public_url=f'https://test-bucket.s3.amazonaws.com/linkvault/{fields["id"]}-report.txt',
                ) if remote else None,
            )
        fields.update(overrides)
        record = PasteRecord(**fields)
        await database.create_paste(record)
        return record

    return _make


@pytest.fixture
def auth_headers():
    """Build bearer headers for a caller identity"""
    def _headers(user_id: str, email: str = 'owner@example.com') -> dict:
        return {'Authorization': f'Bearer {create_access_token(user_id, email)}'}
    return _headers
