"""
Tests for remote object storage and candidate URL resolution
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import httpx
import pytest

import config
from models import PasteKind, PasteRecord, RemoteLocator
from remote_storage import RemoteObjectResolver, S3ObjectStorage, get_file_extension

LOCATOR = RemoteLocator(provider='s3', bucket='bucket', key='linkvault/abc-report.pdf',
                        version_id='v7', public_url='https://bucket.s3.amazonaws.com/linkvault/abc-report.pdf')


def _record(file_name='report.pdf', remote=LOCATOR):
    now = datetime.now(timezone.utc)
    return PasteRecord(id='abc', kind=PasteKind.FILE, created_at=now,
                       expires_at=now + timedelta(minutes=5), file_name=file_name,
                       file_size=10, mime_type='application/pdf', remote=remote)


def _signing_client(name):
    client = MagicMock()

    def sign(operation, Params, ExpiresIn):
        extras = sorted(k for k in Params if k not in ('Bucket', 'Key'))
        return f'https://{name}.example/{Params["Key"]}?sig=1&ttl={ExpiresIn}&{"&".join(extras)}'

    client.generate_presigned_url.side_effect = sign
    return client


@pytest.fixture
def storage(monkeypatch):
    monkeypatch.setattr(config, 'REMOTE_STORAGE_ENABLED', True)
    s3 = S3ObjectStorage(bucket='bucket', key_prefix='linkvault')
    s3._public_client = _signing_client('public')
    s3._client = _signing_client('auth')
    s3._path_client = _signing_client('path')
    return s3


def _resolver(storage, handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler),
                               max_redirects=config.MAX_REDIRECTS)
    return RemoteObjectResolver(storage, http_client=client)


class TestCandidateUrls:

    def test_order_and_short_expiry(self, storage):
        urls = list(RemoteObjectResolver(storage).candidate_urls(_record()))

        assert urls[0].startswith('https://public.example/')
        assert urls[1].startswith('https://auth.example/')
        assert urls[2].startswith('https://path.example/') and 'VersionId' in urls[2]
        assert 'ResponseContentDisposition' in urls[3]
        assert urls[-1] == LOCATOR.public_url
        assert all('ttl=300' in url for url in urls[:-1])

    def test_no_extension_skips_download_variant(self, storage):
        urls = list(RemoteObjectResolver(storage).candidate_urls(_record(file_name='README')))
        assert len(urls) == 4
        assert not any('ResponseContentDisposition' in url for url in urls)

    def test_failing_variant_is_skipped(self, storage):
        storage._public_client.generate_presigned_url.side_effect = RuntimeError('bad creds')
        urls = list(RemoteObjectResolver(storage).candidate_urls(_record()))
        assert not any(url.startswith('https://public.example/') for url in urls)
        assert urls[-1] == LOCATOR.public_url

    def test_disabled_storage_falls_back_to_public_url(self, storage, monkeypatch):
        monkeypatch.setattr(config, 'REMOTE_STORAGE_ENABLED', False)
        assert list(RemoteObjectResolver(storage).candidate_urls(_record())) == [LOCATOR.public_url]

    def test_local_only_record_has_no_candidates(self, storage):
        now = datetime.now(timezone.utc)
        record = PasteRecord(id='x', kind=PasteKind.FILE, created_at=now, expires_at=now,
                             file_name='a.txt', local_path='/tmp/a.txt')
        assert list(RemoteObjectResolver(storage).candidate_urls(record)) == []

    def test_candidates_are_lazy(self, storage):
        urls = RemoteObjectResolver(storage).candidate_urls(_record())
        next(urls)
        storage._client.generate_presigned_url.assert_not_called()


class TestSelectFirstAccessibleUrl:

    @pytest.mark.asyncio
    async def test_first_2xx_wins(self, storage):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            assert request.headers['Range'] == 'bytes=0-0'
            if request.url.host == 'a.example':
                return httpx.Response(403)
            if request.url.host == 'b.example':
                return httpx.Response(302, headers={'Location': 'https://c.example/final'})
            return httpx.Response(206, content=b'x')

        resolver = _resolver(storage, handler)
        selected = await resolver.select_first_accessible_url(
            iter(['https://a.example/1', 'https://b.example/2', 'https://d.example/3']))

        assert selected == 'https://b.example/2'
        assert 'https://d.example/3' not in seen

    @pytest.mark.asyncio
    async def test_none_when_all_fail(self, storage):
        def handler(request):
            if request.url.host == 'down.example':
                raise httpx.ConnectError('refused')
            return httpx.Response(404)

        resolver = _resolver(storage, handler)
        assert await resolver.select_first_accessible_url(
            ['https://down.example/', 'https://gone.example/']) is None

    @pytest.mark.asyncio
    async def test_redirect_loop_is_bounded(self, storage):
        hops = []

        def handler(request):
            hops.append(request.url)
            return httpx.Response(302, headers={'Location': f'https://loop.example/{len(hops)}'})

        resolver = _resolver(storage, handler)
        assert await resolver.probe('https://loop.example/0') == 0
        assert len(hops) == config.MAX_REDIRECTS + 1


class TestS3ObjectStorage:

    @pytest.mark.asyncio
    async def test_upload_returns_locator(self, storage):
        storage._client.put_object.return_value = {'VersionId': 'v3'}

        locator = await storage.upload('abc-notes.txt', b'data', 'text/plain')

        storage._client.put_object.assert_called_once_with(
            Bucket='bucket', Key='linkvault/abc-notes.txt', Body=b'data', ContentType='text/plain')
        assert locator.key == 'linkvault/abc-notes.txt'
        assert locator.version_id == 'v3'
        assert locator.public_url.endswith('/linkvault/abc-notes.txt')

    @pytest.mark.asyncio
    async def test_delete_object_swallows_errors(self, storage):
        storage._client.delete_object.side_effect = ConnectionError('network')
        resolver = RemoteObjectResolver(storage)
        await resolver.delete_object(_record())
        storage._client.delete_object.assert_called_once_with(Bucket='bucket', Key=LOCATOR.key)


def test_file_extension():
    assert get_file_extension('report.final.pdf') == 'pdf'
    assert get_file_extension('README') is None
    assert get_file_extension(None) is None
