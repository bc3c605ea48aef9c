"""
Remote object storage (S3 / S3-compatible) and download URL resolution.

Signed URLs from object stores can be misconfigured, or an object can be
briefly inconsistent right after upload, so a stored file is reachable
through an ordered list of candidate URLs that are probed in turn.
"""
import asyncio
import logging
import mimetypes
from pathlib import PurePosixPath
from typing import Callable, Iterator, List, Optional

import boto3
import httpx
from botocore.config import Config

import config
from models import PasteRecord, RemoteLocator
from security import header_filename

logger = logging.getLogger(__name__)


def get_file_extension(file_name: Optional[str]) -> Optional[str]:
    ext = PurePosixPath(file_name or "").suffix.lstrip(".")
    return ext or None


class S3ObjectStorage:
    """
    Thin async wrapper around boto3 for paste files.

    boto3 is blocking, so network calls run in a worker thread.
    URL signing is local computation and stays synchronous.
    """

    provider = "s3"

    def __init__(self, bucket: Optional[str] = None, key_prefix: Optional[str] = None):
        self.bucket = bucket or config.S3_BUCKET
        self.key_prefix = config.S3_KEY_PREFIX if key_prefix is None else key_prefix
        self._client = None
        self._public_client = None
        self._path_client = None

    @property
    def enabled(self) -> bool:
        return config.REMOTE_STORAGE_ENABLED

    def _build_client(self, endpoint_url: Optional[str], addressing_style: str = "auto"):
        return boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=config.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=config.AWS_SECRET_ACCESS_KEY,
            region_name=config.AWS_REGION,
            config=Config(signature_version="s3v4", s3={"addressing_style": addressing_style}),
        )

    def _get_client(self):
        """Lazy initialization of the S3 client"""
        if self._client is None:
            self._client = self._build_client(config.S3_ENDPOINT_URL)
        return self._client

    def _get_public_client(self):
        """Client signing against the browser-reachable endpoint."""
        if self._public_client is None:
            if config.S3_PUBLIC_ENDPOINT_URL:
                self._public_client = self._build_client(config.S3_PUBLIC_ENDPOINT_URL)
            else:
                self._public_client = self._get_client()
        return self._public_client

    def _get_path_client(self):
        """Path-style addressing, for S3-compatible stores without virtual hosts."""
        if self._path_client is None:
            self._path_client = self._build_client(config.S3_ENDPOINT_URL, addressing_style="path")
        return self._path_client

    def object_key(self, object_name: str) -> str:
        return f"{self.key_prefix}/{object_name}" if self.key_prefix else object_name

    def public_url(self, key: str) -> str:
        if config.S3_PUBLIC_ENDPOINT_URL:
            return f"{config.S3_PUBLIC_ENDPOINT_URL.rstrip('/')}/{self.bucket}/{key}"
        if config.S3_ENDPOINT_URL:
            return f"{config.S3_ENDPOINT_URL.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{config.AWS_REGION}.amazonaws.com/{key}"

    async def upload(self, object_name: str, data: bytes, content_type: str) -> RemoteLocator:
        key = self.object_key(object_name)
        client = self._get_client()
        response = await asyncio.to_thread(
            client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type or "application/octet-stream",
        )
        logger.info(f"Uploaded object to S3: {key}")
        return RemoteLocator(
            provider=self.provider,
            bucket=self.bucket,
            key=key,
            version_id=response.get("VersionId"),
            public_url=self.public_url(key),
        )

    async def delete(self, locator: RemoteLocator) -> None:
        client = self._get_client()
        await asyncio.to_thread(client.delete_object, Bucket=locator.bucket, Key=locator.key)
        logger.info(f"Deleted object from S3: {locator.key}")

    def presigned_url(self, client, locator: RemoteLocator, **extra) -> str:
        params = {"Bucket": locator.bucket, "Key": locator.key}
        params.update(extra)
        return client.generate_presigned_url(
            "get_object",
            Params=params,
            ExpiresIn=config.REMOTE_URL_TTL_SECONDS,
        )


class RemoteObjectResolver:
    """Produces and probes candidate download URLs for remote-stored files."""

    def __init__(self, storage: S3ObjectStorage, http_client: Optional[httpx.AsyncClient] = None):
        self.storage = storage
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                max_redirects=config.MAX_REDIRECTS,
                headers={"User-Agent": config.REMOTE_USER_AGENT},
            )
        return self._http_client

    async def close(self):
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def _candidate_producers(self, record: PasteRecord) -> List[Callable[[], Optional[str]]]:
        locator = record.remote
        storage = self.storage
        producers: List[Callable[[], Optional[str]]] = []

        if storage.enabled:
            # Access variants: public endpoint, authenticated default endpoint,
            # path-style private endpoint pinned to the uploaded version.
            producers.append(lambda: storage.presigned_url(storage._get_public_client(), locator))
            producers.append(lambda: storage.presigned_url(storage._get_client(), locator))
            if locator.version_id:
                producers.append(lambda: storage.presigned_url(
                    storage._get_path_client(), locator, VersionId=locator.version_id))
            else:
                producers.append(lambda: storage.presigned_url(storage._get_path_client(), locator))

            ext = get_file_extension(record.file_name)
            if ext:
                content_type = (mimetypes.guess_type(f"file.{ext}")[0]
                                or record.mime_type or "application/octet-stream")
                producers.append(lambda: storage.presigned_url(
                    storage._get_client(),
                    locator,
                    ResponseContentDisposition=f'attachment; filename="{header_filename(record.file_name)}"',
                    ResponseContentType=content_type,
                ))

        producers.append(lambda: locator.public_url)
        return producers

    def candidate_urls(self, record: PasteRecord) -> Iterator[str]:
        """
        Lazily yield candidate URLs in preference order.

        A producer that fails is skipped; duplicates are yielded once.
        """
        if record.remote is None:
            return
        seen = set()
        for produce in self._candidate_producers(record):
            try:
                url = produce()
            except Exception as e:
                logger.debug(f"Skipping remote URL variant for {record.id}: {e}")
                continue
            if url and url not in seen:
                seen.add(url)
                yield url

    async def probe(self, url: str) -> int:
        """Status of a one-byte ranged GET after redirects; 0 on transport failure."""
        try:
            async with self.http_client.stream(
                "GET", url, headers={"Range": "bytes=0-0"}, follow_redirects=True
            ) as response:
                return response.status_code
        except httpx.HTTPError as e:
            logger.debug(f"Probe failed for {url}: {e}")
            return 0

    async def select_first_accessible_url(self, candidates) -> Optional[str]:
        for url in candidates:
            status = await self.probe(url)
            if 200 <= status < 300:
                return url
        return None

    async def delete_object(self, record: PasteRecord) -> None:
        """Best-effort removal of the remote object; failures are only logged."""
        if record.remote is None or not self.storage.enabled:
            return
        try:
            await self.storage.delete(record.remote)
        except Exception as e:
            logger.error(f"Remote object delete failed for {record.id}: {e}")
