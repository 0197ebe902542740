"""Object storage backends for uploaded files.

``LocalStorage`` keeps objects below ``MEDIA_ROOT`` (served on ``/media``);
``RemoteStorage`` talks to a bucket REST API
(``/storage/v1/bucket`` and ``/storage/v1/object``).
"""
from __future__ import annotations

import asyncio
import logging
import re
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable
from urllib.parse import quote

import httpx

from dealerdesk.core import storage
from dealerdesk.core.config import settings

logger = logging.getLogger(__name__)

CACHE_CONTROL_SECONDS = 3600
SIGNED_URL_EXPIRES_IN = 3600

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9]")


class StorageError(RuntimeError):
    """Raised when the storage backend refuses or fails an operation."""


@dataclass(frozen=True)
class StoredObject:
    bucket: str
    path: str
    url: str
    size: int
    content_type: str | None = None


def generate_storage_file_name(
    original_name: str | None,
    category: str,
    dealer_id: int | str,
    *,
    timestamp: int | None = None,
    token: str | None = None,
) -> str:
    """Build ``dealer/category/<name>_<timestamp>_<random>.<ext>``."""

    name = original_name or "file"
    stem, dot, extension = name.rpartition(".")
    if not dot:
        stem, extension = name, ""
    sanitized = _UNSAFE_CHARS.sub("_", stem)[:50] or "file"
    stamp = timestamp if timestamp is not None else int(time.time() * 1000)
    random_part = token or secrets.token_hex(4)
    suffix = f".{_UNSAFE_CHARS.sub('', extension).lower()}" if extension else ""
    return f"{dealer_id}/{category}/{sanitized}_{stamp}_{random_part}{suffix}"


class StorageBackend:
    name = "base"

    async def ensure_bucket(self, bucket: str) -> None:
        raise NotImplementedError

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str | None) -> StoredObject:
        raise NotImplementedError

    def public_url(self, bucket: str, path: str) -> str:
        raise NotImplementedError

    async def signed_url(self, bucket: str, path: str, expires_in: int = SIGNED_URL_EXPIRES_IN) -> str:
        raise NotImplementedError

    async def delete(self, bucket: str, paths: Iterable[str]) -> None:
        raise NotImplementedError


class LocalStorage(StorageBackend):
    name = "local"

    def __init__(self, url_prefix: str = "/media") -> None:
        self.url_prefix = url_prefix.rstrip("/")

    def _target(self, bucket: str, path: str) -> Path:
        target = storage.resolve_media_path(f"{bucket}/{path}")
        if target is None:
            raise StorageError(f"Invalid storage path: {path}")
        return target

    async def ensure_bucket(self, bucket: str) -> None:
        (storage.MEDIA_ROOT / bucket).mkdir(parents=True, exist_ok=True)

    def _write(self, bucket: str, path: str, data: bytes) -> None:
        target = self._target(bucket, path)
        if target.exists():
            raise StorageError(f"Object already exists: {bucket}/{path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            target.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Unable to write {bucket}/{path}") from exc

    def _remove(self, bucket: str, paths: list[str]) -> None:
        for path in paths:
            target = self._target(bucket, path)
            try:
                target.unlink(missing_ok=True)
            except OSError as exc:
                raise StorageError(f"Unable to delete {bucket}/{path}") from exc

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str | None) -> StoredObject:
        await asyncio.to_thread(self._write, bucket, path, data)
        return StoredObject(
            bucket=bucket,
            path=path,
            url=self.public_url(bucket, path),
            size=len(data),
            content_type=content_type,
        )

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.url_prefix}/{bucket}/{quote(path)}"

    async def signed_url(self, bucket: str, path: str, expires_in: int = SIGNED_URL_EXPIRES_IN) -> str:
        if not self._target(bucket, path).exists():
            raise StorageError(f"Object not found: {bucket}/{path}")
        return self.public_url(bucket, path)

    async def delete(self, bucket: str, paths: Iterable[str]) -> None:
        await asyncio.to_thread(self._remove, bucket, list(paths))


class RemoteStorage(StorageBackend):
    name = "remote"

    def __init__(
        self,
        base_url: str,
        service_key: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url or not service_key:
            raise StorageError("STORAGE_URL and STORAGE_SERVICE_KEY must be configured")
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self._transport = transport
        self._known_buckets: set[str] = set()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.base_url}/storage/v1",
            headers={"Authorization": f"Bearer {self.service_key}", "apikey": self.service_key},
            timeout=httpx.Timeout(30.0, connect=5.0),
            transport=self._transport,
        )

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            async with self._client() as client:
                response = await client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = exc.response.text[:200] if exc.response.content else str(exc)
            raise StorageError(f"Storage request failed ({exc.response.status_code}): {detail}") from exc
        except httpx.HTTPError as exc:
            raise StorageError("Storage service unreachable") from exc
        return response

    async def ensure_bucket(self, bucket: str) -> None:
        if bucket in self._known_buckets:
            return
        try:
            async with self._client() as client:
                response = await client.get(f"/bucket/{bucket}")
        except httpx.HTTPError as exc:
            raise StorageError("Storage service unreachable") from exc
        if response.status_code == 404 or (response.status_code == 400 and "not found" in response.text.lower()):
            logger.info("Creating storage bucket %s", bucket)
            await self._request("POST", "/bucket", json={"id": bucket, "name": bucket, "public": True})
        elif response.is_error:
            raise StorageError(f"Unable to inspect bucket {bucket} ({response.status_code})")
        self._known_buckets.add(bucket)

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str | None) -> StoredObject:
        await self.ensure_bucket(bucket)
        await self._request(
            "POST",
            f"/object/{bucket}/{quote(path)}",
            content=data,
            headers={
                "Content-Type": content_type or "application/octet-stream",
                "Cache-Control": f"max-age={CACHE_CONTROL_SECONDS}",
                "x-upsert": "false",
            },
        )
        return StoredObject(
            bucket=bucket,
            path=path,
            url=self.public_url(bucket, path),
            size=len(data),
            content_type=content_type,
        )

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{quote(path)}"

    async def signed_url(self, bucket: str, path: str, expires_in: int = SIGNED_URL_EXPIRES_IN) -> str:
        response = await self._request(
            "POST", f"/object/sign/{bucket}/{quote(path)}", json={"expiresIn": expires_in}
        )
        signed = response.json().get("signedURL") or response.json().get("signedUrl")
        if not signed:
            raise StorageError("Storage service returned no signed URL")
        if signed.startswith("http"):
            return signed
        return f"{self.base_url}/storage/v1{signed}"

    async def delete(self, bucket: str, paths: Iterable[str]) -> None:
        prefixes = list(paths)
        if not prefixes:
            return
        await self._request("DELETE", f"/object/{bucket}", json={"prefixes": prefixes})


_backend: StorageBackend | None = None


def get_storage() -> StorageBackend:
    global _backend
    if _backend is None:
        if settings.STORAGE_BACKEND == "remote":
            _backend = RemoteStorage(settings.STORAGE_URL, settings.STORAGE_SERVICE_KEY)
        else:
            _backend = LocalStorage()
        logger.info("Storage backend: %s", _backend.name)
    return _backend


def set_storage(backend: StorageBackend | None) -> None:
    global _backend
    _backend = backend
