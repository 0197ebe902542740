import asyncio
import json
import threading

import httpx
import pytest

from dealerdesk.core import storage
from dealerdesk.services import object_storage
from dealerdesk.services.object_storage import (
    LocalStorage,
    RemoteStorage,
    StorageError,
    generate_storage_file_name,
)


def test_generate_storage_file_name():
    name = generate_storage_file_name("My Licence (front).JPG", "licenses", 7, timestamp=123, token="abcd")

    assert name == "7/licenses/My_Licence__front__123_abcd.jpg"
    assert generate_storage_file_name("README", "documents", 1, timestamp=1, token="ff") == "1/documents/README_1_ff"
    assert generate_storage_file_name(None, "stock", 2, timestamp=5, token="aa") == "2/stock/file_5_aa"


def test_generate_storage_file_name_truncates_long_names():
    name = generate_storage_file_name("x" * 80 + ".pdf", "documents", 3, timestamp=9, token="01")

    assert name == f"3/documents/{'x' * 50}_9_01.pdf"


def test_random_suffix_differs():
    first = generate_storage_file_name("a.png", "stock", 1, timestamp=1)
    second = generate_storage_file_name("a.png", "stock", 1, timestamp=1)

    assert first != second


@pytest.fixture()
def local_storage(tmp_path, monkeypatch):
    monkeypatch.setattr(storage, "MEDIA_ROOT", tmp_path)
    return LocalStorage()


def test_local_storage_upload_and_delete(local_storage, tmp_path):
    async def scenario():
        await local_storage.ensure_bucket("licenses")
        stored = await local_storage.upload("licenses", "7/licenses/front.png", b"png-bytes", "image/png")
        signed = await local_storage.signed_url("licenses", "7/licenses/front.png")
        return stored, signed

    stored, signed = asyncio.run(scenario())

    target = tmp_path / "licenses" / "7" / "licenses" / "front.png"
    assert target.read_bytes() == b"png-bytes"
    assert stored.url == "/media/licenses/7/licenses/front.png"
    assert stored.size == 9
    assert signed == stored.url

    asyncio.run(local_storage.delete("licenses", ["7/licenses/front.png"]))
    assert not target.exists()


def test_local_storage_writes_off_the_event_loop(local_storage, monkeypatch):
    threads: list[int] = []
    write = local_storage._write
    remove = local_storage._remove

    def recording_write(*args):
        threads.append(threading.get_ident())
        write(*args)

    def recording_remove(*args):
        threads.append(threading.get_ident())
        remove(*args)

    monkeypatch.setattr(local_storage, "_write", recording_write)
    monkeypatch.setattr(local_storage, "_remove", recording_remove)

    async def scenario():
        loop_thread = threading.get_ident()
        await local_storage.upload("stock-images", "1/b.png", b"1", "image/png")
        await local_storage.delete("stock-images", ["1/b.png"])
        return loop_thread

    loop_thread = asyncio.run(scenario())

    assert len(threads) == 2
    assert loop_thread not in threads


def test_local_storage_refuses_overwrite(local_storage):
    asyncio.run(local_storage.upload("stock-images", "1/a.png", b"1", "image/png"))

    with pytest.raises(StorageError):
        asyncio.run(local_storage.upload("stock-images", "1/a.png", b"2", "image/png"))


def test_local_storage_rejects_path_traversal(local_storage, tmp_path):
    with pytest.raises(StorageError):
        asyncio.run(local_storage.upload("licenses", "../../outside.txt", b"secret", "text/plain"))

    assert not (tmp_path.parent / "outside.txt").exists()


def test_local_signed_url_for_missing_object(local_storage):
    with pytest.raises(StorageError):
        asyncio.run(local_storage.signed_url("licenses", "missing.pdf"))


class FakeStorageApi:
    def __init__(self, *, bucket_exists: bool = False, upload_status: int = 200) -> None:
        self.bucket_exists = bucket_exists
        self.upload_status = upload_status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "GET" and path.startswith("/storage/v1/bucket/"):
            if self.bucket_exists:
                return httpx.Response(200, json={"id": path.rsplit("/", 1)[-1]})
            return httpx.Response(404, json={"message": "Bucket not found"})
        if request.method == "POST" and path == "/storage/v1/bucket":
            self.bucket_exists = True
            return httpx.Response(200, json={"name": json.loads(request.content)["name"]})
        if request.method == "POST" and path.startswith("/storage/v1/object/sign/"):
            return httpx.Response(200, json={"signedURL": "/object/sign/licenses/a.pdf?token=xyz"})
        if request.method == "POST" and path.startswith("/storage/v1/object/"):
            return httpx.Response(self.upload_status, json={"Key": path})
        if request.method == "DELETE":
            return httpx.Response(200, json=[])
        return httpx.Response(400, json={"message": "unexpected"})


def _remote(api: FakeStorageApi) -> RemoteStorage:
    return RemoteStorage("https://storage.test", "service-key", transport=httpx.MockTransport(api))


def test_remote_storage_creates_missing_bucket_and_uploads():
    api = FakeStorageApi()
    backend = _remote(api)

    async def scenario():
        first = await backend.upload("licenses", "7/licenses/front.png", b"data", "image/png")
        await backend.upload("licenses", "7/licenses/back.png", b"data2", "image/png")
        return first

    stored = asyncio.run(scenario())

    methods = [(request.method, request.url.path) for request in api.requests]
    assert methods == [
        ("GET", "/storage/v1/bucket/licenses"),
        ("POST", "/storage/v1/bucket"),
        ("POST", "/storage/v1/object/licenses/7/licenses/front.png"),
        ("POST", "/storage/v1/object/licenses/7/licenses/back.png"),
    ]
    upload_request = api.requests[2]
    assert upload_request.headers["Authorization"] == "Bearer service-key"
    assert upload_request.headers["x-upsert"] == "false"
    assert upload_request.headers["Cache-Control"] == "max-age=3600"
    assert upload_request.headers["Content-Type"] == "image/png"
    assert stored.url == "https://storage.test/storage/v1/object/public/licenses/7/licenses/front.png"


def test_remote_storage_upload_failure():
    api = FakeStorageApi(bucket_exists=True, upload_status=409)

    with pytest.raises(StorageError):
        asyncio.run(_remote(api).upload("licenses", "a.pdf", b"x", "application/pdf"))


def test_remote_storage_signed_url_and_delete():
    api = FakeStorageApi(bucket_exists=True)
    backend = _remote(api)

    signed = asyncio.run(backend.signed_url("licenses", "a.pdf"))
    asyncio.run(backend.delete("licenses", ["a.pdf", "b.pdf"]))

    assert signed == "https://storage.test/storage/v1/object/sign/licenses/a.pdf?token=xyz"
    assert json.loads(api.requests[0].content) == {"expiresIn": 3600}
    delete_request = api.requests[-1]
    assert delete_request.method == "DELETE"
    assert json.loads(delete_request.content) == {"prefixes": ["a.pdf", "b.pdf"]}


def test_remote_storage_unreachable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    backend = RemoteStorage("https://storage.test", "key", transport=httpx.MockTransport(handler))

    with pytest.raises(StorageError):
        asyncio.run(backend.ensure_bucket("licenses"))


def test_remote_storage_requires_configuration():
    with pytest.raises(StorageError):
        RemoteStorage("", "")


def test_get_storage_defaults_to_local(monkeypatch):
    monkeypatch.setattr(object_storage, "_backend", None)

    backend = object_storage.get_storage()

    assert isinstance(backend, LocalStorage)
    assert object_storage.get_storage() is backend
