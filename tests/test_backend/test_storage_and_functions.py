"""
Tests for object storage and server-side function invocation.
"""

import pytest

from backend.errors import RemoteError
from backend.functions import FunctionsClient
from backend.storage import StorageClient


class TestStorage:

    @pytest.fixture
    def storage(self) -> StorageClient:
        return StorageClient("http://localhost:54321/")

    @pytest.mark.asyncio
    async def test_upload_and_public_url(self, storage: StorageClient):
        bucket = storage.from_("revend-images")

        path = await bucket.upload("batch-images/a.jpg", b"jpeg-bytes")

        assert path == "batch-images/a.jpg"
        assert bucket.exists(path)
        assert bucket.get_public_url(path) == (
            "http://localhost:54321/storage/v1/object/public/revend-images/batch-images/a.jpg"
        )

    @pytest.mark.asyncio
    async def test_upload_existing_path_fails(self, storage: StorageClient):
        bucket = storage.from_("revend-images")
        await bucket.upload("a.jpg", b"1")

        with pytest.raises(RemoteError) as exc_info:
            await bucket.upload("a.jpg", b"2")

        assert exc_info.value.code == "409"

    @pytest.mark.asyncio
    async def test_remove_ignores_missing(self, storage: StorageClient):
        bucket = storage.from_("revend-images")
        await bucket.upload("a.jpg", "text content")

        removed = await bucket.remove(["a.jpg", "missing.jpg"])

        assert removed == ["a.jpg"]
        assert bucket.list_paths() == []

    def test_same_bucket_instance(self, storage: StorageClient):
        assert storage.from_("x") is storage.from_("x")


class TestFunctions:

    @pytest.fixture
    def functions(self) -> FunctionsClient:
        return FunctionsClient()

    @pytest.mark.asyncio
    async def test_invoke_sync_and_async(self, functions: FunctionsClient):
        async def echo_async(body):
            return {"async": body["x"]}

        functions.register("sync", lambda body: {"sync": body["x"]})
        functions.register("async", echo_async)

        assert await functions.invoke("sync", {"x": 1}) == {"sync": 1}
        assert await functions.invoke("async", {"x": 2}) == {"async": 2}

    @pytest.mark.asyncio
    async def test_unknown_function(self, functions: FunctionsClient):
        with pytest.raises(RemoteError) as exc_info:
            await functions.invoke("missing", {})

        assert exc_info.value.code == "404"

    @pytest.mark.asyncio
    async def test_exceptions_become_remote_errors(self, functions: FunctionsClient):
        def broken(body):
            raise KeyError("userId")

        functions.register("broken", broken)

        with pytest.raises(RemoteError, match="userId"):
            await functions.invoke("broken", {})
