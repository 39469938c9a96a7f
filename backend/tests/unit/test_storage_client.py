"""Tests for storage.client.StorageClient using respx."""

import json

import pytest
import respx
from httpx import Response

from storage.client import StorageAPIError, StorageClient
from conftest import SUPABASE_URL


@pytest.fixture
def client():
    return StorageClient(base_url=f"{SUPABASE_URL}/", api_key="test-key")


class TestHeaders:
    async def test_sends_bearer_and_apikey(self, client):
        with respx.mock:
            route = respx.get(f"{SUPABASE_URL}/storage/v1/object/dog-photos/a.jpg").mock(
                return_value=Response(200, content=b"jpeg")
            )
            await client.download("dog-photos", "a.jpg")
            request = route.calls[0].request
            assert request.headers["authorization"] == "Bearer test-key"
            assert request.headers["apikey"] == "test-key"


class TestUpload:
    async def test_posts_raw_bytes(self, client):
        with respx.mock:
            route = respx.post(f"{SUPABASE_URL}/storage/v1/object/dog-photos/u1/a.jpg").mock(
                return_value=Response(200, json={"Key": "dog-photos/u1/a.jpg"})
            )
            path = await client.upload("dog-photos", "u1/a.jpg", b"\xff\xd8data")
            assert path == "u1/a.jpg"
            request = route.calls[0].request
            assert request.content == b"\xff\xd8data"
            assert request.headers["content-type"] == "image/jpeg"
            assert request.headers["x-upsert"] == "false"

    async def test_conflict_raises(self, client):
        with respx.mock:
            respx.post(f"{SUPABASE_URL}/storage/v1/object/dog-photos/a.jpg").mock(
                return_value=Response(409, json={"error": "Duplicate", "message": "The resource already exists"})
            )
            with pytest.raises(StorageAPIError) as exc_info:
                await client.upload("dog-photos", "a.jpg", b"x")
            assert exc_info.value.status_code == 409
            assert "Duplicate" in exc_info.value.message
            assert "already exists" in exc_info.value.message


class TestDownloadAndRemove:
    async def test_download_returns_bytes(self, client):
        with respx.mock:
            respx.get(f"{SUPABASE_URL}/storage/v1/object/dog-photos/temp/u/x.heic").mock(
                return_value=Response(200, content=b"heic-bytes")
            )
            assert await client.download("dog-photos", "temp/u/x.heic") == b"heic-bytes"

    async def test_download_missing_raises(self, client):
        with respx.mock:
            respx.get(f"{SUPABASE_URL}/storage/v1/object/dog-photos/nope.jpg").mock(
                return_value=Response(404, json={"message": "Object not found"})
            )
            with pytest.raises(StorageAPIError) as exc_info:
                await client.download("dog-photos", "nope.jpg")
            assert exc_info.value.status_code == 404
            assert exc_info.value.message == "Object not found"

    async def test_remove_sends_prefixes(self, client):
        with respx.mock:
            route = respx.delete(f"{SUPABASE_URL}/storage/v1/object/dog-photos").mock(
                return_value=Response(200, json=[])
            )
            await client.remove("dog-photos", ["temp/u/a.heic", "temp/u/b.heic"])
            body = json.loads(route.calls[0].request.content)
            assert body == {"prefixes": ["temp/u/a.heic", "temp/u/b.heic"]}


class TestPublicUrl:
    def test_builds_without_request(self, client):
        assert client.get_public_url("post-photos", "u1/p.jpg") == (
            f"{SUPABASE_URL}/storage/v1/object/public/post-photos/u1/p.jpg"
        )


class TestInvoke:
    async def test_returns_json(self, client):
        with respx.mock:
            route = respx.post(f"{SUPABASE_URL}/functions/v1/convert-heic").mock(
                return_value=Response(200, json={"url": "https://cdn.test/x.jpg"})
            )
            result = await client.invoke("convert-heic", {"tempPath": "t", "userId": "u"})
            assert result == {"url": "https://cdn.test/x.jpg"}
            assert json.loads(route.calls[0].request.content) == {"tempPath": "t", "userId": "u"}

    async def test_no_content(self, client):
        with respx.mock:
            respx.post(f"{SUPABASE_URL}/functions/v1/ping").mock(return_value=Response(204))
            assert await client.invoke("ping", {}) == {}

    async def test_non_json_body(self, client):
        with respx.mock:
            respx.post(f"{SUPABASE_URL}/functions/v1/ping").mock(
                return_value=Response(200, text="ok")
            )
            assert await client.invoke("ping", {}) == {}

    async def test_error_string_is_message(self, client):
        with respx.mock:
            respx.post(f"{SUPABASE_URL}/functions/v1/convert-heic").mock(
                return_value=Response(422, json={"error": "HEIC conversion not available on server"})
            )
            with pytest.raises(StorageAPIError) as exc_info:
                await client.invoke("convert-heic", {})
            assert exc_info.value.status_code == 422
            assert exc_info.value.message == "HEIC conversion not available on server"
            assert exc_info.value.response_body["error"].startswith("HEIC")
