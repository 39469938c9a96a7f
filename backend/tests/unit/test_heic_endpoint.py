"""Tests for POST /functions/v1/convert-heic."""

import io
import json
import uuid

import respx
from httpx import Response
from PIL import Image

from api.heic import _caller_may_convert
from auth.jwt import create_access_token
from config import settings
from conftest import SERVICE_ROLE_KEY, SUPABASE_URL

URL = "/functions/v1/convert-heic"
OBJECTS = f"{SUPABASE_URL}/storage/v1/object/dog-photos"
SERVICE_HEADERS = {"Authorization": f"Bearer {SERVICE_ROLE_KEY}"}


def _temp_path(user_id) -> str:
    return f"temp/{user_id}/abc123-IMG_0001.HEIC"


class TestConvertHeic:
    async def test_converts_and_cleans_up(self, test_client, auth_headers, user_id, heic_photo):
        temp_path = _temp_path(user_id)
        with respx.mock:
            download = respx.get(f"{OBJECTS}/{temp_path}").mock(
                return_value=Response(200, content=heic_photo)
            )
            upload = respx.post(url__regex=rf"{OBJECTS}/{user_id}/[0-9a-f]+\.jpg").mock(
                return_value=Response(200, json={})
            )
            remove = respx.delete(OBJECTS).mock(return_value=Response(200, json=[]))
            resp = await test_client.post(
                URL, json={"tempPath": temp_path, "userId": str(user_id)}, headers=auth_headers,
            )

        assert resp.status_code == 200
        data = resp.json()
        assert data["path"].startswith(f"{user_id}/")
        assert data["url"] == f"{SUPABASE_URL}/storage/v1/object/public/dog-photos/{data['path']}"
        assert download.called
        stored = upload.calls[0].request.content
        assert Image.open(io.BytesIO(stored)).format == "JPEG"
        assert len(stored) <= 2 * 1024 * 1024
        assert json.loads(remove.calls[0].request.content) == {"prefixes": [temp_path]}

    async def test_service_role_may_convert_for_any_user(self, test_client, heic_photo):
        other = uuid.uuid4()
        temp_path = _temp_path(other)
        with respx.mock:
            respx.get(f"{OBJECTS}/{temp_path}").mock(return_value=Response(200, content=heic_photo))
            respx.post(url__regex=rf"{OBJECTS}/{other}/.+").mock(return_value=Response(200, json={}))
            respx.delete(OBJECTS).mock(return_value=Response(200, json=[]))
            resp = await test_client.post(
                URL, json={"tempPath": temp_path, "userId": str(other)}, headers=SERVICE_HEADERS,
            )
        assert resp.status_code == 200

    async def test_undecodable_upload_is_422(self, test_client, auth_headers, user_id):
        temp_path = _temp_path(user_id)
        with respx.mock:
            respx.get(f"{OBJECTS}/{temp_path}").mock(return_value=Response(200, content=b"junk"))
            remove = respx.delete(OBJECTS).mock(return_value=Response(200, json=[]))
            resp = await test_client.post(
                URL, json={"tempPath": temp_path, "userId": str(user_id)}, headers=auth_headers,
            )

        assert resp.status_code == 422
        assert resp.json()["requiresClientConversion"] is True
        assert remove.called

    async def test_download_failure_is_500(self, test_client, auth_headers, user_id):
        temp_path = _temp_path(user_id)
        with respx.mock:
            respx.get(f"{OBJECTS}/{temp_path}").mock(
                return_value=Response(404, json={"message": "Object not found"})
            )
            resp = await test_client.post(
                URL, json={"tempPath": temp_path, "userId": str(user_id)}, headers=auth_headers,
            )
        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to download file"}

    async def test_store_failure_is_500(self, test_client, auth_headers, user_id, heic_photo):
        temp_path = _temp_path(user_id)
        with respx.mock:
            respx.get(f"{OBJECTS}/{temp_path}").mock(return_value=Response(200, content=heic_photo))
            respx.post(url__regex=rf"{OBJECTS}/{user_id}/.+").mock(
                return_value=Response(500, json={"error": "disk full"})
            )
            remove = respx.delete(OBJECTS).mock(return_value=Response(200, json=[]))
            resp = await test_client.post(
                URL, json={"tempPath": temp_path, "userId": str(user_id)}, headers=auth_headers,
            )
        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to store converted file"}
        assert remove.called


class TestConvertHeicValidation:
    async def test_missing_fields(self, test_client, auth_headers):
        resp = await test_client.post(URL, json={"tempPath": "temp/x/y.heic"}, headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing tempPath or userId"}

    async def test_path_outside_users_temp_folder(self, test_client, auth_headers, user_id):
        for temp_path in (f"{user_id}/photo.heic", f"temp/{user_id}/../other/x.heic", "temp/x.heic"):
            resp = await test_client.post(
                URL, json={"tempPath": temp_path, "userId": str(user_id)}, headers=auth_headers,
            )
            assert resp.status_code == 400

    async def test_other_users_token_is_forbidden(self, test_client, user_id):
        intruder = {"Authorization": f"Bearer {create_access_token(uuid.uuid4())}"}
        resp = await test_client.post(
            URL, json={"tempPath": _temp_path(user_id), "userId": str(user_id)}, headers=intruder,
        )
        assert resp.status_code == 403

    async def test_requires_bearer(self, test_client, user_id):
        resp = await test_client.post(
            URL, json={"tempPath": _temp_path(user_id), "userId": str(user_id)},
        )
        assert resp.status_code in (401, 403)

    async def test_preflight(self, test_client):
        resp = await test_client.options(URL)
        assert resp.status_code == 200
        assert resp.text == "ok"


class TestCallerMayConvert:
    def test_service_role_key(self, user_id):
        assert _caller_may_convert(SERVICE_ROLE_KEY, str(user_id)) is True

    def test_near_miss_key_is_rejected(self, user_id):
        assert _caller_may_convert(SERVICE_ROLE_KEY + "x", str(user_id)) is False

    def test_owner_token(self, user_id):
        assert _caller_may_convert(create_access_token(user_id), str(user_id)) is True

    def test_unconfigured_service_key_falls_back_to_jwt(self, user_id, monkeypatch):
        monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY", raising=False)
        monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY_FILE", raising=False)
        monkeypatch.setattr(settings, "_supabase_service_role_key", None)

        assert _caller_may_convert(SERVICE_ROLE_KEY, str(user_id)) is False
        assert _caller_may_convert(create_access_token(user_id), str(user_id)) is True
