"""
Supabase Storage / Functions client

Async HTTP client wrapping the two backend-as-a-service REST surfaces the
image pipeline touches: object storage (upload, download, remove, public
URLs) and edge-function invocation.

Storage Base URL: {SUPABASE_URL}/storage/v1
Functions Base URL: {SUPABASE_URL}/functions/v1
Auth: Authorization: Bearer <key> plus apikey header
"""

import json
import logging
from typing import Any
from urllib.parse import quote

import httpx

from config import settings

logger = logging.getLogger(__name__)


class StorageAPIError(Exception):
    """Raised when the storage or functions API returns an error response."""

    def __init__(self, status_code: int, message: str, response_body: dict | None = None):
        self.status_code = status_code
        self.message = message
        self.response_body = response_body
        super().__init__(f"Storage API error {status_code}: {message}")


class StorageClient:
    """Async HTTP client for Supabase Storage and Edge Functions."""

    def __init__(self, base_url: str, api_key: str, timeout: float = 60.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
        }
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        json_body: dict | None = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Make an authenticated request, raising StorageAPIError on 4xx/5xx."""
        url = f"{self.base_url}{path}"
        logger.info(f"Storage API request: {method} {url}")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.request(
                method=method,
                url=url,
                headers=self._headers(headers),
                json=json_body,
                content=content,
            )

        logger.info(f"Storage API response: {response.status_code}")

        if response.status_code >= 400:
            logger.error(f"Storage API error response body: {response.text[:2000]}")
            try:
                body = response.json()
            except ValueError:
                body = {"raw": response.text}
            if not isinstance(body, dict):
                body = {"raw": body}

            error_msg = response.text
            if isinstance(body.get("error"), dict):
                error_msg = body["error"].get("message", error_msg)
            elif isinstance(body.get("error"), str):
                error_msg = body["error"]
                if body.get("message"):
                    error_msg += f" | {body['message']}"
            elif body.get("message"):
                error_msg = body["message"]

            raise StorageAPIError(
                status_code=response.status_code,
                message=error_msg,
                response_body=body,
            )

        return response

    @staticmethod
    def _object_path(bucket: str, path: str) -> str:
        return f"{quote(bucket)}/{quote(path.lstrip('/'))}"

    async def upload(
        self, bucket: str, path: str, data: bytes, content_type: str = "image/jpeg",
    ) -> str:
        """Upload an object and return its path within the bucket."""
        await self._request(
            "POST",
            f"/storage/v1/object/{self._object_path(bucket, path)}",
            content=data,
            headers={"Content-Type": content_type, "x-upsert": "false"},
        )
        return path

    async def download(self, bucket: str, path: str) -> bytes:
        """Download an object's raw bytes."""
        response = await self._request(
            "GET", f"/storage/v1/object/{self._object_path(bucket, path)}",
        )
        return response.content

    async def remove(self, bucket: str, paths: list[str]) -> None:
        """Delete objects from a bucket."""
        await self._request(
            "DELETE", f"/storage/v1/object/{quote(bucket)}", json_body={"prefixes": paths},
        )

    def get_public_url(self, bucket: str, path: str) -> str:
        """Public URL for an object in a public bucket (no request made)."""
        return f"{self.base_url}/storage/v1/object/public/{self._object_path(bucket, path)}"

    async def invoke(self, function_name: str, body: dict[str, Any]) -> dict[str, Any]:
        """Invoke an edge function with a JSON body and return its JSON reply.

        Args:
            function_name: Deployed function name, e.g. "convert-heic".
            body: JSON payload.

        Returns:
            Decoded JSON object (empty dict for 204 or non-JSON replies).
        """
        response = await self._request(
            "POST", f"/functions/v1/{quote(function_name)}", json_body=body,
        )
        if response.status_code == 204:
            return {}
        try:
            result = response.json()
        except json.JSONDecodeError:
            logger.warning("Function %s returned non-JSON body", function_name)
            return {}
        return result if isinstance(result, dict) else {"data": result}


def get_storage_client() -> StorageClient:
    """FastAPI dependency: service-role client for server-side storage work."""
    return StorageClient(settings.supabase_url, settings.supabase_service_role_key)
