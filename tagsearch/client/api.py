"""Async HTTP client for the image tag search API.

Wraps the four endpoints and the direct PUT to S3. Failures are raised as
``ClientError`` carrying the server's ``detail`` message when there is one.
"""

import logging
import os
from typing import Any, Dict, List, Optional

import httpx

log = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:5000"
DEFAULT_TIMEOUT = 30.0


class ClientError(Exception):
    """Raised when a client-side check or an HTTP call fails."""


def _detail(response: httpx.Response, fallback: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return fallback


def _json_object(response: httpx.Response, what: str) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError as e:
        raise ClientError(f"{what}: response is not JSON (HTTP {response.status_code})") from e
    if not isinstance(body, dict):
        raise ClientError(f"{what}: unexpected response body")
    return body


class TagSearchClient:
    """Client for the upload, status and search endpoints.

    Uses ``TAGSEARCH_API_URL`` when no base URL is given.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or os.getenv("TAGSEARCH_API_URL", DEFAULT_API_URL)).rstrip("/")
        self.client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)
        # Presigned URLs point at S3, not at the API
        self.storage_client = httpx.AsyncClient(timeout=timeout, transport=transport)
        log.info(f"TagSearchClient initialized: url={self.base_url}")

    async def get_presigned_url(self, file_name: str, file_type: str) -> Dict[str, Any]:
        """Returns ``{presignedUrl, imageId, expiresIn}``."""
        try:
            response = await self.client.post(
                "/api/generate-upload-url",
                json={"fileName": file_name, "fileType": file_type},
            )
        except httpx.HTTPError as e:
            raise ClientError(f"Failed to generate upload URL: {e}") from e
        if response.is_error:
            raise ClientError(_detail(response, "Failed to generate upload URL"))
        return _json_object(response, "Failed to generate upload URL")

    async def upload_to_storage(self, presigned_url: str, content: bytes, content_type: str) -> None:
        """PUTs the file bytes straight to S3 using the presigned URL."""
        try:
            response = await self.storage_client.put(
                presigned_url,
                content=content,
                headers={"Content-Type": content_type},
            )
        except httpx.HTTPError as e:
            raise ClientError(f"Failed to upload to storage: {e}") from e
        if response.is_error:
            raise ClientError(f"Failed to upload to storage: HTTP {response.status_code}")

    async def get_image_status(self, image_id: str) -> Dict[str, Any]:
        """Returns the full image record, including status and keywords."""
        try:
            response = await self.client.get(f"/api/status/{image_id}")
        except httpx.HTTPError as e:
            raise ClientError(f"Failed to get image status: {e}") from e
        if response.is_error:
            raise ClientError(_detail(response, "Failed to get image status"))
        return _json_object(response, "Failed to get image status")

    async def search_images(self, keywords: List[str]) -> List[Dict[str, Any]]:
        """Returns the records tagged with every keyword."""
        try:
            response = await self.client.get("/api/search", params={"q": " ".join(keywords)})
        except httpx.HTTPError as e:
            raise ClientError(f"Search failed: {e}") from e
        if response.is_error:
            raise ClientError(_detail(response, "Search failed"))
        images = _json_object(response, "Search failed").get("images") or []
        if not isinstance(images, list):
            raise ClientError("Search failed: unexpected response body")
        return images

    async def aclose(self) -> None:
        await self.client.aclose()
        await self.storage_client.aclose()
