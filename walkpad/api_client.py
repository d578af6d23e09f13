"""Async client for the backend upload/analyze endpoints."""
from __future__ import annotations

import httpx

from walkpad.errors import TransportError


class ApiClient:
    """Talks to the backend; every failure surfaces as TransportError.

    No retries and no timeout beyond the transport default.
    """

    def __init__(self, base_url: str, client: httpx.AsyncClient | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.base_url)
        self._owns_client = client is None

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def upload(self, png_bytes: bytes) -> str:
        """Store a PNG on the backend and return its public URL."""
        try:
            resp = await self._client.post(
                f"{self.base_url}/api/upload",
                content=png_bytes,
                headers={"Content-Type": "image/png"},
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"Storage upload failed: {exc}") from exc

        if resp.is_error:
            raise TransportError(f"Storage upload failed: {resp.status_code} - {resp.text}")
        try:
            url = resp.json().get("url")
        except (ValueError, AttributeError) as exc:
            raise TransportError(f"Storage upload failed: unexpected response {resp.text[:200]!r}") from exc
        if not url:
            raise TransportError("Storage upload failed: response carried no url")
        return str(url)

    async def analyze(self, image_url: str) -> str:
        """Return the model's raw answer for the stored image."""
        try:
            resp = await self._client.get(f"{self.base_url}/api/analyze", params={"imageUrl": image_url})
        except httpx.HTTPError as exc:
            raise TransportError(f"Analysis failed: {exc}") from exc

        if resp.is_error:
            raise TransportError(f"Analysis failed: {resp.status_code} - {resp.text}")
        if not resp.text.strip():
            raise TransportError("Analysis failed: empty response")
        return resp.text
