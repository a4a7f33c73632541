# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
RemoteGateway – typed HTTP client for the vault storage server.

Every call except the health probe carries the session's master password in
``X-Master-Password``.  Server error bodies (``{"error", "code"}``) are
turned back into the matching ``core.exceptions`` class; transport failures
become ``UnavailableError``.
"""

import asyncio
from typing import Any, List, Optional

import httpx

from core.config import settings
from core.exceptions import (
    ERRORS_BY_CODE,
    CredentialMissingError,
    NotFoundError,
    RemoteError,
    UnavailableError,
    VaultError,
)
from core.logger import logger


class RemoteGateway:
    def __init__(
        self,
        base_url: Optional[str] = None,
        credentials=None,
        timeout: Optional[float] = None,
        probe_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.server_url).rstrip("/")
        self.credentials = credentials
        self.probe_timeout = probe_timeout or settings.probe_timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.request_timeout,
            transport=transport,
        )

    # -- Plumbing ------------------------------------------------------------

    def _headers(self) -> dict:
        password = getattr(self.credentials, "password", None)
        if not password:
            raise CredentialMissingError()
        return {"X-Master-Password": password}

    @staticmethod
    def _raise_for(response: httpx.Response) -> None:
        if response.is_success:
            return
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("error") or response.reason_phrase or "Request failed"
        error_cls = ERRORS_BY_CODE.get(body.get("code"))
        if error_cls is not None:
            raise error_cls(message)
        if response.status_code == 404:
            raise NotFoundError(message)
        raise RemoteError(message, status_code=response.status_code)

    async def _request(self, method: str, path: str, *, auth: bool = True, **kwargs) -> httpx.Response:
        headers = self._headers() if auth else {}
        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.TransportError as exc:
            logger.warning("Gateway: %s %s failed: %s", method, path, exc)
            raise UnavailableError(f"Server not available: {exc}") from exc
        self._raise_for(response)
        return response

    # -- Health --------------------------------------------------------------

    async def health(self) -> dict:
        response = await self._request("GET", "/health", auth=False)
        return response.json()

    async def is_available(self) -> bool:
        """True when /health answers ok within ``probe_timeout``; never raises."""
        try:
            body = await asyncio.wait_for(self.health(), timeout=self.probe_timeout)
        except (asyncio.TimeoutError, httpx.HTTPError, VaultError, ValueError) as exc:
            logger.info("Gateway: server at %s unavailable: %s", self.base_url, exc)
            return False
        return isinstance(body, dict) and body.get("status") == "ok"

    # -- Files ---------------------------------------------------------------

    async def upload(
        self,
        content: bytes,
        name: str,
        mime_type: str = "application/octet-stream",
        description: str = "",
        category: str = "file",
    ) -> dict:
        """Upload one file and return the server's UploadResponse body."""
        response = await self._request(
            "POST",
            "/files/upload",
            files={"file": (name, content, mime_type)},
            data={"description": description, "category": category},
        )
        return response.json()

    async def download(self, file_id: str) -> bytes:
        response = await self._request("GET", f"/files/{file_id}")
        return response.content

    async def metadata(self, file_id: str) -> dict:
        response = await self._request("GET", f"/files/{file_id}/metadata")
        return response.json()

    async def list_files(self) -> dict:
        response = await self._request("GET", "/files")
        return response.json()

    async def delete_file(self, file_id: str) -> None:
        await self._request("DELETE", f"/files/{file_id}")

    # -- Vault-item snapshot -------------------------------------------------

    async def save_items(self, items: List[dict]) -> dict:
        response = await self._request("POST", "/vault-items", json={"items": items})
        return response.json()

    async def load_items(self) -> List[dict]:
        response = await self._request("GET", "/vault-items")
        return response.json().get("items", [])

    async def update_item(self, item_id: str, item: dict) -> dict:
        response = await self._request("PUT", f"/vault-items/{item_id}", json={"item": item})
        return response.json()

    async def delete_item(self, item_id: str) -> Any:
        response = await self._request("DELETE", f"/vault-items/{item_id}")
        return response.json()

    async def aclose(self) -> None:
        await self._client.aclose()
