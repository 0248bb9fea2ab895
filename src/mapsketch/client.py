"""Async client for the file service that stores saved maps.

Wraps the REST endpoints:

    POST   /save                         {fileName, geojsonData}
    GET    /load/{fileName}
    GET    /files
    DELETE /delete/{fileName}
    GET    /admin/files                  (admin/teacher)
    GET    /admin/load/{email}/{fileName} (admin/teacher)

Non-2xx responses become exceptions: 401/403 raise UnauthorizedError,
404 raises DocumentNotFoundError, anything else FileApiError. Transport
failures raise FileApiError with ``status=None``.
"""

from __future__ import annotations

from urllib.parse import quote

import httpx
from loguru import logger

from mapsketch.config import Settings, settings as default_settings
from mapsketch.errors import DocumentNotFoundError, FileApiError, UnauthorizedError


class FileApiClient:
    """Client for one account's saved files."""

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Root URL of the file service.
            headers: Extra headers sent with every request (session cookie,
                identity headers set by the authenticator).
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport, e.g. ``httpx.MockTransport``.
        """
        self.base_url = base_url.rstrip("/")
        self.headers = {"Accept": "application/json", **(headers or {})}
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        config: Settings | None = None,
        headers: dict[str, str] | None = None,
    ) -> FileApiClient:
        config = config or default_settings
        return cls(config.api_url, headers=headers, timeout=config.request_timeout)

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    async def save_document(self, file_name: str, envelope: dict) -> dict:
        """Store ``envelope`` under ``file_name``. Returns the service reply."""
        resp = await self._request(
            "POST", "/save", json={"fileName": file_name, "geojsonData": envelope},
        )
        return _json_or_empty(resp)

    async def load_document(self, file_name: str, owner: str | None = None) -> dict:
        """Fetch a saved document.

        Args:
            file_name: Name the document was saved under.
            owner: Account email, to load another user's file (admin/teacher only).
        """
        if owner:
            path = f"/admin/load/{quote(owner, safe='')}/{quote(file_name, safe='')}"
        else:
            path = f"/load/{quote(file_name, safe='')}"
        resp = await self._request("GET", path)
        try:
            return resp.json()
        except ValueError as e:
            raise FileApiError(resp.status_code, f"Response is not JSON: {e}") from e

    async def list_documents(self) -> list[str]:
        """Names of the current account's files."""
        resp = await self._request("GET", "/files")
        return _file_names(_json_or_empty(resp))

    async def list_all_documents(self) -> list[dict]:
        """Every account's files as ``{email, fileName, createdAt}`` (admin/teacher)."""
        resp = await self._request("GET", "/admin/files")
        data = _json_or_empty(resp)
        return data if isinstance(data, list) else []

    async def delete_document(self, file_name: str) -> None:
        await self._request("DELETE", f"/delete/{quote(file_name, safe='')}")

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, json: dict | None = None) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            try:
                resp = await client.request(method, path, json=json)
            except httpx.HTTPError as e:
                logger.warning(f"File service request {method} {path} failed: {e}")
                raise FileApiError(None, f"File service unavailable: {e}") from e

        if resp.is_success:
            return resp

        message = _error_message(resp)
        logger.warning(f"File service {method} {path} -> {resp.status_code}: {message}")
        if resp.status_code in (401, 403):
            raise UnauthorizedError(resp.status_code, message)
        if resp.status_code == 404:
            raise DocumentNotFoundError(resp.status_code, message)
        raise FileApiError(resp.status_code, message)


def _json_or_empty(resp: httpx.Response):
    try:
        return resp.json()
    except ValueError:
        return {}


def _error_message(resp: httpx.Response) -> str:
    data = _json_or_empty(resp)
    if isinstance(data, dict):
        for key in ("error", "detail", "message"):
            if isinstance(data.get(key), str):
                return data[key]
    return resp.reason_phrase or f"HTTP {resp.status_code}"


def _file_names(data) -> list[str]:
    """Normalize the file listing: plain names, row objects, or ``{"files": [...]}``."""
    if isinstance(data, dict):
        data = data.get("files", [])
    if not isinstance(data, list):
        return []

    names = []
    for item in data:
        if isinstance(item, str):
            names.append(item)
        elif isinstance(item, dict):
            name = item.get("file_name") or item.get("fileName")
            if isinstance(name, str):
                names.append(name)
    return names
