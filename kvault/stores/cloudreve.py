"""Cloudreve v3 HTTP client (primary store).

Handles cookie-session authentication, directory listing, chunked upload,
download via signed URLs, and deletion through the v3 REST API.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import re
import time
from typing import Any
from urllib.parse import quote

import httpx

from kvault.exceptions import StoreConfigurationError, UpstreamError
from kvault.stores.base import DEFAULT_MIME_TYPE, DirectoryEntry, DirectoryListing, FetchedFile

logger = logging.getLogger(__name__)

STORE_NAME = "cloudreve"

_SESSION_COOKIE_RE = re.compile(r"cloudreve-session=[^;]+")
# Cloudreve sessions live 24 h; refresh an hour early.
_SESSION_TTL_SECONDS = 23 * 60 * 60
_CODE_LOGIN_REQUIRED = 401


def parent_dir(path: str) -> str:
    """Return the parent directory of a Cloudreve path (``/`` for top-level files)."""
    parent = posixpath.dirname(path.rstrip("/"))
    return parent or "/"


class CloudreveClient:
    """Async client for a Cloudreve v3 instance.

    Args:
        base_url: Instance root, e.g. ``http://cloudreve:5212``.
        user: Login e-mail or username.
        password: Login password.
        admin_token: Pre-issued session cookie value; skips the login call when set.
        timeout: Per-request timeout in seconds.
        http_client: Pre-configured client (tests inject a mock transport here).
    """

    def __init__(
        self,
        base_url: str,
        user: str = "",
        password: str = "",
        admin_token: str = "",
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not base_url:
            msg = "Cloudreve base URL is required"
            raise StoreConfigurationError(msg)
        if not admin_token and not (user and password):
            msg = "Cloudreve requires either an admin token or a username and password"
            raise StoreConfigurationError(msg)
        self.base_url = base_url.rstrip("/")
        self._user = user
        self._password = password
        self._admin_token = admin_token
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self._cookie: str | None = None
        self._cookie_expiry = 0.0
        self._auth_lock = asyncio.Lock()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── Auth ────────────────────────────────────────────

    async def ensure_auth(self) -> str:
        """Return a valid session cookie, logging in if needed."""
        if self._admin_token:
            return f"cloudreve-session={self._admin_token}"

        async with self._auth_lock:
            now = time.monotonic()
            if self._cookie is not None and now < self._cookie_expiry:
                return self._cookie

            resp = await self._raw_request(
                "POST",
                "/api/v3/user/session",
                json={"userName": self._user, "Password": self._password},
            )
            if resp.status_code != 200:
                msg = f"login failed ({resp.status_code})"
                raise UpstreamError(STORE_NAME, msg, status=resp.status_code)
            body = _json_or_empty(resp)
            if body.get("code", 0) != 0:
                msg = f"login rejected: {body.get('msg', '')}"
                raise UpstreamError(STORE_NAME, msg, status=resp.status_code)

            match = None
            for header in resp.headers.get_list("set-cookie"):
                match = _SESSION_COOKIE_RE.search(header)
                if match:
                    break
            if match is None:
                msg = "login succeeded but no session cookie returned"
                raise UpstreamError(STORE_NAME, msg, status=resp.status_code)

            self._cookie = match.group(0)
            self._cookie_expiry = now + _SESSION_TTL_SECONDS
            logger.info("Logged in to Cloudreve as %s", self._user)
            return self._cookie

    def _invalidate_session(self) -> None:
        self._cookie = None
        self._cookie_expiry = 0.0

    # ── Internal helpers ────────────────────────────────

    async def _raw_request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if url.startswith("/"):
            url = f"{self.base_url}{url}"
        try:
            return await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            msg = f"{method} request failed: {type(exc).__name__}"
            raise UpstreamError(STORE_NAME, msg) from exc

    async def _auth_request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        cookie = await self.ensure_auth()
        headers = {"Cookie": cookie, **kwargs.pop("headers", {})}
        return await self._raw_request(method, path, headers=headers, **kwargs)

    async def _auth_json(self, method: str, path: str, **kwargs: Any) -> Any:
        resp = await self._auth_request(method, path, **kwargs)
        return self._unwrap(resp, path)

    def _unwrap(self, resp: httpx.Response, path: str) -> Any:
        body = _json_or_empty(resp)
        code = body.get("code")
        if resp.is_success and code == 0:
            return body.get("data")
        if code == _CODE_LOGIN_REQUIRED or resp.status_code == 401:
            self._invalidate_session()
        msg = f"API error [{path}] ({resp.status_code}) code={code}: {body.get('msg', '')}"
        raise UpstreamError(STORE_NAME, msg, status=resp.status_code)

    # ── Directories ─────────────────────────────────────

    async def list_directory(self, path: str = "/") -> DirectoryListing:
        """List the immediate children of a directory."""
        encoded = quote(path if path.startswith("/") else f"/{path}", safe="/")
        data = await self._auth_json("GET", f"/api/v3/directory{encoded}") or {}
        objects = [
            DirectoryEntry(
                name=str(obj.get("name", "")),
                type=str(obj.get("type", "")),
                file_id=str(obj.get("id") or obj.get("fileId") or ""),
                size=int(obj.get("size") or 0),
            )
            for obj in data.get("objects") or []
        ]
        return DirectoryListing(objects=objects, parent=data.get("parent"))

    async def create_directory(self, path: str) -> None:
        """Create a directory (and any missing parents)."""
        await self._auth_json("PUT", "/api/v3/directory", json={"path": path})

    async def ensure_directory(self, path: str) -> None:
        """Create a directory, treating "already exists" as success."""
        try:
            await self.create_directory(path)
        except UpstreamError as exc:
            logger.debug("create_directory(%s) ignored: %s", path, exc)

    # ── Files ───────────────────────────────────────────

    async def get_download_url(self, file_id: str) -> str:
        """Return a signed, short-lived download URL for a file."""
        data = await self._auth_json(
            "PUT", f"/api/v3/file/download/{quote(file_id, safe='')}", json={"speed": 0}
        )
        if not isinstance(data, str) or not data:
            raise UpstreamError(STORE_NAME, f"no download URL returned for file {file_id}")
        return data

    async def download_file(self, file_id: str) -> FetchedFile:
        """Download a file's bytes by Cloudreve file id."""
        url = await self.get_download_url(file_id)
        resp = await self._raw_request("GET", url)
        if not resp.is_success:
            msg = f"download of file {file_id} failed ({resp.status_code})"
            raise UpstreamError(STORE_NAME, msg, status=resp.status_code)
        mime_type = resp.headers.get("content-type") or DEFAULT_MIME_TYPE
        return FetchedFile(data=resp.content, mime_type=mime_type)

    async def upload_file(
        self,
        *,
        path: str,
        file_name: str,
        file_size: int,
        mime_type: str,
        data: bytes,
    ) -> str:
        """Upload ``data`` as a single chunk and return the new file id."""
        mime_type = mime_type or DEFAULT_MIME_TYPE
        session = await self._auth_json(
            "PUT",
            "/api/v3/file/upload",
            json={
                "path": parent_dir(path),
                "size": file_size,
                "name": file_name,
                "chunk_size": file_size,
                "mime_type": mime_type,
                "last_modified": int(time.time() * 1000),
            },
        )
        session_id = (session or {}).get("sessionID")
        if not session_id:
            raise UpstreamError(STORE_NAME, "no upload session ID returned")

        resp = await self._auth_request(
            "POST",
            f"/api/v3/file/upload/{session_id}/0",
            content=data,
            headers={"Content-Type": mime_type, "Content-Length": str(file_size)},
        )
        file_id = self._unwrap(resp, "/api/v3/file/upload/{session}/0")
        if file_id:
            return str(file_id)

        # Some storage policies do not echo the id; look the file up instead.
        entry = await self.stat_file(path)
        if entry is None or not entry.file_id:
            raise UpstreamError(STORE_NAME, f"uploaded {path} but could not resolve its id")
        return entry.file_id

    async def delete_file(self, path: str) -> None:
        """Delete a file by its full path."""
        await self._auth_json(
            "DELETE",
            "/api/v3/object",
            json={"items": [], "dirs": [], "files": [path]},
        )

    async def stat_file(self, path: str) -> DirectoryEntry | None:
        """Return the listing entry for ``path``, or None if it cannot be found."""
        name = posixpath.basename(path.rstrip("/"))
        try:
            listing = await self.list_directory(parent_dir(path))
        except UpstreamError:
            return None
        return next((obj for obj in listing.objects if obj.name == name), None)


def _json_or_empty(resp: httpx.Response) -> dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
