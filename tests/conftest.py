"""Shared test fixtures for kvault."""

from __future__ import annotations

import asyncio
import itertools
from typing import TYPE_CHECKING

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kvault.config import Settings
from kvault.context import AppContext
from kvault.database import create_engine
from kvault.exceptions import UpstreamError
from kvault.models.base import Base
from kvault.services.mapping_service import MappingStore
from kvault.stores.base import (
    DEFAULT_MIME_TYPE,
    DirectoryEntry,
    DirectoryListing,
    FetchedFile,
    SecondaryUpload,
)
from kvault.stores.cloudreve import CloudreveClient, parent_dir

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine

START_TS = 1_700_000_000


class FakeClock:
    """Settable epoch-seconds clock."""

    def __init__(self, now: int = START_TS) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class FakePrimaryStore:
    """In-memory Cloudreve stand-in with call counters and injectable failures.

    Every call yields to the event loop once, so concurrent callers interleave the way
    they would against a real network store.
    """

    def __init__(self) -> None:
        self.files: dict[str, tuple[str, bytes, str]] = {}
        self.directories: set[str] = {"/"}
        self.ensured: list[str] = []
        self.downloads: list[str] = []
        self.uploads: list[str] = []
        self.deletes: list[str] = []
        self.fail_downloads = False
        self.fail_uploads = False
        self.fail_list = False
        self.fail_delete_paths: set[str] = set()
        self.fail_download_ids: set[str] = set()
        self._ids = itertools.count(1)

    def add_file(self, path: str, data: bytes, mime_type: str = DEFAULT_MIME_TYPE) -> str:
        file_id = f"p-{next(self._ids)}"
        self.files[path] = (file_id, data, mime_type)
        self.directories.add(parent_dir(path))
        return file_id

    def file_id(self, path: str) -> str:
        return self.files[path][0]

    async def ensure_directory(self, path: str) -> None:
        await asyncio.sleep(0)
        self.ensured.append(path)
        self.directories.add(path)

    async def list_directory(self, path: str) -> DirectoryListing:
        await asyncio.sleep(0)
        if self.fail_list:
            raise UpstreamError("cloudreve", f"cannot list {path}")
        objects = [
            DirectoryEntry(
                name=file_path.rsplit("/", 1)[-1],
                type="file",
                file_id=file_id,
                size=len(data),
            )
            for file_path, (file_id, data, _mime) in sorted(self.files.items())
            if parent_dir(file_path) == path
        ]
        objects.extend(
            DirectoryEntry(name=d.rsplit("/", 1)[-1], type="dir", file_id=f"d-{d}")
            for d in sorted(self.directories)
            if d != "/" and d != path and parent_dir(d) == path
        )
        return DirectoryListing(objects=objects, parent=path)

    async def download_file(self, file_id: str) -> FetchedFile:
        await asyncio.sleep(0)
        self.downloads.append(file_id)
        if self.fail_downloads or file_id in self.fail_download_ids:
            raise UpstreamError("cloudreve", f"download of {file_id} failed", status=500)
        for stored_id, data, mime_type in self.files.values():
            if stored_id == file_id:
                return FetchedFile(data=data, mime_type=mime_type)
        raise UpstreamError("cloudreve", f"file {file_id} not found", status=404)

    async def upload_file(
        self,
        *,
        path: str,
        file_name: str,
        file_size: int,
        mime_type: str,
        data: bytes,
    ) -> str:
        await asyncio.sleep(0)
        self.uploads.append(path)
        if self.fail_uploads:
            raise UpstreamError("cloudreve", f"upload of {path} failed", status=500)
        return self.add_file(path, data, mime_type)

    async def delete_file(self, path: str) -> None:
        await asyncio.sleep(0)
        self.deletes.append(path)
        if path in self.fail_delete_paths:
            raise UpstreamError("cloudreve", f"delete of {path} failed", status=500)
        self.files.pop(path, None)


class FakeSecondaryStore:
    """In-memory Telegram stand-in. Ids are ``sec-<n>``, refs are ``n``."""

    def __init__(self, first_number: int = 1) -> None:
        self.blobs: dict[str, tuple[bytes, str]] = {}
        self.uploads: list[tuple[str, str]] = []
        self.downloads: list[str] = []
        self.fail_uploads = False
        self.fail_downloads = False
        self.next_number = first_number

    def add_blob(self, data: bytes, mime_type: str = DEFAULT_MIME_TYPE) -> str:
        file_id = f"sec-{self.next_number}"
        self.next_number += 1
        self.blobs[file_id] = (data, mime_type)
        return file_id

    async def upload_file(
        self,
        *,
        data: bytes,
        file_name: str,
        mime_type: str,
        file_size: int,
        caption: str = "",
    ) -> SecondaryUpload:
        await asyncio.sleep(0)
        if self.fail_uploads:
            raise UpstreamError("telegram", f"upload of {file_name} failed", status=400)
        ref = self.next_number
        file_id = self.add_blob(data, mime_type)
        self.uploads.append((file_name, caption))
        return SecondaryUpload(id=file_id, ref=ref)

    async def download_file(self, file_id: str) -> FetchedFile:
        await asyncio.sleep(0)
        self.downloads.append(file_id)
        if self.fail_downloads or file_id not in self.blobs:
            raise UpstreamError("telegram", f"download of {file_id} failed", status=400)
        data, mime_type = self.blobs[file_id]
        return FetchedFile(data=data, mime_type=mime_type)


class FakeReplier:
    """Records bot replies instead of sending them."""

    def __init__(self) -> None:
        self.messages: list[dict[str, object]] = []
        self.fail = False

    async def send_message(
        self,
        text: str,
        chat_id: str | int | None = None,
        reply_to_message_id: int | None = None,
    ) -> dict[str, object]:
        if self.fail:
            raise UpstreamError("telegram", "chat not found", status=400)
        self.messages.append(
            {"text": text, "chat_id": chat_id, "reply_to_message_id": reply_to_message_id}
        )
        return {"message_id": len(self.messages)}


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings with a temporary database."""
    db_path = tmp_path / "mappings.db"
    return Settings(
        _env_file=None,
        debug=False,
        database_url=f"sqlite+aiosqlite:///{db_path}",
        cloudreve_url="http://cloudreve.test",
        cloudreve_user="admin@example.com",
        cloudreve_password="secret",
        cloudreve_inbox_path="/inbox",
        tg_bot_token="123456:TEST-TOKEN",
        tg_channel_id="-1001234567890",
        cache_idle_days=7,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a test database engine with the schema in place."""
    engine, _session_factory = create_engine(test_settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def mapping_store(
    session_factory: async_sessionmaker[AsyncSession], clock: FakeClock
) -> MappingStore:
    return MappingStore(session_factory, clock=clock)


@pytest.fixture
def replier() -> FakeReplier:
    return FakeReplier()


@pytest.fixture
def primary() -> FakePrimaryStore:
    return FakePrimaryStore()


@pytest.fixture
def secondary() -> FakeSecondaryStore:
    return FakeSecondaryStore()


@pytest.fixture
def ctx(
    test_settings: Settings,
    mapping_store: MappingStore,
    primary: FakePrimaryStore,
    secondary: FakeSecondaryStore,
    clock: FakeClock,
) -> AppContext:
    """Service context wired to the fake stores and the fake clock."""
    return AppContext(
        settings=test_settings,
        mappings=mapping_store,
        primary=primary,
        secondary=secondary,
        clock=clock,
    )


@pytest.fixture
async def unavailable_cloudreve() -> AsyncGenerator[CloudreveClient]:
    """Real Cloudreve client whose server answers every request, login included, with 503."""
    client = CloudreveClient(
        "http://cloudreve.test",
        user="admin@example.com",
        password="secret",
        http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(503))
        ),
    )
    yield client
    await client.aclose()
