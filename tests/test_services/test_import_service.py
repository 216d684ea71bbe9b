"""Tests for importing Telegram files into the Cloudreve inbox."""

from __future__ import annotations

import string
from typing import TYPE_CHECKING

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from kvault.exceptions import UpstreamError
from kvault.services.import_service import (
    MAX_FILE_NAME_LENGTH,
    ImportRequest,
    build_share_link,
    import_file,
    sanitize_file_name,
)

if TYPE_CHECKING:
    from kvault.context import AppContext


class TestSanitizeFileName:
    def test_replaces_unsafe_characters(self) -> None:
        assert sanitize_file_name('a/b\\c:d*e?f"g<h>i|j.txt') == "a_b_c_d_e_f_g_h_i_j.txt"

    def test_collapses_whitespace(self) -> None:
        assert sanitize_file_name("my  holiday \t photo.jpg") == "my_holiday_photo.jpg"

    def test_truncates_long_names(self) -> None:
        assert len(sanitize_file_name("x" * 500)) == MAX_FILE_NAME_LENGTH

    def test_empty_falls_back(self) -> None:
        assert sanitize_file_name("") == "file"
        assert sanitize_file_name(None) == "file"

    @settings(max_examples=200, deadline=None)
    @given(st.text(alphabet=string.printable + "äöü日本", max_size=400))
    def test_result_is_a_single_safe_segment(self, name: str) -> None:
        cleaned = sanitize_file_name(name)
        assert cleaned
        assert len(cleaned) <= MAX_FILE_NAME_LENGTH
        assert not any(ch in cleaned for ch in '/\\:*?"<>|')
        assert not any(ch.isspace() for ch in cleaned)


class TestBuildShareLink:
    def test_link_points_at_cloudreve(self) -> None:
        assert (
            build_share_link("http://cloudreve.test/", "/inbox/a.txt")
            == "http://cloudreve.test/s/inbox/a.txt"
        )


class TestImportFile:
    @pytest.mark.asyncio
    async def test_imports_into_inbox(self, ctx: AppContext, primary, secondary) -> None:
        secondary_id = secondary.add_blob(b"voice-bytes", "audio/ogg")

        result = await import_file(
            ctx,
            ImportRequest(
                secondary_id=secondary_id,
                secondary_ref=77,
                file_name="voice note.ogg",
                mime_type="audio/ogg",
                file_size=11,
            ),
        )

        assert result.path == "/inbox/voice_note.ogg"
        assert result.secondary_id == secondary_id
        assert result.link == "http://cloudreve.test/s/inbox/voice_note.ogg"
        assert "api.telegram.org" not in result.link
        assert primary.ensured == ["/inbox"]
        assert primary.uploads == ["/inbox/voice_note.ogg"]

        row = await ctx.mappings.get_by_path("/inbox/voice_note.ogg")
        assert row is not None
        assert row.cached is True
        assert row.secondary_id == secondary_id
        assert row.secondary_ref == 77
        assert row.primary_id == primary.file_id("/inbox/voice_note.ogg")
        assert row.mime_type == "audio/ogg"

    @pytest.mark.asyncio
    async def test_detected_mime_used_when_caller_has_none(
        self, ctx: AppContext, primary, secondary
    ) -> None:
        secondary_id = secondary.add_blob(b"%PDF", "application/pdf")

        await import_file(ctx, ImportRequest(secondary_id=secondary_id, file_name="doc.pdf"))

        row = await ctx.mappings.get_by_path("/inbox/doc.pdf")
        assert row is not None
        assert row.mime_type == "application/pdf"
        assert row.file_size == 4

    @pytest.mark.asyncio
    async def test_repeat_import_is_idempotent(self, ctx: AppContext, primary, secondary) -> None:
        secondary_id = secondary.add_blob(b"bytes")
        request = ImportRequest(secondary_id=secondary_id, file_name="a.bin")

        first = await import_file(ctx, request)
        second = await import_file(
            ctx, ImportRequest(secondary_id="sec-other", file_name="a.bin")
        )

        assert len(secondary.downloads) == 1
        assert len(primary.uploads) == 1
        assert second.path == first.path
        assert second.secondary_id == secondary_id
        assert second.link == first.link

    @pytest.mark.asyncio
    async def test_failed_download_creates_no_mapping(
        self, ctx: AppContext, primary, secondary
    ) -> None:
        with pytest.raises(UpstreamError):
            await import_file(ctx, ImportRequest(secondary_id="sec-missing", file_name="a.bin"))
        assert primary.uploads == []
        assert await ctx.mappings.count() == 0
