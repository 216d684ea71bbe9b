"""Tests for Telegram bot update handling."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from kvault.services.bot_service import extract_media, handle_update

if TYPE_CHECKING:
    from kvault.context import AppContext


class TestExtractMedia:
    def test_text_message_has_no_media(self) -> None:
        assert extract_media({"message_id": 1, "text": "hi"}) is None
        assert extract_media(None) is None

    def test_largest_photo_wins(self) -> None:
        media = extract_media(
            {
                "message_id": 5,
                "photo": [
                    {"file_id": "small", "file_size": 100},
                    {"file_id": "large", "file_size": 9000},
                    {"file_id": "medium", "file_size": 1000},
                ],
            }
        )
        assert media is not None
        assert media.file_id == "large"
        assert media.file_name == "photo_5.jpg"
        assert media.mime_type == "image/jpeg"
        assert media.file_size == 9000

    def test_document_keeps_its_name_and_type(self) -> None:
        media = extract_media(
            {
                "message_id": 6,
                "document": {
                    "file_id": "doc-1",
                    "file_name": "report.pdf",
                    "mime_type": "application/pdf",
                    "file_size": 1234,
                },
            }
        )
        assert media is not None
        assert (media.file_id, media.file_name, media.mime_type) == (
            "doc-1",
            "report.pdf",
            "application/pdf",
        )

    @pytest.mark.parametrize(
        ("key", "expected_name", "expected_mime"),
        [
            ("voice", "voice_9.ogg", "audio/ogg"),
            ("video_note", "video_note_9.mp4", "video/mp4"),
            ("sticker", "sticker_9.webp", "image/webp"),
            ("document", "document_9.bin", "application/octet-stream"),
        ],
    )
    def test_fallback_names_and_types(
        self, key: str, expected_name: str, expected_mime: str
    ) -> None:
        media = extract_media({"message_id": 9, key: {"file_id": "f-1"}})
        assert media is not None
        assert media.file_name == expected_name
        assert media.mime_type == expected_mime


class TestHandleUpdate:
    @pytest.mark.asyncio
    async def test_imports_document_and_replies_with_link(
        self, ctx: AppContext, primary, secondary, replier
    ) -> None:
        file_id = secondary.add_blob(b"%PDF", "application/pdf")

        await handle_update(
            ctx,
            replier,
            {
                "update_id": 1,
                "message": {
                    "message_id": 31,
                    "chat": {"id": 555},
                    "document": {
                        "file_id": file_id,
                        "file_name": "report final.pdf",
                        "mime_type": "application/pdf",
                        "file_size": 4,
                    },
                },
            },
        )

        assert primary.uploads == ["/inbox/report_final.pdf"]
        row = await ctx.mappings.get_by_path("/inbox/report_final.pdf")
        assert row is not None
        assert row.secondary_ref == 31

        assert len(replier.messages) == 1
        reply = replier.messages[0]
        assert reply["chat_id"] == 555
        assert reply["reply_to_message_id"] == 31
        text = str(reply["text"])
        assert "http://cloudreve.test/s/inbox/report_final.pdf" in text
        assert "api.telegram.org" not in text

    @pytest.mark.asyncio
    async def test_channel_post_is_handled(
        self, ctx: AppContext, primary, secondary, replier
    ) -> None:
        file_id = secondary.add_blob(b"jpeg", "image/jpeg")

        await handle_update(
            ctx,
            replier,
            {
                "channel_post": {
                    "message_id": 4,
                    "chat": {"id": -100},
                    "photo": [{"file_id": file_id, "file_size": 4}],
                }
            },
        )

        assert primary.uploads == ["/inbox/photo_4.jpg"]

    @pytest.mark.asyncio
    async def test_text_update_is_ignored(self, ctx: AppContext, primary, replier) -> None:
        await handle_update(ctx, replier, {"message": {"message_id": 1, "text": "hello"}})
        await handle_update(ctx, replier, {"edited_message": {"message_id": 2}})
        assert primary.uploads == []
        assert replier.messages == []

    @pytest.mark.asyncio
    async def test_import_failure_is_reported_to_chat(
        self, ctx: AppContext, primary, secondary, replier
    ) -> None:
        await handle_update(
            ctx,
            replier,
            {
                "message": {
                    "message_id": 8,
                    "chat": {"id": 555},
                    "document": {"file_id": "sec-unknown", "file_name": "a.bin"},
                }
            },
        )

        assert primary.uploads == []
        assert len(replier.messages) == 1
        assert str(replier.messages[0]["text"]).startswith("❌ Import failed:")

    @pytest.mark.asyncio
    async def test_reply_failure_is_not_raised(self, ctx: AppContext, secondary, replier) -> None:
        replier.fail = True
        file_id = secondary.add_blob(b"x")
        await handle_update(
            ctx,
            replier,
            {
                "message": {
                    "message_id": 3,
                    "chat": {"id": 1},
                    "document": {"file_id": file_id, "file_name": "x.bin"},
                }
            },
        )
        assert await ctx.mappings.get_by_path("/inbox/x.bin") is not None
