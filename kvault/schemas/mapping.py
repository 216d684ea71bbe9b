"""Mapping and admin request/response schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class MappingResponse(BaseModel):
    """One file mapping as exposed to administrators."""

    path: str
    primary_id: str | None = None
    secondary_id: str
    secondary_ref: int | None = None
    file_name: str | None = None
    file_size: int = 0
    mime_type: str | None = None
    last_accessed: int = 0
    created_at: int
    cached: bool


class MappingListResponse(BaseModel):
    """A page of mappings."""

    ok: bool = True
    total: int
    mappings: list[MappingResponse]


class SyncRequest(BaseModel):
    """Request to sync one Cloudreve directory (the inbox when omitted)."""

    path: str | None = Field(default=None, max_length=4096)


class SyncResponse(BaseModel):
    ok: bool = True
    synced: int
    errors: int


class EvictionResponse(BaseModel):
    ok: bool = True
    evicted: int
    errors: int


class CloudreveWebhookRequest(BaseModel):
    """Upload-complete callback sent by Cloudreve."""

    path: str | None = Field(default=None, max_length=4096)


class WebhookAck(BaseModel):
    ok: bool = True
    message: str | None = None
