"""Request bodies accepted by the HTTP endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Base64Bytes, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class EntityLogsRequest(_Body):
    entity_type: str = Field(min_length=1)
    entity_id: str = Field(min_length=1)
    limit: int = Field(default=50, ge=1)


class UserLogsRequest(_Body):
    actor_id: str = Field(min_length=1)
    limit: int = Field(default=50, ge=1)


class SearchLogsRequest(_Body):
    entity_type: str | None = None
    action: str | None = None
    actor_id: str | None = None
    timestamp_from: datetime | None = None
    timestamp_to: datetime | None = None
    limit: int = Field(default=100, ge=1)
    start_after: str | None = None


class CreateLogRequest(_Body):
    entity_type: str
    entity_id: str
    action: str
    before_state: Any = None
    after_state: Any = None
    metadata: dict[str, Any] | None = None
    details: str | None = None


class PurgeRequest(_Body):
    days_to_keep: int | None = Field(default=None, ge=0)


class UserWriteRequest(_Body):
    uid: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class SelfUpdateRequest(_Body):
    data: dict[str, Any]


class FirstUserRequest(_Body):
    data: dict[str, Any] = Field(default_factory=dict)


class UserDeleteRequest(_Body):
    uid: str = Field(min_length=1)


class RecordCreateRequest(_Body):
    data: dict[str, Any]
    id: str | None = None


class RecordUpdateRequest(_Body):
    id: str = Field(min_length=1)
    data: dict[str, Any]


class RecordDeleteRequest(_Body):
    id: str = Field(min_length=1)


class AttachmentUploadRequest(_Body):
    entity_collection: str = Field(min_length=1)
    entity_id: str = Field(min_length=1)
    file_name: str = Field(min_length=1)
    content_type: str = "application/octet-stream"
    content: Base64Bytes


class AttachmentUpdateRequest(_Body):
    id: str = Field(min_length=1)
    data: dict[str, Any]


class AttachmentDeleteRequest(_Body):
    id: str = Field(min_length=1)
    storage_path: str | None = None
