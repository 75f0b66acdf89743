"""
Pydantic schemas for messages, attachments and drafts.

Records in the shared store use camelCase keys; the models expose
snake_case attributes and serialize by alias.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from chatsync.utils.datetime_utils import from_epoch_ms, to_epoch_ms, utc_now

NO_MESSAGES_PREVIEW = "No messages yet"
ATTACHMENT_FALLBACK_PREVIEW = "File"


def to_camel(string: str) -> str:
    """Convert snake_case to camelCase."""
    components = string.split('_')
    return components[0] + ''.join(x.title() for x in components[1:])


class StoreModel(BaseModel):
    """Base for models persisted as camelCase JSON records."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the JSON shape written to the record store."""
        return self.model_dump(mode="json", by_alias=True)


def parse_timestamp(value: Any) -> Any:
    """Coerce any stored timestamp shape into a datetime for validation."""
    if value is None or isinstance(value, datetime):
        return value
    millis = to_epoch_ms(value)
    return from_epoch_ms(millis) if millis is not None else value


# ============================================================================
# Record Schemas
# ============================================================================

class Attachment(StoreModel):
    """Uploaded attachment reference stored on a message."""

    url: str
    name: str
    mime: str = Field(
        default="application/octet-stream",
        validation_alias=AliasChoices("mime", "type"),
        serialization_alias="mime",
    )
    size: int = 0
    path: Optional[str] = None

    @property
    def is_image(self) -> bool:
        return self.mime.startswith("image/")


class Message(StoreModel):
    """A single entry of a conversation's message sequence."""

    sender_id: str
    text: Optional[str] = None
    attachment: Optional[Attachment] = Field(
        default=None,
        validation_alias=AliasChoices("attachment", "file"),
        serialization_alias="attachment",
    )
    created_at: datetime = Field(default_factory=utc_now)
    seen_by: List[str] = Field(default_factory=list)
    deleted_for: List[str] = Field(default_factory=list)

    @field_validator("created_at", mode="before")
    @classmethod
    def coerce_created_at(cls, v: Any) -> Any:
        return parse_timestamp(v)

    @field_validator("seen_by", "deleted_for", mode="before")
    @classmethod
    def coerce_participant_list(cls, v: Any) -> Any:
        return [] if v is None else v

    def is_visible_to(self, participant_id: str) -> bool:
        """A message is hidden only from participants in deleted_for."""
        return participant_id not in self.deleted_for

    @property
    def preview(self) -> str:
        """Text used for the conversation summary."""
        if self.text:
            return self.text
        if self.attachment and self.attachment.name:
            return self.attachment.name
        return ATTACHMENT_FALLBACK_PREVIEW


# ============================================================================
# Local-only Schemas
# ============================================================================

class DraftAttachment(BaseModel):
    """A file picked in the composer, not yet uploaded."""

    name: str
    mime: str = "application/octet-stream"
    data: bytes
    preview: Optional[bytes] = Field(None, description="Local JPEG preview for images")

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def is_image(self) -> bool:
        return self.mime.startswith("image/")


class Draft(BaseModel):
    """Composer contents handed back to the caller when a send fails."""

    text: Optional[str] = None
    attachment: Optional[DraftAttachment] = None


class MenuPlacement(BaseModel):
    """Where a message's context menu opens."""

    placement: Literal["above", "below"] = "above"
    align: Literal["left", "right"] = "right"


class DeleteResult(BaseModel):
    """Outcome of a delete operation."""

    conversation_id: str
    message_index: int
    for_everyone: bool
    changed: bool = Field(description="Whether the conversation record was written")
    blob_deleted: Optional[bool] = Field(None, description="Blob cleanup outcome, None when nothing to clean")
    suppress_autoscroll: bool = True


# ============================================================================
# Request / Response Schemas
# ============================================================================

class MenuPlacementRequest(BaseModel):
    """Measured distances between a message and its scroll container."""

    space_above: Optional[float] = None
    space_below: Optional[float] = None
    space_left: Optional[float] = None
    space_right: Optional[float] = None
    is_own_message: bool = False

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "space_above": 120,
            "space_below": 480,
            "space_left": 40,
            "space_right": 180,
            "is_own_message": True
        }
    })


class DraftResponse(BaseModel):
    """Serializable form of a restored draft."""

    text: Optional[str] = None
    attachment_name: Optional[str] = None
    attachment_mime: Optional[str] = None
    has_preview: bool = False

    @classmethod
    def from_draft(cls, draft: Optional[Draft]) -> "DraftResponse":
        if draft is None:
            return cls()
        attachment = draft.attachment
        return cls(
            text=draft.text,
            attachment_name=attachment.name if attachment else None,
            attachment_mime=attachment.mime if attachment else None,
            has_preview=bool(attachment and attachment.preview),
        )
