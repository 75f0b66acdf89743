"""
Pydantic schemas for conversation records, summaries and views.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, computed_field, field_validator

from chatsync.schemas.message import NO_MESSAGES_PREVIEW, Message, StoreModel, parse_timestamp, to_camel
from chatsync.schemas.user import PresenceRecord


# ============================================================================
# Record Schemas
# ============================================================================

class Conversation(StoreModel):
    """Shared conversation record: message sequence plus live typing map."""

    messages: List[Message] = Field(default_factory=list)
    typing: Dict[str, Any] = Field(default_factory=dict, description="participant id -> last typing timestamp")
    created_at: Optional[datetime] = None

    @field_validator("messages", mode="before")
    @classmethod
    def coerce_messages(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("typing", mode="before")
    @classmethod
    def coerce_typing(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("created_at", mode="before")
    @classmethod
    def coerce_created_at(cls, v: Any) -> Any:
        return parse_timestamp(v)

    def visible_to(self, participant_id: str) -> List["VisibleMessage"]:
        """Messages not deleted for the participant, keyed by sequence position."""
        return [
            VisibleMessage(index=index, message=message)
            for index, message in enumerate(self.messages)
            if message.is_visible_to(participant_id)
        ]


class ConversationSummary(StoreModel):
    """One participant's denormalized preview of a conversation."""

    conversation_id: str = Field(
        validation_alias=AliasChoices("conversationId", "conversation_id", "chatId"),
        serialization_alias="conversationId",
    )
    receiver_id: Optional[str] = None
    last_message_preview: str = Field(
        default=NO_MESSAGES_PREVIEW,
        validation_alias=AliasChoices("lastMessagePreview", "last_message_preview", "lastMessage"),
        serialization_alias="lastMessagePreview",
    )
    is_seen_by_owner: bool = Field(
        default=True,
        validation_alias=AliasChoices("isSeenByOwner", "is_seen_by_owner", "isSeen"),
        serialization_alias="isSeenByOwner",
    )
    updated_at: Optional[datetime] = None

    @field_validator("updated_at", mode="before")
    @classmethod
    def coerce_updated_at(cls, v: Any) -> Any:
        return parse_timestamp(v)


class SummaryProjection(BaseModel):
    """Derived tail of a conversation as seen by one participant."""

    preview: str
    updated_at: datetime
    message: Optional[Message] = None

    @property
    def is_empty(self) -> bool:
        return self.message is None


# ============================================================================
# View Schemas
# ============================================================================

class VisibleMessage(BaseModel):
    """A message visible to the viewer with its original sequence position."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    index: int
    message: Message


class ConversationView(BaseModel):
    """Immutable snapshot of a conversation as one participant sees it."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    conversation_id: str
    viewer_id: str
    partner_id: str
    exists: bool = True
    messages: List[VisibleMessage] = Field(default_factory=list)
    partner_typing: bool = False
    partner_presence: PresenceRecord = Field(default_factory=PresenceRecord)
    is_viewer_blocked: bool = Field(False, description="The partner has blocked the viewer")
    is_partner_blocked: bool = Field(False, description="The viewer has blocked the partner")
    suppress_autoscroll: bool = False

    @computed_field
    @property
    def is_blocked(self) -> bool:
        return self.is_viewer_blocked or self.is_partner_blocked

    def to_payload(self) -> Dict[str, Any]:
        """JSON payload pushed to presentation clients."""
        return self.model_dump(mode="json", by_alias=True)


# ============================================================================
# Request / Response Schemas
# ============================================================================

class ConversationCreate(BaseModel):
    """Schema for starting a conversation with another participant."""

    partner_id: str = Field(..., min_length=1, description="Participant to talk to")

    model_config = ConfigDict(json_schema_extra={
        "example": {"partner_id": "user_456"}
    })


class ConversationCreateResponse(BaseModel):
    """Response for a created conversation."""

    conversation_id: str
    participant_ids: List[str]


class TypingUpdate(BaseModel):
    """Schema for publishing or clearing the viewer's typing state."""

    is_typing: bool


class MarkSeenResponse(BaseModel):
    """Response for a batched mark-seen."""

    success: bool = True
    updated_count: int
