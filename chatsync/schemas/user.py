"""
Pydantic schemas for participant and presence records.
"""
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chatsync.schemas.message import parse_timestamp, to_camel


class PresenceRecord(BaseModel):
    """Online state asserted by a participant's own presence publisher."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    is_online: bool = False
    last_seen: Optional[datetime] = None

    @field_validator("is_online", mode="before")
    @classmethod
    def coerce_online(cls, v: Any) -> Any:
        return bool(v)

    @field_validator("last_seen", mode="before")
    @classmethod
    def coerce_last_seen(cls, v: Any) -> Any:
        return parse_timestamp(v)


class ParticipantRecord(BaseModel):
    """A participant's own record: profile, presence and block list."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    username: Optional[str] = None
    is_online: bool = False
    last_seen: Optional[datetime] = None
    blocked: List[str] = Field(default_factory=list)

    @field_validator("is_online", mode="before")
    @classmethod
    def coerce_online(cls, v: Any) -> Any:
        return bool(v)

    @field_validator("last_seen", mode="before")
    @classmethod
    def coerce_last_seen(cls, v: Any) -> Any:
        return parse_timestamp(v)

    @field_validator("blocked", mode="before")
    @classmethod
    def coerce_blocked(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def presence(self) -> PresenceRecord:
        return PresenceRecord(is_online=self.is_online, last_seen=self.last_seen)


class PresenceResponse(BaseModel):
    """Schema for a participant's presence."""

    participant_id: str
    is_online: bool
    last_seen: Optional[datetime] = None


class BlockResponse(BaseModel):
    """Schema for the block toggle result."""

    participant_id: str
    blocked: bool
