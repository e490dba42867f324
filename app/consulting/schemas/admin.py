"""Admin Schemas - session definitions written by administration"""
from datetime import date as date_type, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.config import MAX_SESSION_DURATION_MINUTES, MIN_SESSION_DURATION_MINUTES

TIME_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"


def normalize_meeting_link(value: Optional[str]) -> Optional[str]:
    """Empty string clears the link; anything else must be an http(s) URL"""
    if value is None:
        return None
    if value == "":
        return ""
    if not value.startswith(("http://", "https://")):
        raise ValueError("meeting_link must be an http(s) URL")
    return value


class SessionBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field("", max_length=5000)
    date: date_type
    time: str = Field(..., pattern=TIME_PATTERN, description="Local start time HH:MM")
    duration: int = Field(
        60, ge=MIN_SESSION_DURATION_MINUTES, le=MAX_SESSION_DURATION_MINUTES
    )
    max_participants: int = Field(20, ge=1)
    instructor: str = Field(..., min_length=1, max_length=255)
    platform: Literal["zoom", "meet", "teams", "other"] = "zoom"
    meeting_link: Optional[str] = Field(None, max_length=500)

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator("meeting_link")
    @classmethod
    def validate_meeting_link(cls, value: Optional[str]) -> Optional[str]:
        return normalize_meeting_link(value)


class SessionCreate(SessionBase):
    # full/completed/cancelled are never set at creation
    status: Literal["scheduled", "available"] = "available"


class SessionUpdate(BaseModel):
    """Partial update; status changes go through the cancel endpoint"""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    date: Optional[date_type] = None
    time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    duration: Optional[int] = Field(
        None, ge=MIN_SESSION_DURATION_MINUTES, le=MAX_SESSION_DURATION_MINUTES
    )
    max_participants: Optional[int] = Field(None, ge=1)
    instructor: Optional[str] = Field(None, min_length=1, max_length=255)
    platform: Optional[Literal["zoom", "meet", "teams", "other"]] = None
    meeting_link: Optional[str] = Field(None, max_length=500)

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator("meeting_link")
    @classmethod
    def validate_meeting_link(cls, value: Optional[str]) -> Optional[str]:
        return normalize_meeting_link(value)


class AdminSessionRead(BaseModel):
    id: int
    title: str
    description: str
    date: date_type
    time: str
    scheduled_at: datetime
    duration: int
    max_participants: int
    current_participants: int
    status: str
    effective_status: str
    instructor: str
    platform: str
    meeting_link: Optional[str] = None
    participants: List[str] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AdminSessionListResponse(BaseModel):
    success: bool = True
    sessions: List[AdminSessionRead]


class SweepResponse(BaseModel):
    success: bool = True
    completed: int
