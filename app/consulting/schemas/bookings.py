"""Booking Schemas - enroll/cancel requests and responses"""
from datetime import date as date_type
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SessionActionRequest(BaseModel):
    """Body of enroll and cancel requests"""
    session_id: int = Field(..., gt=0)

    model_config = ConfigDict(
        json_schema_extra={"example": {"session_id": 1}}
    )


class BookedSessionInfo(BaseModel):
    id: int
    title: str
    date: date_type
    time: str
    participants: int
    max_participants: int
    status: str


class EnrollResponse(BaseModel):
    success: bool = True
    message: str
    already_enrolled: bool = False
    session: Optional[BookedSessionInfo] = None


class CancelResponse(BaseModel):
    success: bool = True
    message: str
    session: Optional[BookedSessionInfo] = None
