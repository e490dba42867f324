"""Consulting Session Schemas - listing views for end users"""
from datetime import date as date_type
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class SessionRange(str, Enum):
    """Listing partition"""
    upcoming = "upcoming"
    past = "past"


class SessionView(BaseModel):
    """Consulting session as seen by one caller"""
    id: int
    title: str
    description: str = ""

    # Schedule in the configured locale
    date: date_type
    time: str  # HH:MM
    duration: int

    # Seats
    participants: int
    max_participants: int

    # Effective status: finished sessions read as "completed"
    status: str
    instructor: str
    platform: str

    # Only exposed to enrolled callers
    meeting_link: Optional[str] = None

    is_enrolled: bool = False
    is_live: bool = False
    is_joinable: bool = False
    is_finished: bool = False

    model_config = ConfigDict(from_attributes=True)


class SessionListResponse(BaseModel):
    success: bool = True
    sessions: List[SessionView]
