from pydantic import BaseModel
from typing import Literal, Optional


class SwipeRequest(BaseModel):
    direction: Literal["left", "right"]


class DragRequest(BaseModel):
    phase: Literal["start", "move", "end"]
    x: float = 0.0
    y: float = 0.0


class SessionStartRequest(BaseModel):
    # Omitted lists fall back to the caller's saved profile.
    skills_offered: Optional[list[str]] = None
    skills_wanted: Optional[list[str]] = None


class SessionResponse(BaseModel):
    session: dict
    notifications: list[dict] = []
