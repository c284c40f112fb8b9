from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from typing import Literal, Optional


class ReportCreate(BaseModel):
    reported_user_id: UUID
    description: str


class ReportResponse(BaseModel):
    id: UUID
    reporter_id: UUID
    reported_user_id: UUID
    description: str
    status: str
    action_taken: Optional[str] = None
    reviewed_by: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ReportListItem(ReportResponse):
    reporter_name: str
    reported_name: str
    reported_credibility_score: Optional[int] = None


class ReportStatusUpdate(BaseModel):
    status: Literal["pending", "reviewing", "resolved", "dismissed"]


class ModerationActionRequest(BaseModel):
    action: Literal["warn", "reduce_score", "ban"]
    note: Optional[str] = Field(None, max_length=1000)
