"""Pydantic v2 schemas for order issues."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from orderflow.models.enums import IssuePriority


class IssueCreate(BaseModel):
    order_item_id: uuid.UUID | None = None
    issue_code: str = Field(..., min_length=1, max_length=50)
    issue_text: str = Field(..., min_length=1, max_length=2000)
    photo_url: str | None = Field(None, max_length=500)
    priority: IssuePriority = IssuePriority.NORMAL


class IssueResolve(BaseModel):
    notes: str | None = Field(None, max_length=2000)


class IssueResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_id: uuid.UUID
    order_item_id: uuid.UUID | None
    issue_code: str
    issue_text: str
    photo_url: str | None
    priority: IssuePriority
    created_by: uuid.UUID
    created_at: datetime
    solved_at: datetime | None
    solved_by: uuid.UUID | None
    solved_notes: str | None
