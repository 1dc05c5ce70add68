from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class InquiryCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None


class ProjectRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str | None
    inquiry_number: str
    status: str
    assigned_sales_rep_id: int | None
    assigned_at: datetime | None
    created_by_user_id: int | None
    created_at: datetime
    updated_at: datetime
