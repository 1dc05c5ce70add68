from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SalesRepSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    full_name: str
    role: str


class SalesRepWorkloadRead(BaseModel):
    user_id: int
    user: SalesRepSummary
    active_project_count: int
    capacity: int
    utilization_percentage: int


class SalesRepMetricsRead(BaseModel):
    sales_rep_id: int
    total_projects: int
    converted_projects: int
    conversion_rate: int
    avg_response_time_hours: float
    period_days: int


class ManualAssignmentRequest(BaseModel):
    sales_rep_id: int = Field(gt=0)


class AssignmentResult(BaseModel):
    project_id: int
    assigned: bool
    sales_rep: SalesRepSummary | None = None
    assigned_at: datetime | None = None
