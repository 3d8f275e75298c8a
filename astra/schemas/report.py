from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import List, Literal, Optional


class ReportCreate(BaseModel):
    title: str
    prompt: str
    schedule_type: Literal["manual", "scheduled"] = "scheduled"
    schedule_frequency: Literal["daily", "weekly", "monthly"] = "daily"
    schedule_time: str = "07:00"
    schedule_day: Optional[str] = None  # weekday name (weekly) or 1-28 (monthly)
    report_template_id: Optional[str] = None
    visualization_mode: Optional[str] = None
    is_active: bool = True


class ReportUpdate(BaseModel):
    title: Optional[str] = None
    prompt: Optional[str] = None
    schedule_type: Optional[Literal["manual", "scheduled"]] = None
    schedule_frequency: Optional[Literal["daily", "weekly", "monthly"]] = None
    schedule_time: Optional[str] = None
    schedule_day: Optional[str] = None
    report_template_id: Optional[str] = None
    visualization_mode: Optional[str] = None
    is_active: Optional[bool] = None


class ReportToggle(BaseModel):
    is_active: bool


class ReportTemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    prompt_template: str
    default_schedule: str
    default_time: str
    default_day: Optional[str] = None
    category: Optional[str] = None


class ReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    prompt: str
    schedule_type: str
    schedule_frequency: str
    schedule_time: str
    schedule_day: Optional[str] = None
    report_template_id: Optional[str] = None
    visualization_mode: str
    is_active: bool
    is_running: bool = False
    last_run_at: Optional[datetime] = None
    next_run_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    template: Optional[ReportTemplateResponse] = None


class ReportMessageResponse(BaseModel):
    id: str
    text: str
    message_type: str
    metadata: dict
    visualization: bool
    visualization_data: Optional[str] = None
    has_stored_visualization: bool
    created_at: datetime


class ReportRunResponse(BaseModel):
    report_id: str
    status: Literal["completed", "already_running"]
    message: Optional[str] = None


class ReportCheckResponse(BaseModel):
    executed: List[str]


class ReportStateResponse(BaseModel):
    running: List[str]
    error: Optional[str] = None
    is_loading: bool


class GenerateReportRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    report_id: str = Field(alias="reportId")
    prompt: str
    visualization_mode: Optional[str] = Field(default=None, alias="visualizationMode")


class GenerateReportResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
