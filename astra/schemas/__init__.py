from .report import (
    ReportCreate,
    ReportUpdate,
    ReportToggle,
    ReportResponse,
    ReportTemplateResponse,
    ReportMessageResponse,
    ReportRunResponse,
    ReportCheckResponse,
    ReportStateResponse,
    GenerateReportRequest,
    GenerateReportResponse,
)

__all__ = [
    "ReportCreate",
    "ReportUpdate",
    "ReportToggle",
    "ReportResponse",
    "ReportTemplateResponse",
    "ReportMessageResponse",
    "ReportRunResponse",
    "ReportCheckResponse",
    "ReportStateResponse",
    "GenerateReportRequest",
    "GenerateReportResponse",
]
