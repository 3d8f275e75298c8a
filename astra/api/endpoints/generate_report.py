"""Report generation function: runs a report's prompt through Gemini directly."""

import logging

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ...config import settings
from ...core.exceptions import AstraException
from ...schemas.report import GenerateReportRequest, GenerateReportResponse
from ...services.gemini_service import GeminiService
from ...services.report_service import ReportService
from ..deps import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions/v1", tags=["functions"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Client-Info, Apikey",
}


def _error_response(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=GenerateReportResponse(success=False, error=message).model_dump(exclude_none=True),
        headers=CORS_HEADERS,
    )


@router.options("/generate-report")
def generate_report_preflight():
    """CORS preflight."""
    return Response(status_code=status.HTTP_200_OK, headers=CORS_HEADERS)


@router.post("/generate-report", response_model=GenerateReportResponse)
def generate_report(request: GenerateReportRequest, db: Session = Depends(get_db)):
    """
    Generate a report with Gemini and save it as a report message.

    Every failure is answered with HTTP 500 and {"success": false, "error": ...}.
    """
    logger.info(f"Generating report for user: {request.user_id} reportId: {request.report_id}")
    try:
        gemini = GeminiService(api_key=settings.gemini_api_key, model_name=settings.gemini_default_model)
        result = ReportService(db=db, gemini_service=gemini).generate_report(
            user_id=request.user_id,
            report_id=request.report_id,
            prompt=request.prompt,
            visualization_mode=request.visualization_mode,
        )
    except AstraException as e:
        logger.error(f"Error generating report {request.report_id}: {e.message}")
        return _error_response(e.message)
    except Exception as e:
        logger.error(f"Error generating report {request.report_id}: {e}", exc_info=True)
        return _error_response(str(e) or "An unexpected error occurred")

    return JSONResponse(content=result, headers=CORS_HEADERS)
