from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import ORJSONResponse

from app.api.deps import get_analysis_service
from app.core.logging import get_logger
from app.schemas.analysis import AnalysisRequest, AnalysisResponse
from app.schemas.common import ErrorResponse
from app.services.analysis import AnalysisService
from app.utils.request_body import read_json_body, require_url

logger = get_logger(__name__)

router = APIRouter()

SOURCES_HEADER = "X-Analysis-Sources"


@router.post(
    "/metadata-analysis",
    response_model=AnalysisResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def analyze_url(
    request: Request,
    response: Response,
    service: AnalysisService = Depends(get_analysis_service),
):
    payload = await read_json_body(request)
    url = require_url(payload)

    try:
        outcome = await service.analyze(AnalysisRequest(url=url))
    except Exception as exc:
        logger.exception("analysis_failed", url=url, error=str(exc))
        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(error=str(exc) or "Failed to analyze content").model_dump(),
        )

    response.headers[SOURCES_HEADER] = outcome.sources_header
    return outcome.response
