from fastapi import Depends

from app.core.config import Settings, get_settings
from app.services.analysis import AnalysisService


def get_analysis_service(settings: Settings = Depends(get_settings)) -> AnalysisService:
    return AnalysisService.from_settings(settings)
