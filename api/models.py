from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from analyzer.report import AnalysisReport


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Requests
# Fields are optional so a missing value is answered with our own 400 body
class AnalyzeRequest(ApiModel):
    url: Optional[str] = None
    force_rescan: bool = False
    component: Optional[str] = "all"


class ScreenshotRequest(ApiModel):
    url: Optional[str] = None


class EmailRequest(ApiModel):
    email: Optional[str] = None
    analysis_id: Optional[str] = None


# Responses
class AnalyzeResponse(ApiModel):
    success: bool = True
    analysis: AnalysisReport
    from_cache: bool
    analysis_id: str


class ScreenshotInfo(ApiModel):
    url: str


class ScreenshotResponse(ApiModel):
    screenshot: ScreenshotInfo


class EmailResponse(ApiModel):
    success: bool = True


class ErrorResponse(BaseModel):
    error: str
