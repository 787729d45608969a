from pydantic import BaseModel
from typing import Optional

from .common import ApiStatus


class PipelineResult(BaseModel):
    """Result of a single pipeline execution"""

    status: ApiStatus
    message: str
    started_at: str
    completed_at: Optional[str] = None
    duration_seconds: Optional[float] = None
    records_processed: Optional[int] = None
    records_failed: int = 0
    period_key: Optional[str] = None
    error: Optional[str] = None

    class Config:
        use_enum_values = True


class PipelineResponse(BaseModel):
    """Response for a single pipeline trigger"""

    status: ApiStatus
    message: str
    data: Optional[PipelineResult] = None

    class Config:
        use_enum_values = True


class PipelineInfo(BaseModel):
    name: str
    display_name: str
    description: str
    target_table: str
    scope: str


class PipelineListResponse(BaseModel):
    status: ApiStatus
    message: str
    data: list[PipelineInfo] = []

    class Config:
        use_enum_values = True
