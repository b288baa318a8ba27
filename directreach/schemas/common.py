"""
Common schemas used across multiple endpoints.
"""
import uuid
from datetime import datetime
from typing import Optional, Dict, Any

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Error response."""
    detail: str

    class Config:
        json_schema_extra = {"example": {"detail": "Validation failed for field 'thresholds': problem_max must be less than solution_max"}}


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    version: str = "1.0.0"


class ActivityLogRead(BaseModel):
    """Audit trail entry."""
    id: uuid.UUID
    client_id: Optional[uuid.UUID] = None
    action: str
    entity_type: str
    entity_id: Optional[uuid.UUID] = None
    description: Optional[str] = None
    meta_data: Dict[str, Any] = {}
    created_at: datetime

    class Config:
        from_attributes = True
