"""
Email generation and tracking schemas.
"""
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, computed_field

from directreach.config import settings
from directreach.engine.thresholds import Room


def tracking_url(kind: str, token: str) -> str:
    """Public URL of the open pixel or click redirect for a token."""
    return f"{settings.BACKEND_URL.rstrip('/')}{settings.API_PREFIX}/emails/track-{kind}/{token}"


class GenerateEmailRequest(BaseModel):
    prospect_id: uuid.UUID
    room: Room
    email_number: int = Field(default=1, ge=1)


class CopyEmailRequest(BaseModel):
    prospect_id: uuid.UUID
    url: Optional[str] = None


class EmailTrackingRead(BaseModel):
    id: uuid.UUID
    prospect_id: uuid.UUID
    email_number: int
    room_type: str
    subject: str
    body_html: str
    body_text: str
    generated_by_ai: bool
    template_used: Optional[uuid.UUID] = None
    prompt_tokens: int
    completion_tokens: int
    cost: float
    url_included: Optional[str] = None
    tracking_token: str
    status: str
    copied_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    opened_at: Optional[datetime] = None
    clicked_at: Optional[datetime] = None
    created_at: datetime

    @computed_field
    @property
    def open_pixel_url(self) -> str:
        return tracking_url("open", self.tracking_token)

    @computed_field
    @property
    def click_url(self) -> str:
        return tracking_url("click", self.tracking_token)

    class Config:
        from_attributes = True


class EmailStats(BaseModel):
    total_emails: int = 0
    ai_generated: int = 0
    fallback_generated: int = 0
    copied: int = 0
    opened: int = 0
    clicked: int = 0
    total_prompt_tokens: int = 0
    total_completion_tokens: int = 0
    total_cost: float = 0.0
    open_rate: float = 0.0
