"""
Email tracking model - one row per generated email.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field


class EmailTracking(SQLModel, table=True):
    """
    A generated email and its engagement lifecycle.
    Content is immutable after creation; only status and timestamps change.
    """
    __tablename__ = "email_tracking"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    prospect_id: uuid.UUID = Field(foreign_key="prospect.id", index=True)
    email_number: int = Field(default=1)
    room_type: str = Field(index=True)

    # Content
    subject: str
    body_html: str
    body_text: str

    # Generation
    generated_by_ai: bool = Field(default=False)
    template_used: Optional[uuid.UUID] = Field(default=None, foreign_key="email_template.id")
    prompt_tokens: int = Field(default=0)
    completion_tokens: int = Field(default=0)
    cost: float = Field(default=0.0)
    url_included: Optional[str] = None

    # Tracking
    tracking_token: str = Field(unique=True, index=True)
    status: str = Field(default="pending", index=True)  # pending, copied, opened, clicked
    copied_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    opened_at: Optional[datetime] = None
    clicked_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
