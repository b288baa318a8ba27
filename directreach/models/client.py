"""
Client, campaign and prospect models.
The scoring engine reads prospect attributes; tracking appends to urls_sent.
"""
import uuid
from datetime import datetime
from typing import Optional, List

from sqlmodel import SQLModel, Field
from sqlalchemy import Column

from directreach.models.types import JSONType


class Client(SQLModel, table=True):
    """A customer account. Owns its settings override."""
    __tablename__ = "client"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(index=True)
    is_active: bool = Field(default=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Campaign(SQLModel, table=True):
    __tablename__ = "campaign"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    client_id: uuid.UUID = Field(foreign_key="client.id", index=True)
    campaign_name: str
    utm_campaign: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Prospect(SQLModel, table=True):
    """
    A website visitor identified as a prospect in a campaign.
    Holds the scoring signals and the email sequence state.
    """
    __tablename__ = "prospect"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    campaign_id: uuid.UUID = Field(foreign_key="campaign.id", index=True)

    # Contact
    contact_name: Optional[str] = None
    company_name: Optional[str] = None
    job_title: Optional[str] = None
    email: Optional[str] = None

    # Firmographics
    estimated_revenue: Optional[str] = None
    employee_count: Optional[str] = None
    industry: Optional[str] = None
    state: Optional[str] = None

    # Engagement
    page_views: int = Field(default=0)
    recent_page_urls: List[str] = Field(default=[], sa_column=Column(JSONType))
    referrer: Optional[str] = None
    email_opens: int = Field(default=0)
    email_clicks: int = Field(default=0)

    # Room placement
    current_room: Optional[str] = Field(default=None, index=True)  # problem, solution, offer
    lead_score: int = Field(default=0)

    # Email sequence
    email_sequence_position: int = Field(default=0)
    urls_sent: List[str] = Field(default=[], sa_column=Column(JSONType))
    last_email_sent: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ContentLink(SQLModel, table=True):
    """A resource URL a generated email may link to."""
    __tablename__ = "content_link"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    campaign_id: uuid.UUID = Field(foreign_key="campaign.id", index=True)
    room_type: str = Field(index=True)
    link_title: str
    link_url: str
    url_summary: Optional[str] = None
    link_order: int = Field(default=0)
    is_active: bool = Field(default=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
