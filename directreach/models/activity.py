"""
Activity log model - audit trail for settings and email events.
"""
import uuid
from datetime import datetime
from typing import Optional, Dict, Any

from sqlmodel import SQLModel, Field
from sqlalchemy import Column

from directreach.models.types import JSONType


class ActivityLog(SQLModel, table=True):
    """
    Activity log for significant changes.
    Written in the same transaction as the change it describes.
    """
    __tablename__ = "activity_log"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    client_id: Optional[uuid.UUID] = Field(default=None, index=True)

    action: str = Field(index=True)
    entity_type: str = Field(index=True)  # client_settings, global_settings, email
    entity_id: Optional[uuid.UUID] = None

    description: Optional[str] = None
    meta_data: Dict[str, Any] = Field(default={}, sa_column=Column(JSONType))
    # Example: {"room": "problem", "version": 3}

    created_at: datetime = Field(default_factory=datetime.utcnow)


# Action constants for consistency
class Actions:
    # Settings actions
    SETTINGS_SAVED = "settings_saved"
    SETTINGS_RESET = "settings_reset"
    GLOBAL_SETTINGS_UPDATED = "global_settings_updated"

    # Email actions
    EMAIL_GENERATED = "email_generated"
    EMAIL_FALLBACK = "email_fallback"
    EMAIL_COPIED = "email_copied"
    EMAIL_OPENED = "email_opened"
    EMAIL_CLICKED = "email_clicked"

    # Scoring actions
    PROSPECT_SCORED = "prospect_scored"
