"""
Template schemas.
"""
import uuid
from datetime import datetime
from typing import Optional, Dict, List

from pydantic import BaseModel


class TemplateRead(BaseModel):
    id: uuid.UUID
    campaign_id: Optional[uuid.UUID] = None
    is_global: bool
    room_type: str
    template_name: str
    prompt_template: Dict[str, str]
    template_order: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TemplateStats(BaseModel):
    campaign_count: int
    global_count: int
    visible_global_count: int
    shadowed_count: int
    has_custom_templates: bool


class TemplateListResponse(BaseModel):
    """Merged templates a campaign sees for one room."""
    campaign_id: uuid.UUID
    room: str
    templates: List[TemplateRead]
    stats: TemplateStats
