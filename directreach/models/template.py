"""
Email prompt templates, global or campaign scoped.
"""
import uuid
from datetime import datetime
from typing import Optional, Dict

from sqlmodel import SQLModel, Field
from sqlalchemy import Column

from directreach.models.types import JSONType


class EmailTemplate(SQLModel, table=True):
    """
    Prompt template for AI email generation.
    Global templates have no campaign; campaign templates claim their order slot.
    """
    __tablename__ = "email_template"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    campaign_id: Optional[uuid.UUID] = Field(default=None, foreign_key="campaign.id", index=True)
    is_global: bool = Field(default=False, index=True)

    room_type: str = Field(index=True)  # problem, solution, offer
    template_name: str
    # persona, style_rules, output_spec, personalization_guidelines,
    # constraints, examples, context_instructions
    prompt_template: Dict[str, str] = Field(default={}, sa_column=Column(JSONType))
    template_order: int = Field(default=0, ge=0, le=4)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
