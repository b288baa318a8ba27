"""
Template API routes.
"""
import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from directreach.config import settings
from directreach.api.deps import get_generator
from directreach.core.exceptions import NotFoundError, AIUnavailableError
from directreach.database import get_session
from directreach.engine.thresholds import Room
from directreach.repositories.client_repo import CampaignRepository
from directreach.repositories.template_repo import EmailTemplateRepository
from directreach.schemas.template import TemplateListResponse, TemplateRead
from directreach.services.integrations.base import EmailGenerator
from directreach.services.template_service import TemplateResolver

router = APIRouter(prefix=settings.API_PREFIX, tags=["templates"])


@router.get("/campaigns/{campaign_id}/templates/{room}", response_model=TemplateListResponse)
async def resolve_templates(
    campaign_id: uuid.UUID,
    room: Room,
    session: AsyncSession = Depends(get_session)
):
    """Templates the campaign sees for a room: campaign slots win, at most five."""
    if not await CampaignRepository(session).get(campaign_id):
        raise NotFoundError("Campaign", str(campaign_id))

    resolver = TemplateResolver(EmailTemplateRepository(session))
    templates = await resolver.resolve(campaign_id, room)
    return TemplateListResponse(
        campaign_id=campaign_id,
        room=room.value,
        templates=[TemplateRead.model_validate(t) for t in templates],
        stats=await resolver.stats(campaign_id, room),
    )


@router.get("/templates/{template_id}/prompt")
async def preview_prompt(
    template_id: uuid.UUID,
    contact_name: Optional[str] = "Jane Doe",
    company_name: Optional[str] = "Example Co",
    session: AsyncSession = Depends(get_session),
    generator: Optional[EmailGenerator] = Depends(get_generator)
):
    """The prompt a template produces for a sample prospect."""
    template = await EmailTemplateRepository(session).get(template_id)
    if not template:
        raise NotFoundError("Template", str(template_id))
    if generator is None:
        raise AIUnavailableError()

    context = {
        "contact_name": contact_name,
        "company_name": company_name,
        "room": template.room_type,
        "email_number": 1,
        "content_links": [],
    }
    return {"template_id": template.id, "prompt": generator.build_prompt(template.prompt_template, context)}
