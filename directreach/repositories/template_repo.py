"""
Email template repository.
"""
import uuid
from typing import List

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from directreach.engine.thresholds import Room, parse_room
from directreach.models.template import EmailTemplate
from directreach.repositories.base import BaseRepository
from directreach.repositories.interfaces import TemplateStore


class EmailTemplateRepository(BaseRepository[EmailTemplate], TemplateStore):
    """Repository for EmailTemplate operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(EmailTemplate, session)

    async def list_by_campaign(self, campaign_id: uuid.UUID, room: Room) -> List[EmailTemplate]:
        """Campaign-scoped templates for a room, in slot order."""
        query = select(EmailTemplate).where(
            EmailTemplate.campaign_id == campaign_id,
            EmailTemplate.room_type == parse_room(room).value,
            EmailTemplate.is_global == False
        ).order_by(EmailTemplate.template_order, EmailTemplate.created_at)
        result = await self.session.exec(query)
        return result.all()

    async def list_global(self, room: Room) -> List[EmailTemplate]:
        """Global templates for a room, in slot order."""
        query = select(EmailTemplate).where(
            EmailTemplate.is_global == True,
            EmailTemplate.room_type == parse_room(room).value
        ).order_by(EmailTemplate.template_order, EmailTemplate.created_at)
        result = await self.session.exec(query)
        return result.all()
