"""
Campaign, prospect and content link repositories.
"""
import uuid
from datetime import datetime
from typing import List

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from directreach.engine.thresholds import Room, parse_room
from directreach.models.client import Campaign, Prospect, ContentLink
from directreach.repositories.base import BaseRepository


class CampaignRepository(BaseRepository[Campaign]):
    def __init__(self, session: AsyncSession):
        super().__init__(Campaign, session)


class ProspectRepository(BaseRepository[Prospect]):
    """Repository for Prospect operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(Prospect, session)

    async def record_email_copied(self, prospect: Prospect, url: str = None, commit: bool = True) -> Prospect:
        """
        Advance the email sequence by one and remember the sent URL.
        urls_sent keeps first-sent order and never holds duplicates.
        """
        urls = list(prospect.urls_sent or [])
        if url and url not in urls:
            urls.append(url)
        # Reassign so the JSON column is flagged dirty
        prospect.urls_sent = urls
        prospect.email_sequence_position = (prospect.email_sequence_position or 0) + 1
        prospect.last_email_sent = datetime.utcnow()
        prospect.updated_at = datetime.utcnow()
        self.session.add(prospect)
        if commit:
            await self.commit()
            await self.session.refresh(prospect)
        return prospect

    async def update_score(self, prospect: Prospect, lead_score: int, current_room: str = None) -> Prospect:
        prospect.lead_score = lead_score
        prospect.current_room = current_room
        prospect.updated_at = datetime.utcnow()
        self.session.add(prospect)
        await self.commit()
        await self.session.refresh(prospect)
        return prospect


class ContentLinkRepository(BaseRepository[ContentLink]):
    """Repository for ContentLink operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(ContentLink, session)

    async def list_active(self, campaign_id: uuid.UUID, room: Room) -> List[ContentLink]:
        """Active links for a campaign room, in display order."""
        query = select(ContentLink).where(
            ContentLink.campaign_id == campaign_id,
            ContentLink.room_type == parse_room(room).value,
            ContentLink.is_active == True
        ).order_by(ContentLink.link_order, ContentLink.created_at)
        result = await self.session.exec(query)
        return result.all()
