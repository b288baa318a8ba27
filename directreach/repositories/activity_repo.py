"""
Activity log repository.
"""
import uuid
from typing import Optional, List

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from directreach.models.activity import ActivityLog
from directreach.repositories.base import BaseRepository


class ActivityLogRepository(BaseRepository[ActivityLog]):
    """Repository for ActivityLog operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(ActivityLog, session)

    async def log(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[uuid.UUID] = None,
        client_id: Optional[uuid.UUID] = None,
        description: Optional[str] = None,
        meta_data: Optional[dict] = None,
        commit: bool = True
    ) -> ActivityLog:
        """Create an activity log entry."""
        activity = ActivityLog(
            client_id=client_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            meta_data=meta_data or {},
        )
        self.session.add(activity)
        if commit:
            await self.commit()
            await self.session.refresh(activity)
        return activity

    async def get_by_entity(self, entity_type: str, entity_id: uuid.UUID, limit: int = 50) -> List[ActivityLog]:
        """Get activity for a specific entity."""
        query = select(ActivityLog).where(
            ActivityLog.entity_type == entity_type,
            ActivityLog.entity_id == entity_id
        ).order_by(ActivityLog.created_at.desc()).limit(limit)
        result = await self.session.exec(query)
        return result.all()

    async def get_for_client(self, client_id: uuid.UUID, limit: int = 50) -> List[ActivityLog]:
        """Get recent activity for a client."""
        query = select(ActivityLog).where(
            ActivityLog.client_id == client_id
        ).order_by(ActivityLog.created_at.desc()).limit(limit)
        result = await self.session.exec(query)
        return result.all()
