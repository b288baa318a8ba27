"""
Email tracking repository.
"""
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy import func, case, delete

from directreach.models.tracking import EmailTracking
from directreach.repositories.base import BaseRepository


class EmailTrackingRepository(BaseRepository[EmailTracking]):
    """Repository for EmailTracking operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(EmailTracking, session)

    async def get_by_token(self, token: str) -> Optional[EmailTracking]:
        return await self.get_by_field("tracking_token", token)

    async def delete_older_than(self, days: int, commit: bool = True) -> int:
        """Delete tracking rows created more than `days` days ago. Returns the row count."""
        cutoff = datetime.utcnow() - timedelta(days=days)
        statement = delete(EmailTracking).where(EmailTracking.created_at < cutoff)
        result = await self.session.execute(statement.execution_options(synchronize_session=False))
        if commit:
            await self.commit()
        return result.rowcount or 0

    async def get_stats(self, prospect_id: Optional[uuid.UUID] = None) -> dict:
        """Aggregate counts, token usage and cost, optionally for one prospect."""
        query = select(
            func.count(EmailTracking.id),
            func.sum(case((EmailTracking.generated_by_ai == True, 1), else_=0)),
            func.sum(case((EmailTracking.copied_at != None, 1), else_=0)),
            func.sum(case((EmailTracking.opened_at != None, 1), else_=0)),
            func.sum(case((EmailTracking.clicked_at != None, 1), else_=0)),
            func.sum(EmailTracking.prompt_tokens),
            func.sum(EmailTracking.completion_tokens),
            func.sum(EmailTracking.cost),
        )
        if prospect_id:
            query = query.where(EmailTracking.prospect_id == prospect_id)

        result = await self.session.exec(query)
        total, ai, copied, opened, clicked, prompt_tokens, completion_tokens, cost = result.one()

        total = total or 0
        copied = copied or 0
        opened = opened or 0
        return {
            "total_emails": total,
            "ai_generated": ai or 0,
            "fallback_generated": total - (ai or 0),
            "copied": copied,
            "opened": opened,
            "clicked": clicked or 0,
            "total_prompt_tokens": prompt_tokens or 0,
            "total_completion_tokens": completion_tokens or 0,
            "total_cost": round(cost or 0.0, 6),
            "open_rate": round(opened / copied * 100, 2) if copied else 0.0,
        }
