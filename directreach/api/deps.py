"""
API dependencies - shared across all routes.
"""
import logging
import uuid
from typing import Optional, Dict, Any

from fastapi import Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from directreach import database
from directreach.config import settings
from directreach.core.debounce import DebouncedWriter
from directreach.database import get_session
from directreach.repositories.settings_repo import ClientSettingsRepository, GlobalConfigRepository
from directreach.services.email_tracking_service import EmailTrackingService
from directreach.services.integrations.ai_email import get_email_generator
from directreach.services.integrations.base import EmailGenerator
from directreach.services.rate_limiter import AIRateLimiter, get_ai_rate_limiter
from directreach.services.settings_resolver import SettingsResolver

logger = logging.getLogger(__name__)


async def _flush_settings_draft(client_id: uuid.UUID, draft: Dict[str, Any]) -> None:
    """Drafts outlive the request that staged them, so they get their own session."""
    async with database.async_session_factory() as session:
        resolver = SettingsResolver(ClientSettingsRepository(session), GlobalConfigRepository(session))
        await resolver.save_draft(client_id, draft)


draft_writer = DebouncedWriter(_flush_settings_draft, delay=settings.SETTINGS_FLUSH_DELAY_SECONDS)


def get_draft_writer() -> DebouncedWriter:
    return draft_writer


async def get_settings_resolver(
    session: AsyncSession = Depends(get_session),
    drafts: DebouncedWriter = Depends(get_draft_writer),
) -> SettingsResolver:
    return SettingsResolver(ClientSettingsRepository(session), GlobalConfigRepository(session), drafts=drafts)


def get_generator() -> Optional[EmailGenerator]:
    return get_email_generator()


def get_rate_limiter() -> AIRateLimiter:
    return get_ai_rate_limiter()


async def get_email_tracking_service(
    session: AsyncSession = Depends(get_session),
    generator: Optional[EmailGenerator] = Depends(get_generator),
    rate_limiter: AIRateLimiter = Depends(get_rate_limiter),
) -> EmailTrackingService:
    return EmailTrackingService(session, generator=generator, rate_limiter=rate_limiter)
