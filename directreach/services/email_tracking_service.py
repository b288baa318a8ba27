"""
Email tracking service - generates emails for prospects and follows them
through copy, open and click.
"""
import logging
import uuid
from datetime import datetime
from typing import Optional, Union, Dict, Any, List

from sqlmodel.ext.asyncio.session import AsyncSession

from directreach.config import settings
from directreach.core.exceptions import NotFoundError, GenerationFailure, ValidationError
from directreach.engine.thresholds import Room, parse_room
from directreach.engine.tracking import EmailStatus, advance, new_tracking_token
from directreach.models.activity import ActivityLog, Actions
from directreach.models.client import Prospect
from directreach.models.tracking import EmailTracking
from directreach.repositories.activity_repo import ActivityLogRepository
from directreach.repositories.client_repo import ProspectRepository, ContentLinkRepository
from directreach.repositories.template_repo import EmailTemplateRepository
from directreach.repositories.tracking_repo import EmailTrackingRepository
from directreach.schemas.tracking import EmailStats
from directreach.services.integrations.ai_email import build_fallback_email
from directreach.services.integrations.base import EmailGenerator, GeneratedEmail
from directreach.services.rate_limiter import AIRateLimiter, calculate_cost, get_ai_rate_limiter
from directreach.services.template_service import TemplateResolver

logger = logging.getLogger(__name__)


class EmailTrackingService:
    """Service for email generation and tracking."""

    def __init__(
        self,
        session: AsyncSession,
        generator: Optional[EmailGenerator] = None,
        rate_limiter: Optional[AIRateLimiter] = None,
    ):
        self.session = session
        self.generator = generator
        self.rate_limiter = rate_limiter or get_ai_rate_limiter()
        self.tracking_repo = EmailTrackingRepository(session)
        self.prospect_repo = ProspectRepository(session)
        self.link_repo = ContentLinkRepository(session)
        self.activity_repo = ActivityLogRepository(session)
        self.template_resolver = TemplateResolver(EmailTemplateRepository(session))

    async def _get_prospect(self, prospect_id: uuid.UUID) -> Prospect:
        prospect = await self.prospect_repo.get(prospect_id)
        if not prospect:
            raise NotFoundError("Prospect", str(prospect_id))
        return prospect

    async def _context(self, prospect: Prospect, room: Room, email_number: int) -> Dict[str, Any]:
        links = await self.link_repo.list_active(prospect.campaign_id, room)
        return {
            "contact_name": prospect.contact_name,
            "company_name": prospect.company_name,
            "job_title": prospect.job_title,
            "industry": prospect.industry,
            "lead_score": prospect.lead_score,
            "recent_page_urls": list(prospect.recent_page_urls or []),
            "room": room.value,
            "email_number": email_number,
            "urls_sent": list(prospect.urls_sent or []),
            "content_links": [
                {"title": link.link_title, "url": link.link_url, "summary": link.url_summary}
                for link in links
            ],
        }

    async def generate_and_track(
        self,
        prospect_id: uuid.UUID,
        room: Union[Room, str],
        email_number: int = 1,
    ) -> EmailTracking:
        """
        Generate an email and store its tracking record.

        The rate limit is checked before the generator is called and a
        rejection creates nothing. A generator failure falls back to the
        static email, so every call that gets past the limit ends in exactly
        one record.
        """
        room = parse_room(room)
        prospect = await self._get_prospect(prospect_id)
        context = await self._context(prospect, room, email_number)

        template_id = None
        email: Optional[GeneratedEmail] = None

        if self.generator is not None:
            # Reserve room for a full-length completion
            self.rate_limiter.check_limit(
                required_tokens=settings.AI_MAX_TOKENS,
                required_cost=calculate_cost(0, settings.AI_MAX_TOKENS),
            )
            templates = await self.template_resolver.resolve(prospect.campaign_id, room)
            if templates:
                template = templates[0]
                template_id = template.id
                try:
                    email = await self.generator.generate(template.prompt_template, context)
                except GenerationFailure as e:
                    logger.warning(f"Falling back to static email for prospect {prospect_id}: {e.message}")
            else:
                logger.warning(f"No {room.value} templates for campaign {prospect.campaign_id}, using fallback email")
        else:
            logger.info("No AI generator configured, using fallback email")

        cost = 0.0
        if email is not None and email.generated_by_ai:
            cost = calculate_cost(email.prompt_tokens, email.completion_tokens)
            self.rate_limiter.record(email.tokens_used, cost)
        else:
            email = build_fallback_email(context)
            template_id = None

        record = EmailTracking(
            prospect_id=prospect.id,
            email_number=email_number,
            room_type=room.value,
            subject=email.subject,
            body_html=email.body_html,
            body_text=email.body_text,
            generated_by_ai=email.generated_by_ai,
            template_used=template_id,
            prompt_tokens=email.prompt_tokens,
            completion_tokens=email.completion_tokens,
            cost=cost,
            url_included=email.url_included,
            tracking_token=new_tracking_token(),
            status=EmailStatus.PENDING.value,
        )
        self.session.add(record)
        await self.activity_repo.log(
            action=Actions.EMAIL_GENERATED if email.generated_by_ai else Actions.EMAIL_FALLBACK,
            entity_type="email",
            entity_id=record.id,
            description=f"Email #{email_number} generated for prospect",
            meta_data={"room": room.value, "tokens": email.tokens_used, "cost": cost},
            commit=False,
        )
        await self.tracking_repo.commit()
        await self.session.refresh(record)

        logger.info(
            f"Tracked email {record.id} for prospect {prospect_id} "
            f"({'AI' if record.generated_by_ai else 'fallback'}, ${cost:.6f})"
        )
        return record

    async def mark_copied(
        self,
        tracking_id: uuid.UUID,
        prospect_id: uuid.UUID,
        url: Optional[str] = None,
    ) -> EmailTracking:
        """
        Record that the email was copied for sending.
        The prospect's sequence position moves on by one for every call;
        the URL is only added to urls_sent if it is not there already.
        """
        record = await self.tracking_repo.get(tracking_id)
        if not record or record.prospect_id != prospect_id:
            raise NotFoundError("Email tracking", str(tracking_id))
        prospect = await self._get_prospect(prospect_id)

        now = datetime.utcnow()
        record.status = advance(record.status, EmailStatus.COPIED).value
        if record.copied_at is None:
            record.copied_at = now
            record.sent_at = now
        self.session.add(record)

        await self.prospect_repo.record_email_copied(prospect, url or record.url_included, commit=False)
        await self.activity_repo.log(
            action=Actions.EMAIL_COPIED,
            entity_type="email",
            entity_id=record.id,
            meta_data={"url": url or record.url_included},
            commit=False,
        )
        await self.tracking_repo.commit()
        await self.session.refresh(record)
        logger.info(f"Email {tracking_id} copied for prospect {prospect_id}")
        return record

    async def _get_by_token(self, token: str) -> EmailTracking:
        record = await self.tracking_repo.get_by_token(token)
        if not record:
            raise NotFoundError("Email tracking token", token)
        return record

    async def mark_opened(self, token: str) -> EmailTracking:
        """Stamp opened_at on every open; status moves to opened unless already further."""
        record = await self._get_by_token(token)
        first_open = record.opened_at is None
        record.opened_at = datetime.utcnow()
        record.status = advance(record.status, EmailStatus.OPENED).value
        self.session.add(record)

        if first_open:
            prospect = await self.prospect_repo.get(record.prospect_id)
            if prospect:
                prospect.email_opens = (prospect.email_opens or 0) + 1
                self.session.add(prospect)
            await self.activity_repo.log(
                action=Actions.EMAIL_OPENED,
                entity_type="email",
                entity_id=record.id,
                commit=False,
            )
        await self.tracking_repo.commit()
        await self.session.refresh(record)
        return record

    async def mark_clicked(self, token: str) -> EmailTracking:
        record = await self._get_by_token(token)
        record.clicked_at = datetime.utcnow()
        record.status = advance(record.status, EmailStatus.CLICKED).value
        self.session.add(record)

        prospect = await self.prospect_repo.get(record.prospect_id)
        if prospect:
            prospect.email_clicks = (prospect.email_clicks or 0) + 1
            self.session.add(prospect)
        await self.activity_repo.log(
            action=Actions.EMAIL_CLICKED,
            entity_type="email",
            entity_id=record.id,
            meta_data={"url": record.url_included},
            commit=False,
        )
        await self.tracking_repo.commit()
        await self.session.refresh(record)
        return record

    async def stats(self, prospect_id: Optional[uuid.UUID] = None) -> EmailStats:
        return EmailStats(**await self.tracking_repo.get_stats(prospect_id))

    async def activity(self, tracking_id: uuid.UUID) -> List[ActivityLog]:
        """Generation and lifecycle events for one email, newest first."""
        if not await self.tracking_repo.get(tracking_id):
            raise NotFoundError("Email tracking", str(tracking_id))
        return await self.activity_repo.get_by_entity("email", tracking_id)

    async def cleanup(self, days: Optional[int] = None) -> int:
        """Drop tracking records past the retention period."""
        days = days if days is not None else settings.TRACKING_RETENTION_DAYS
        if days < 1:
            raise ValidationError("retention must be at least one day", field="days")
        deleted = await self.tracking_repo.delete_older_than(days)
        logger.info(f"Cleaned up {deleted} tracking records older than {days} days")
        return deleted
