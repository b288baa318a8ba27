"""
Scoring service - scores prospects with their client's effective settings.
"""
import logging
import uuid
from typing import Mapping, Any, Union

from directreach.core.exceptions import NotFoundError
from directreach.engine.scoring import ProspectAttributes, ScoringEngine, scoring_engine
from directreach.engine.thresholds import Room, parse_room
from directreach.models.activity import Actions
from directreach.repositories.activity_repo import ActivityLogRepository
from directreach.repositories.client_repo import ProspectRepository, CampaignRepository
from directreach.schemas.scoring import RoomScoreResponse, ProspectScoreResponse
from directreach.services.settings_resolver import SettingsResolver

logger = logging.getLogger(__name__)


def _attributes(attributes: Union[ProspectAttributes, Mapping[str, Any]]) -> ProspectAttributes:
    if isinstance(attributes, ProspectAttributes):
        return attributes
    return ProspectAttributes(**attributes)


class ScoringService:
    """Service for scoring operations."""

    def __init__(self, resolver: SettingsResolver, engine: ScoringEngine = scoring_engine):
        self.resolver = resolver
        self.engine = engine

    async def score_prospect(
        self,
        client_id: uuid.UUID,
        room: Union[Room, str],
        attributes: Union[ProspectAttributes, Mapping[str, Any]],
    ) -> RoomScoreResponse:
        """Score one room's rules and classify the resulting score."""
        room = parse_room(room)
        settings = await self.resolver.resolve(client_id)
        result = self.engine.score(_attributes(attributes), settings.rules[room])
        return RoomScoreResponse(
            room=room,
            score=result,
            classified_room=self.engine.classify(result.total_points, settings.thresholds),
            thresholds=settings.thresholds,
        )

    async def score_all(
        self,
        client_id: uuid.UUID,
        attributes: Union[ProspectAttributes, Mapping[str, Any]],
    ) -> ProspectScoreResponse:
        """Score all three rooms and place the prospect."""
        settings = await self.resolver.resolve(client_id)
        result = self.engine.score_all(_attributes(attributes), settings.rules, settings.thresholds)
        return ProspectScoreResponse(**result.model_dump(), thresholds=settings.thresholds)

    async def rescore_prospect(
        self,
        prospect_id: uuid.UUID,
        prospect_repo: ProspectRepository,
        campaign_repo: CampaignRepository,
    ) -> ProspectScoreResponse:
        """Recalculate a stored prospect's lead score and room."""
        prospect = await prospect_repo.get(prospect_id)
        if not prospect:
            raise NotFoundError("Prospect", str(prospect_id))
        campaign = await campaign_repo.get(prospect.campaign_id)
        if not campaign:
            raise NotFoundError("Campaign", str(prospect.campaign_id))

        attributes = ProspectAttributes(
            estimated_revenue=prospect.estimated_revenue,
            employee_count=prospect.employee_count,
            industry=prospect.industry,
            state=prospect.state,
            job_title=prospect.job_title,
            page_views=prospect.page_views,
            recent_page_urls=prospect.recent_page_urls or [],
            referrer=prospect.referrer,
            email_opens=prospect.email_opens,
            email_clicks=prospect.email_clicks,
        )
        result = await self.score_all(campaign.client_id, attributes)
        room = result.current_room.value if result.current_room else None
        await ActivityLogRepository(prospect_repo.session).log(
            action=Actions.PROSPECT_SCORED,
            entity_type="prospect",
            entity_id=prospect.id,
            client_id=campaign.client_id,
            meta_data={"lead_score": result.total_score, "room": room},
            commit=False,
        )
        await prospect_repo.update_score(prospect, result.total_score, room)
        logger.info(f"Rescored prospect {prospect_id}: {result.total_score} ({room or 'no room'})")
        return result
