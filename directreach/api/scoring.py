"""
Scoring API routes.
"""
import uuid

from fastapi import APIRouter, Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from directreach.config import settings
from directreach.api.deps import get_settings_resolver
from directreach.database import get_session
from directreach.engine.thresholds import Room
from directreach.repositories.client_repo import ProspectRepository, CampaignRepository
from directreach.schemas.scoring import ScoreRequest, RoomScoreResponse, ProspectScoreResponse
from directreach.services.scoring_service import ScoringService
from directreach.services.settings_resolver import SettingsResolver

router = APIRouter(prefix=settings.API_PREFIX, tags=["scoring"])


@router.post("/clients/{client_id}/score/{room}", response_model=RoomScoreResponse)
async def score_room(
    client_id: uuid.UUID,
    room: Room,
    data: ScoreRequest,
    resolver: SettingsResolver = Depends(get_settings_resolver)
):
    """Score a prospect against one room's rules."""
    return await ScoringService(resolver).score_prospect(client_id, room, data.attributes)


@router.post("/clients/{client_id}/score", response_model=ProspectScoreResponse)
async def score_all_rooms(
    client_id: uuid.UUID,
    data: ScoreRequest,
    resolver: SettingsResolver = Depends(get_settings_resolver)
):
    """Score all rooms, cap the lead score and place the prospect."""
    return await ScoringService(resolver).score_all(client_id, data.attributes)


@router.post("/prospects/{prospect_id}/rescore", response_model=ProspectScoreResponse)
async def rescore_prospect(
    prospect_id: uuid.UUID,
    resolver: SettingsResolver = Depends(get_settings_resolver),
    session: AsyncSession = Depends(get_session)
):
    """Recalculate and store a prospect's lead score and room."""
    return await ScoringService(resolver).rescore_prospect(
        prospect_id, ProspectRepository(session), CampaignRepository(session)
    )
