"""
Settings API routes - resolve, save and reset client overrides.
"""
import uuid
from typing import Optional, Dict, Any, List

from fastapi import APIRouter, Depends, Query
from sqlmodel.ext.asyncio.session import AsyncSession

from directreach.config import settings
from directreach.api.deps import get_settings_resolver
from directreach.database import get_session
from directreach.engine.thresholds import Room
from directreach.repositories.activity_repo import ActivityLogRepository
from directreach.schemas.common import ActivityLogRead
from directreach.schemas.settings import ResolvedSettings, ThresholdsUpdate, RuleOverridesUpdate
from directreach.services.settings_resolver import SettingsResolver

router = APIRouter(prefix=settings.API_PREFIX, tags=["settings"])


@router.get("/settings/global", response_model=ResolvedSettings)
async def get_global_settings(resolver: SettingsResolver = Depends(get_settings_resolver)):
    """Global thresholds and rules."""
    return await resolver.resolve(None)


@router.put("/settings/global/thresholds", response_model=ResolvedSettings)
async def update_global_thresholds(
    data: ThresholdsUpdate,
    resolver: SettingsResolver = Depends(get_settings_resolver)
):
    await resolver.update_global_thresholds(data.model_dump(exclude={"expected_version"}))
    return await resolver.resolve(None)


@router.patch("/settings/global/rules/{room}", response_model=ResolvedSettings)
async def update_global_rules(
    room: Room,
    data: RuleOverridesUpdate,
    resolver: SettingsResolver = Depends(get_settings_resolver)
):
    await resolver.update_global_rules(room, data.rules)
    return await resolver.resolve(None)


@router.get("/clients/{client_id}/settings", response_model=ResolvedSettings)
async def get_client_settings(
    client_id: uuid.UUID,
    resolver: SettingsResolver = Depends(get_settings_resolver)
):
    """Effective settings for a client, with provenance."""
    return await resolver.resolve(client_id)


@router.put("/clients/{client_id}/settings/thresholds", response_model=ResolvedSettings)
async def save_client_thresholds(
    client_id: uuid.UUID,
    data: ThresholdsUpdate,
    resolver: SettingsResolver = Depends(get_settings_resolver)
):
    return await resolver.save_thresholds(
        client_id,
        data.model_dump(exclude={"expected_version"}),
        expected_version=data.expected_version,
    )


@router.patch("/clients/{client_id}/settings/rules/{room}", response_model=ResolvedSettings)
async def save_client_rules(
    client_id: uuid.UUID,
    room: Room,
    data: RuleOverridesUpdate,
    resolver: SettingsResolver = Depends(get_settings_resolver)
):
    """Merge partial rule fields into the client's override for one room."""
    return await resolver.save_rule_overrides(client_id, room, data.rules, expected_version=data.expected_version)


@router.patch("/clients/{client_id}/settings/rules/{room}/draft")
async def stage_client_rules(
    client_id: uuid.UUID,
    room: Room,
    data: RuleOverridesUpdate,
    resolver: SettingsResolver = Depends(get_settings_resolver)
) -> Dict[str, Any]:
    """Cache a rule edit; it is saved after a short quiet period."""
    draft = await resolver.stage_rule_overrides(client_id, room, data.rules)
    return {"client_id": client_id, "draft": draft, "pending": True}


@router.post("/clients/{client_id}/settings/flush", response_model=ResolvedSettings)
async def flush_client_drafts(
    client_id: uuid.UUID,
    resolver: SettingsResolver = Depends(get_settings_resolver)
):
    await resolver.flush_now(client_id)
    return await resolver.resolve(client_id)


@router.delete("/clients/{client_id}/settings", response_model=ResolvedSettings)
async def reset_client_settings(
    client_id: uuid.UUID,
    room: Optional[Room] = None,
    thresholds: bool = False,
    resolver: SettingsResolver = Depends(get_settings_resolver)
):
    """
    Reset to global defaults. With `room`, only that room's rules are reset;
    with `thresholds=true`, only the thresholds.
    """
    if room is not None:
        return await resolver.reset_room(client_id, room)
    if thresholds:
        return await resolver.reset_thresholds(client_id)
    return await resolver.reset(client_id)


@router.get("/clients/{client_id}/activity", response_model=List[ActivityLogRead])
async def client_activity(
    client_id: uuid.UUID,
    limit: int = Query(default=50, ge=1, le=200),
    resolver: SettingsResolver = Depends(get_settings_resolver),
    session: AsyncSession = Depends(get_session),
):
    """Settings history for a client, newest first."""
    await resolver.resolve(client_id)
    return await ActivityLogRepository(session).get_for_client(client_id, limit)
