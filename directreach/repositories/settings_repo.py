"""
Settings repositories - SQL stores for client overrides and global defaults.
"""
import logging
import uuid
from datetime import datetime
from typing import Optional, Dict

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from directreach.core.exceptions import ConflictError
from directreach.engine.rules import BaseRule, DEFAULT_SCORING_RULES, rules_from_config, rules_to_config
from directreach.engine.thresholds import Room, ROOMS, RoomThresholds, DEFAULT_THRESHOLDS
from directreach.models.activity import Actions
from directreach.models.client import Client
from directreach.models.settings import ClientSettingsRecord, GlobalThresholds, GlobalScoringRules
from directreach.repositories.activity_repo import ActivityLogRepository
from directreach.repositories.base import BaseRepository
from directreach.repositories.interfaces import ClientSettingsStore, GlobalConfigStore
from directreach.schemas.settings import ClientSettings

logger = logging.getLogger(__name__)


def _to_settings(record: ClientSettingsRecord) -> ClientSettings:
    return ClientSettings(
        client_id=record.client_id,
        thresholds_override=RoomThresholds(**record.thresholds) if record.thresholds else None,
        scoring_override=record.scoring_override or {},
        version=record.version,
        updated_at=record.updated_at,
    )


def _scoring_payload(settings: ClientSettings) -> dict:
    return {room.value: dict(rules) for room, rules in settings.scoring_override.items() if rules}


class ClientSettingsRepository(BaseRepository[ClientSettingsRecord], ClientSettingsStore):
    """Client overrides, one row per client, versioned for compare-and-swap saves."""

    def __init__(self, session: AsyncSession):
        super().__init__(ClientSettingsRecord, session)
        self.activity_repo = ActivityLogRepository(session)

    async def get_client_name(self, client_id: uuid.UUID) -> Optional[str]:
        client = await self.session.get(Client, client_id)
        return client.name if client else None

    async def get_record(self, client_id: uuid.UUID) -> Optional[ClientSettingsRecord]:
        return await self.get_by_field("client_id", client_id)

    async def get_override(self, client_id: uuid.UUID) -> Optional[ClientSettings]:
        record = await self.get_record(client_id)
        return _to_settings(record) if record else None

    async def save(self, settings: ClientSettings, expected_version: Optional[int] = None) -> ClientSettings:
        """Insert or update the client's row and its audit entry in one transaction."""
        record = await self.get_record(settings.client_id)
        current = record.version if record else 0
        if expected_version is not None and expected_version != current:
            raise ConflictError("Client settings", expected_version, current)

        thresholds = settings.thresholds_override.model_dump() if settings.thresholds_override else None
        scoring = _scoring_payload(settings)
        now = datetime.utcnow()

        if record is None:
            self.session.add(ClientSettingsRecord(
                client_id=settings.client_id,
                thresholds=thresholds,
                scoring_override=scoring,
                version=1,
                updated_at=now,
            ))
            try:
                await self.session.flush()
            except IntegrityError:
                # Another writer created the row first
                await self.session.rollback()
                raise ConflictError("Client settings", current, None)
        else:
            # Conditional update so a concurrent writer cannot slip in between read and write
            result = await self.session.execute(
                update(ClientSettingsRecord)
                .where(
                    ClientSettingsRecord.client_id == settings.client_id,
                    ClientSettingsRecord.version == current,
                )
                .values(thresholds=thresholds, scoring_override=scoring, version=current + 1, updated_at=now)
            )
            if result.rowcount == 0:
                await self.session.rollback()
                raise ConflictError("Client settings", current, None)

        await self.activity_repo.log(
            action=Actions.SETTINGS_SAVED,
            entity_type="client_settings",
            client_id=settings.client_id,
            description="Client settings saved",
            meta_data={"version": current + 1},
            commit=False,
        )
        await self.commit()

        saved = await self.get_record(settings.client_id)
        await self.session.refresh(saved)
        logger.info(f"Saved settings for client {settings.client_id} (version {saved.version})")
        return _to_settings(saved)

    async def delete(self, client_id: uuid.UUID) -> bool:
        record = await self.get_record(client_id)
        if not record:
            return False
        await self.session.delete(record)
        await self.activity_repo.log(
            action=Actions.SETTINGS_RESET,
            entity_type="client_settings",
            client_id=client_id,
            description="Client settings reset to global defaults",
            commit=False,
        )
        await self.commit()
        logger.info(f"Deleted settings override for client {client_id}")
        return True


class GlobalConfigRepository(GlobalConfigStore):
    """
    Global thresholds and rules. Missing rows fall back to the built-in
    defaults, so an empty database resolves like a fresh install.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.thresholds_repo = BaseRepository(GlobalThresholds, session)
        self.rules_repo = BaseRepository(GlobalScoringRules, session)
        self.activity_repo = ActivityLogRepository(session)

    async def get_thresholds(self) -> RoomThresholds:
        row = await self.session.get(GlobalThresholds, 1)
        if not row:
            return DEFAULT_THRESHOLDS
        return RoomThresholds(problem_max=row.problem_max, solution_max=row.solution_max, offer_min=row.offer_min)

    async def get_scoring_rules(self) -> Dict[Room, Dict[str, BaseRule]]:
        result = await self.session.exec(select(GlobalScoringRules))
        stored = {row.room: row.rules for row in result.all()}
        rules = {}
        for room in ROOMS:
            config = stored.get(room.value)
            rules[room] = rules_from_config(room, config) if config else dict(DEFAULT_SCORING_RULES[room])
        return rules

    async def save_thresholds(self, thresholds: RoomThresholds) -> RoomThresholds:
        row = await self.session.get(GlobalThresholds, 1)
        if not row:
            row = GlobalThresholds(id=1)
        row.problem_max = thresholds.problem_max
        row.solution_max = thresholds.solution_max
        row.offer_min = thresholds.offer_min
        row.updated_at = datetime.utcnow()
        self.session.add(row)
        await self.activity_repo.log(
            action=Actions.GLOBAL_SETTINGS_UPDATED,
            entity_type="global_settings",
            description="Global thresholds updated",
            meta_data=thresholds.model_dump(),
            commit=False,
        )
        await self.thresholds_repo.commit()
        return thresholds

    async def save_scoring_rules(self, room: Room, rules: Dict[str, BaseRule]) -> Dict[str, BaseRule]:
        row = await self.session.get(GlobalScoringRules, room.value)
        if not row:
            row = GlobalScoringRules(room=room.value)
        row.rules = rules_to_config(rules)
        row.updated_at = datetime.utcnow()
        self.session.add(row)
        await self.activity_repo.log(
            action=Actions.GLOBAL_SETTINGS_UPDATED,
            entity_type="global_settings",
            description=f"Global {room.value} rules updated",
            meta_data={"room": room.value},
            commit=False,
        )
        await self.rules_repo.commit()
        return rules
