"""
In-memory stores, for tests and for running the engine without a database.
"""
import uuid
from datetime import datetime
from typing import Optional, Dict, List, Any, Iterable

from directreach.core.exceptions import ConflictError
from directreach.engine.rules import BaseRule, DEFAULT_SCORING_RULES
from directreach.engine.thresholds import Room, ROOMS, RoomThresholds, DEFAULT_THRESHOLDS, parse_room
from directreach.repositories.interfaces import ClientSettingsStore, GlobalConfigStore, TemplateStore
from directreach.schemas.settings import ClientSettings


class InMemoryClientSettingsStore(ClientSettingsStore):

    def __init__(self, clients: Optional[Dict[uuid.UUID, str]] = None):
        self.clients: Dict[uuid.UUID, str] = dict(clients or {})
        self.overrides: Dict[uuid.UUID, ClientSettings] = {}
        self.save_count = 0

    def add_client(self, name: str, client_id: Optional[uuid.UUID] = None) -> uuid.UUID:
        client_id = client_id or uuid.uuid4()
        self.clients[client_id] = name
        return client_id

    async def get_client_name(self, client_id: uuid.UUID) -> Optional[str]:
        return self.clients.get(client_id)

    async def get_override(self, client_id: uuid.UUID) -> Optional[ClientSettings]:
        return self.overrides.get(client_id)

    async def save(self, settings: ClientSettings, expected_version: Optional[int] = None) -> ClientSettings:
        current = self.overrides.get(settings.client_id)
        current_version = current.version if current else 0
        if expected_version is not None and expected_version != current_version:
            raise ConflictError("Client settings", expected_version, current_version)

        saved = settings.model_copy(
            update={"version": current_version + 1, "updated_at": datetime.utcnow()},
            deep=True,
        )
        self.overrides[settings.client_id] = saved
        self.save_count += 1
        return saved

    async def delete(self, client_id: uuid.UUID) -> bool:
        return self.overrides.pop(client_id, None) is not None


class InMemoryGlobalConfigStore(GlobalConfigStore):

    def __init__(
        self,
        thresholds: RoomThresholds = DEFAULT_THRESHOLDS,
        rules: Optional[Dict[Room, Dict[str, BaseRule]]] = None,
    ):
        self.thresholds = thresholds
        source = rules or DEFAULT_SCORING_RULES
        self.rules = {room: dict(source.get(room, DEFAULT_SCORING_RULES[room])) for room in ROOMS}

    async def get_thresholds(self) -> RoomThresholds:
        return self.thresholds

    async def get_scoring_rules(self) -> Dict[Room, Dict[str, BaseRule]]:
        # Rules are frozen, a shallow copy of each room map is enough
        return {room: dict(rules) for room, rules in self.rules.items()}

    async def save_thresholds(self, thresholds: RoomThresholds) -> RoomThresholds:
        self.thresholds = thresholds
        return thresholds

    async def save_scoring_rules(self, room: Room, rules: Dict[str, BaseRule]) -> Dict[str, BaseRule]:
        self.rules[parse_room(room)] = dict(rules)
        return rules


class InMemoryTemplateStore(TemplateStore):
    """Holds template objects; campaign templates are those with a campaign_id."""

    def __init__(self, templates: Iterable[Any] = ()):
        self.templates: List[Any] = list(templates)

    async def list_by_campaign(self, campaign_id: uuid.UUID, room: Room) -> List[Any]:
        room = parse_room(room)
        return [
            t for t in self.templates
            if not t.is_global and t.campaign_id == campaign_id and parse_room(t.room_type) == room
        ]

    async def list_global(self, room: Room) -> List[Any]:
        room = parse_room(room)
        return [t for t in self.templates if t.is_global and parse_room(t.room_type) == room]
