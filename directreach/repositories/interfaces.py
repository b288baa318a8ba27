"""
Store interfaces the services depend on.
Each has an SQL implementation; the settings stores also have in-memory ones.
"""
import uuid
from abc import ABC, abstractmethod
from typing import Optional, Dict, List, Any

from directreach.engine.rules import BaseRule
from directreach.engine.thresholds import Room, RoomThresholds
from directreach.schemas.settings import ClientSettings


class ClientSettingsStore(ABC):
    """Per-client override storage."""

    @abstractmethod
    async def get_client_name(self, client_id: uuid.UUID) -> Optional[str]:
        """Display name of a client, None when the client does not exist."""
        pass

    @abstractmethod
    async def get_override(self, client_id: uuid.UUID) -> Optional[ClientSettings]:
        pass

    @abstractmethod
    async def save(self, settings: ClientSettings, expected_version: Optional[int] = None) -> ClientSettings:
        """
        Write the whole override in one step and return it with its new version.
        Raises ConflictError when expected_version is given and differs from
        the stored version (0 when nothing is stored).
        """
        pass

    @abstractmethod
    async def delete(self, client_id: uuid.UUID) -> bool:
        pass


class GlobalConfigStore(ABC):
    """Global defaults every client override is laid over."""

    @abstractmethod
    async def get_thresholds(self) -> RoomThresholds:
        pass

    @abstractmethod
    async def get_scoring_rules(self) -> Dict[Room, Dict[str, BaseRule]]:
        pass

    @abstractmethod
    async def save_thresholds(self, thresholds: RoomThresholds) -> RoomThresholds:
        pass

    @abstractmethod
    async def save_scoring_rules(self, room: Room, rules: Dict[str, BaseRule]) -> Dict[str, BaseRule]:
        pass


class TemplateStore(ABC):

    @abstractmethod
    async def list_by_campaign(self, campaign_id: uuid.UUID, room: Room) -> List[Any]:
        pass

    @abstractmethod
    async def list_global(self, room: Room) -> List[Any]:
        pass
