"""
Settings schemas - client overrides and resolved settings.
"""
import uuid
from datetime import datetime
from typing import Optional, Dict, Any, Literal

from pydantic import BaseModel, Field

from directreach.engine.rules import ScoringRule
from directreach.engine.thresholds import Room, RoomThresholds

Source = Literal["client", "global"]

GLOBAL_LABEL = "Using Global Defaults"


class ClientSettings(BaseModel):
    """
    A client's stored override. Every axis is optional; an absent axis
    resolves to the global value.
    """
    client_id: uuid.UUID
    thresholds_override: Optional[RoomThresholds] = None
    # room -> rule key -> partial rule fields
    scoring_override: Dict[Room, Dict[str, Dict[str, Any]]] = Field(default_factory=dict)
    version: int = 0
    updated_at: Optional[datetime] = None

    def overrides_room(self, room: Room) -> bool:
        return bool(self.scoring_override.get(room))

    @property
    def is_empty(self) -> bool:
        return self.thresholds_override is None and not any(self.scoring_override.values())


class ResolvedThresholds(BaseModel):
    thresholds: RoomThresholds
    source: Source


class ResolvedRules(BaseModel):
    rules: Dict[Room, Dict[str, ScoringRule]]
    sources: Dict[Room, Source]


class ResolvedSettings(BaseModel):
    """Effective settings for a client, with provenance."""
    client_id: Optional[uuid.UUID] = None
    thresholds: RoomThresholds
    rules: Dict[Room, Dict[str, ScoringRule]]
    # "client" when any axis is overridden
    source: Source
    label: str
    sources: Dict[str, Source]
    version: int = 0

    class Config:
        json_schema_extra = {
            "example": {
                "client_id": "5b0b9f52-6a3e-4c59-9d7e-0b1e5b6f1a10",
                "thresholds": {"problem_max": 40, "solution_max": 60, "offer_min": 61},
                "source": "client",
                "label": "Using Acme Corp Settings",
                "sources": {"thresholds": "global", "problem": "client", "solution": "global", "offer": "global"},
                "version": 3,
            }
        }


class ThresholdsUpdate(BaseModel):
    problem_max: int
    solution_max: int
    offer_min: int
    expected_version: Optional[int] = None


class RuleOverridesUpdate(BaseModel):
    """Partial rule fields keyed by rule key, merged into the stored override."""
    rules: Dict[str, Dict[str, Any]]
    expected_version: Optional[int] = None

    class Config:
        json_schema_extra = {
            "example": {
                "rules": {"industry_alignment": {"values": ["Healthcare"], "excluded_values": ["Gambling"]}},
                "expected_version": 2,
            }
        }
