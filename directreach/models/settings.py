"""
Settings models - client overrides and the global defaults they overlay.
"""
import uuid
from datetime import datetime
from typing import Optional, Dict, Any

from sqlmodel import SQLModel, Field
from sqlalchemy import Column

from directreach.models.types import JSONType


class ClientSettingsRecord(SQLModel, table=True):
    """
    One row per client holding every override axis, so a save or reset is a
    single-row write.
    """
    __tablename__ = "client_settings"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    client_id: uuid.UUID = Field(foreign_key="client.id", unique=True, index=True)

    # {"problem_max": 40, "solution_max": 60, "offer_min": 61} or None
    thresholds: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSONType, nullable=True))
    # room -> rule key -> partial rule fields
    scoring_override: Dict[str, Any] = Field(default={}, sa_column=Column(JSONType))

    # Incremented on every write, checked when a save passes expected_version
    version: int = Field(default=1)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class GlobalThresholds(SQLModel, table=True):
    """Single-row table with the global room boundaries."""
    __tablename__ = "global_thresholds"

    id: int = Field(default=1, primary_key=True)
    problem_max: int = Field(default=40)
    solution_max: int = Field(default=60)
    offer_min: int = Field(default=61)

    updated_at: datetime = Field(default_factory=datetime.utcnow)


class GlobalScoringRules(SQLModel, table=True):
    """Global rule configuration, one row per room."""
    __tablename__ = "global_scoring_rules"

    room: str = Field(primary_key=True)
    rules: Dict[str, Any] = Field(default={}, sa_column=Column(JSONType))

    updated_at: datetime = Field(default_factory=datetime.utcnow)
