"""
Scoring schemas.
"""
from typing import Optional

from pydantic import BaseModel

from directreach.engine.scoring import ProspectAttributes, RoomScore, ProspectScore
from directreach.engine.thresholds import Room, RoomThresholds


class ScoreRequest(BaseModel):
    attributes: ProspectAttributes


class RoomScoreResponse(BaseModel):
    """Score of one room's rules, and where that score places the prospect."""
    room: Room
    score: RoomScore
    classified_room: Room
    thresholds: RoomThresholds


class ProspectScoreResponse(ProspectScore):
    thresholds: Optional[RoomThresholds] = None
