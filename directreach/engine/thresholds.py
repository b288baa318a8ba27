"""
Room thresholds - score boundaries between the problem, solution and offer rooms.
"""
from enum import Enum
from typing import Optional, Dict, Any

from pydantic import BaseModel, model_validator

from directreach.core.exceptions import ValidationError


class Room(str, Enum):
    """Pipeline stage a prospect sits in."""
    PROBLEM = "problem"
    SOLUTION = "solution"
    OFFER = "offer"


ROOMS = (Room.PROBLEM, Room.SOLUTION, Room.OFFER)


def parse_room(value: Any) -> Room:
    """Coerce a room name, raising ValidationError for unknown rooms."""
    if isinstance(value, Room):
        return value
    try:
        return Room(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"unknown room '{value}'", field="room")


class RoomThresholds(BaseModel):
    """
    Immutable room boundaries.

    A score s is `problem` when s <= problem_max, `solution` when
    problem_max < s <= solution_max and `offer` when s >= offer_min.
    """
    problem_max: int
    solution_max: int
    offer_min: int

    class Config:
        frozen = True

    @model_validator(mode="after")
    def _check_order(self):
        if self.problem_max < 1:
            raise ValueError("problem_max must be a positive integer")
        if self.problem_max >= self.solution_max:
            raise ValueError("problem_max must be less than solution_max")
        if self.solution_max >= self.offer_min:
            raise ValueError("solution_max must be less than offer_min")
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoomThresholds":
        """Build thresholds from untrusted input, raising the domain ValidationError."""
        if not isinstance(data, dict):
            raise ValidationError("thresholds must be an object", field="thresholds")
        missing = [k for k in ("problem_max", "solution_max", "offer_min") if data.get(k) is None]
        if missing:
            raise ValidationError(f"missing {', '.join(missing)}", field="thresholds")
        try:
            return cls(
                problem_max=int(data["problem_max"]),
                solution_max=int(data["solution_max"]),
                offer_min=int(data["offer_min"]),
            )
        except (TypeError, ValueError) as e:
            # pydantic's ValidationError is a ValueError subclass
            raise ValidationError(_first_error(e), field="thresholds")

    @property
    def has_dead_zone(self) -> bool:
        return self.offer_min > self.solution_max + 1

    def classify(self, score: int) -> Room:
        """
        Total classification of a score.

        Scores in the gap between solution_max and offer_min have not
        reached the offer boundary and stay in the solution room.
        """
        if score <= self.problem_max:
            return Room.PROBLEM
        if score < self.offer_min:
            return Room.SOLUTION
        return Room.OFFER

    def score_range(self, room: Room) -> Dict[str, Optional[int]]:
        """Inclusive score range of a room; offer has no upper bound."""
        room = parse_room(room)
        if room == Room.PROBLEM:
            return {"min": None, "max": self.problem_max}
        if room == Room.SOLUTION:
            return {"min": self.problem_max + 1, "max": self.offer_min - 1}
        return {"min": self.offer_min, "max": None}


def _first_error(exc: Exception) -> str:
    errors = getattr(exc, "errors", None)
    if callable(errors):
        details = errors()
        if details:
            return str(details[0].get("msg", exc)).removeprefix("Value error, ")
    return str(exc)


DEFAULT_THRESHOLDS = RoomThresholds(problem_max=40, solution_max=60, offer_min=61)
