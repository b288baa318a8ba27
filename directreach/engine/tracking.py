"""
Tracking status for generated emails.

Status only moves forward: pending -> copied -> opened -> clicked. Events
that arrive out of order still stamp their own timestamps but never lower
the recorded milestone.
"""
import secrets
from enum import Enum


class EmailStatus(str, Enum):
    PENDING = "pending"
    COPIED = "copied"
    OPENED = "opened"
    CLICKED = "clicked"


_RANK = {
    EmailStatus.PENDING: 0,
    EmailStatus.COPIED: 1,
    EmailStatus.OPENED: 2,
    EmailStatus.CLICKED: 3,
}


def advance(current: str, target: str) -> EmailStatus:
    """Return the further of two statuses."""
    current, target = EmailStatus(current), EmailStatus(target)
    return target if _RANK[target] > _RANK[current] else current


def new_tracking_token() -> str:
    """32 hex characters, used in open/click tracking URLs."""
    return secrets.token_hex(16)
