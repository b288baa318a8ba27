"""
Template resolver - the templates a campaign sees for a room.
"""
import logging
import uuid
from typing import Any, Dict, List

from directreach.config import settings
from directreach.core.exceptions import ValidationError
from directreach.engine.templates import check_template_order, merge_for_room, normalize_sections, template_stats
from directreach.engine.thresholds import Room, parse_room
from directreach.repositories.interfaces import TemplateStore

logger = logging.getLogger(__name__)


class TemplateResolver:

    def __init__(self, store: TemplateStore, limit: int = None):
        self.store = store
        self.limit = limit if limit is not None else settings.MAX_TEMPLATES_PER_ROOM

    def _usable(self, templates: List[Any]) -> List[Any]:
        usable = []
        for template in templates:
            try:
                check_template_order(template.template_order)
                normalize_sections(template.prompt_template)
            except ValidationError as e:
                logger.warning(f"Skipping template {template.id}: {e.message}")
                continue
            usable.append(template)
        return usable

    async def resolve(self, campaign_id: uuid.UUID, room: Room) -> List[Any]:
        """Merged templates for a campaign room, campaign slots first, at most `limit`."""
        room = parse_room(room)
        campaign = self._usable(await self.store.list_by_campaign(campaign_id, room))
        global_ = self._usable(await self.store.list_global(room))
        merged = merge_for_room(campaign, global_, room, limit=self.limit)
        logger.debug(f"Campaign {campaign_id} {room.value}: {len(merged)} templates")
        return merged

    async def stats(self, campaign_id: uuid.UUID, room: Room) -> Dict[str, Any]:
        room = parse_room(room)
        return template_stats(
            await self.store.list_by_campaign(campaign_id, room),
            await self.store.list_global(room),
            room,
        )
