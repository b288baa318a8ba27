"""
Settings resolver - effective thresholds and scoring rules for a client.

Thresholds are overridden as a whole. Rules are overridden field by field:
every rule starts from the global rule of the same key and only the fields
the client set are laid over it, so later global edits still reach every
field the client left alone.
"""
import copy
import logging
import uuid
from typing import Optional, Dict, Any, Mapping, Tuple, Union

from directreach.core.debounce import DebouncedWriter
from directreach.core.exceptions import NotFoundError, ValidationError
from directreach.engine.rules import BaseRule, merge_rule, validate_room_override
from directreach.engine.thresholds import Room, ROOMS, RoomThresholds, parse_room
from directreach.repositories.interfaces import ClientSettingsStore, GlobalConfigStore
from directreach.schemas.settings import (
    ClientSettings,
    ResolvedThresholds,
    ResolvedRules,
    ResolvedSettings,
    GLOBAL_LABEL,
)

logger = logging.getLogger(__name__)

RuleOverrides = Dict[str, Dict[str, Any]]


def merge_override_fields(stored: RuleOverrides, incoming: RuleOverrides) -> RuleOverrides:
    """
    Deep-merge a partial rule override into a stored one.
    A field set to None is removed, so that field follows the global rule again.
    """
    merged = copy.deepcopy(dict(stored or {}))
    for key, fields in incoming.items():
        current = dict(merged.get(key, {}))
        for name, value in fields.items():
            if value is None:
                current.pop(name, None)
            elif name == "extra" and isinstance(value, Mapping):
                current["extra"] = {**current.get("extra", {}), **value}
            else:
                current[name] = value
        if current:
            merged[key] = current
        else:
            merged.pop(key, None)
    return merged


def stack_draft_fields(pending: RuleOverrides, incoming: RuleOverrides) -> RuleOverrides:
    """
    Lay a new edit over a pending draft.
    None markers are kept so the flush can clear those fields from storage.
    """
    stacked = copy.deepcopy(dict(pending or {}))
    for key, fields in incoming.items():
        current = stacked.setdefault(key, {})
        for name, value in fields.items():
            if name == "extra" and isinstance(value, Mapping) and isinstance(current.get("extra"), Mapping):
                current["extra"] = {**current["extra"], **value}
            else:
                current[name] = value
    return stacked


class SettingsResolver:
    """Resolves and saves client settings against the global defaults."""

    def __init__(
        self,
        client_store: ClientSettingsStore,
        global_store: GlobalConfigStore,
        drafts: Optional[DebouncedWriter] = None,
    ):
        self.client_store = client_store
        self.global_store = global_store
        self.drafts = drafts

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def _load_override(self, client_id: uuid.UUID) -> Tuple[str, Optional[ClientSettings]]:
        name = await self.client_store.get_client_name(client_id)
        if name is None:
            raise NotFoundError("Client", str(client_id))
        return name, await self.client_store.get_override(client_id)

    async def resolve_thresholds(self, client_id: Optional[uuid.UUID] = None) -> ResolvedThresholds:
        override = None
        if client_id is not None:
            _, override = await self._load_override(client_id)
        return await self._thresholds_for(override)

    async def resolve_scoring_rules(self, client_id: Optional[uuid.UUID] = None) -> ResolvedRules:
        override = None
        if client_id is not None:
            _, override = await self._load_override(client_id)
        return await self._rules_for(override)

    async def resolve(self, client_id: Optional[uuid.UUID] = None) -> ResolvedSettings:
        """
        Effective thresholds and rules with provenance.

        The overall source is "client" as soon as any axis (thresholds or
        any room's rules) is overridden.
        """
        name, override = None, None
        if client_id is not None:
            name, override = await self._load_override(client_id)

        thresholds = await self._thresholds_for(override)
        rules = await self._rules_for(override)

        sources = {"thresholds": thresholds.source}
        sources.update({room.value: source for room, source in rules.sources.items()})
        source = "client" if "client" in sources.values() else "global"

        return ResolvedSettings(
            client_id=client_id,
            thresholds=thresholds.thresholds,
            rules=rules.rules,
            source=source,
            label=f"Using {name} Settings" if source == "client" else GLOBAL_LABEL,
            sources=sources,
            version=override.version if override else 0,
        )

    async def _thresholds_for(self, override: Optional[ClientSettings]) -> ResolvedThresholds:
        if override is not None and override.thresholds_override is not None:
            return ResolvedThresholds(thresholds=override.thresholds_override, source="client")
        return ResolvedThresholds(thresholds=await self.global_store.get_thresholds(), source="global")

    async def _rules_for(self, override: Optional[ClientSettings]) -> ResolvedRules:
        global_rules = await self.global_store.get_scoring_rules()
        rules, sources = {}, {}
        for room in ROOMS:
            room_override = override.scoring_override.get(room) if override else None
            rules[room] = self._overlay(room, global_rules[room], room_override or {})
            sources[room] = "client" if room_override else "global"
        return ResolvedRules(rules=rules, sources=sources)

    def _overlay(self, room: Room, global_rules: Dict[str, BaseRule], override: RuleOverrides) -> Dict[str, BaseRule]:
        resolved = {}
        for key, rule in global_rules.items():
            fields = override.get(key)
            resolved[key] = merge_rule(rule, fields) if fields else rule
        for key in set(override) - set(global_rules):
            logger.warning(f"Ignoring override for unknown {room.value} rule '{key}'")
        return resolved

    # ------------------------------------------------------------------
    # Save path
    # ------------------------------------------------------------------

    async def _current(self, client_id: uuid.UUID) -> ClientSettings:
        _, override = await self._load_override(client_id)
        return override or ClientSettings(client_id=client_id)

    async def save_thresholds(
        self,
        client_id: uuid.UUID,
        thresholds: Union[RoomThresholds, Mapping[str, Any]],
        expected_version: Optional[int] = None,
    ) -> ResolvedSettings:
        """Replace the client's threshold override as a whole."""
        if not isinstance(thresholds, RoomThresholds):
            thresholds = RoomThresholds.from_dict(dict(thresholds))

        current = await self._current(client_id)
        updated = current.model_copy(update={"thresholds_override": thresholds})
        await self.client_store.save(updated, expected_version)
        logger.info(f"Saved threshold override for client {client_id}")
        if thresholds.has_dead_zone:
            logger.info(f"Client {client_id} thresholds leave a gap below offer_min {thresholds.offer_min}; those scores stay in solution")
        return await self.resolve(client_id)

    async def save_rule_overrides(
        self,
        client_id: uuid.UUID,
        room: Union[Room, str],
        partial_rules: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> ResolvedSettings:
        """
        Merge partial rule fields into the client's override for one room.
        Everything is validated before anything is written.
        """
        room = parse_room(room)
        cleaned = validate_room_override(room, partial_rules)
        await self._apply_rule_overrides(client_id, {room: cleaned}, expected_version)
        logger.info(f"Saved {room.value} rule override for client {client_id}: {sorted(cleaned)}")
        return await self.resolve(client_id)

    async def _apply_rule_overrides(
        self,
        client_id: uuid.UUID,
        by_room: Mapping[Room, RuleOverrides],
        expected_version: Optional[int] = None,
    ) -> ClientSettings:
        current = await self._current(client_id)
        scoring = {room: dict(rules) for room, rules in current.scoring_override.items()}
        for room, partial in by_room.items():
            merged = merge_override_fields(scoring.get(room, {}), partial)
            if merged:
                scoring[room] = merged
            else:
                scoring.pop(room, None)
        updated = current.model_copy(update={"scoring_override": scoring})
        return await self.client_store.save(updated, expected_version)

    async def reset(self, client_id: uuid.UUID) -> ResolvedSettings:
        """Drop the whole override; the client resolves exactly to global."""
        await self._load_override(client_id)
        deleted = await self.client_store.delete(client_id)
        if deleted:
            logger.info(f"Reset client {client_id} to global defaults")
        return await self.resolve(client_id)

    async def reset_room(
        self,
        client_id: uuid.UUID,
        room: Union[Room, str],
        expected_version: Optional[int] = None,
    ) -> ResolvedSettings:
        room = parse_room(room)
        current = await self._current(client_id)
        if not current.overrides_room(room):
            return await self.resolve(client_id)

        scoring = {r: rules for r, rules in current.scoring_override.items() if r != room}
        await self._save_or_delete(current.model_copy(update={"scoring_override": scoring}), expected_version)
        logger.info(f"Reset {room.value} rules for client {client_id}")
        return await self.resolve(client_id)

    async def reset_thresholds(self, client_id: uuid.UUID, expected_version: Optional[int] = None) -> ResolvedSettings:
        current = await self._current(client_id)
        if current.thresholds_override is None:
            return await self.resolve(client_id)

        await self._save_or_delete(current.model_copy(update={"thresholds_override": None}), expected_version)
        logger.info(f"Reset threshold override for client {client_id}")
        return await self.resolve(client_id)

    async def _save_or_delete(self, settings: ClientSettings, expected_version: Optional[int]) -> None:
        # An override with nothing left in it is removed rather than stored empty
        if settings.is_empty and expected_version is None:
            await self.client_store.delete(settings.client_id)
        else:
            await self.client_store.save(settings, expected_version)

    # ------------------------------------------------------------------
    # Global defaults
    # ------------------------------------------------------------------

    async def update_global_thresholds(self, thresholds: Union[RoomThresholds, Mapping[str, Any]]) -> RoomThresholds:
        if not isinstance(thresholds, RoomThresholds):
            thresholds = RoomThresholds.from_dict(dict(thresholds))
        saved = await self.global_store.save_thresholds(thresholds)
        logger.info(f"Updated global thresholds: {thresholds.model_dump()}")
        return saved

    async def update_global_rules(self, room: Union[Room, str], partial_rules: Mapping[str, Any]) -> Dict[str, BaseRule]:
        """Edit global rules field by field; client overrides keep applying on top."""
        room = parse_room(room)
        cleaned = validate_room_override(room, partial_rules)
        current = (await self.global_store.get_scoring_rules())[room]
        updated = dict(current)
        for key, fields in cleaned.items():
            updated[key] = merge_rule(current[key], {k: v for k, v in fields.items() if v is not None})
        saved = await self.global_store.save_scoring_rules(room, updated)
        logger.info(f"Updated global {room.value} rules: {sorted(cleaned)}")
        return saved

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    async def stage_rule_overrides(
        self,
        client_id: uuid.UUID,
        room: Union[Room, str],
        partial_rules: Mapping[str, Any],
    ) -> Dict[str, RuleOverrides]:
        """
        Cache a rule edit now and persist it after the quiet period.
        Another edit for the same client before then replaces the pending flush.
        """
        if self.drafts is None:
            raise ValidationError("draft saving is not enabled", field="drafts")

        room = parse_room(room)
        cleaned = validate_room_override(room, partial_rules)
        await self._load_override(client_id)

        draft = copy.deepcopy(self.drafts.get(client_id) or {})
        draft[room.value] = stack_draft_fields(draft.get(room.value, {}), cleaned)
        self.drafts.write(client_id, draft)
        logger.debug(f"Staged {room.value} rule draft for client {client_id}")
        return draft

    async def save_draft(self, client_id: uuid.UUID, draft: Mapping[str, RuleOverrides]) -> ClientSettings:
        """Persist a staged draft through the normal save path."""
        by_room = {parse_room(room): partial for room, partial in draft.items()}
        saved = await self._apply_rule_overrides(client_id, by_room)
        logger.info(f"Flushed rule draft for client {client_id} (version {saved.version})")
        return saved

    async def flush_now(self, client_id: Optional[uuid.UUID] = None) -> None:
        if self.drafts is not None:
            await self.drafts.flush_now(client_id)
