"""
Persistent anonymous identity plus per-room reconnection hints.

Nothing outside this module touches the storage backend directly.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from typing import Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from pokersync.store.backends import KeyValueBackend, MemoryBackend, Raw, StorageUnavailable
from pokersync.store.keys import SK
from pokersync.store.models import RoomParticipantMap, RoomVisitMap, UserIdentity
from pokersync.store.namegen import generate_participant_name

LOGGER = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def now_ms() -> int:
    return int(time.time() * 1000)


class IdentityStore:
    def __init__(self, backend: Optional[KeyValueBackend] = None, *, prefix: str = "esteemed") -> None:
        self.backend: KeyValueBackend = backend or MemoryBackend()
        self.keys = SK(prefix)
        self._degraded = False
        # Last value read or written per key; seeds the in-memory fallback
        self._last: Dict[str, Raw] = {}
        self._lock = asyncio.Lock()

    @property
    def degraded(self) -> bool:
        """True once storage failed and the store runs in memory only."""
        return self._degraded

    # ----------------------------
    # Raw access with fallback
    # ----------------------------
    def _fall_back(self, exc: Exception) -> None:
        LOGGER.warning("Storage unavailable, continuing in memory only: %s", exc)
        self.backend = MemoryBackend(self._last)
        self._degraded = True

    async def _get(self, key: str) -> Optional[Raw]:
        try:
            raw = await self.backend.get(key)
        except StorageUnavailable as exc:
            self._fall_back(exc)
            return await self.backend.get(key)
        if raw is not None:
            self._last[key] = raw
        return raw

    async def _set(self, key: str, value: str) -> None:
        self._last[key] = value
        try:
            await self.backend.set(key, value)
        except StorageUnavailable as exc:
            self._fall_back(exc)

    async def _load(self, key: str, model: Type[M]) -> Optional[M]:
        raw = await self._get(key)
        if not raw:
            return None
        try:
            return model.model_validate(json.loads(raw))
        except (ValueError, ValidationError):
            # Corrupt record: treat as absent, next write replaces it
            LOGGER.debug("Ignoring malformed record %s", key)
            return None

    async def _save(self, key: str, value: BaseModel) -> None:
        await self._set(key, value.model_dump_json())

    # ----------------------------
    # Identity
    # ----------------------------
    async def get_or_create_identity(self) -> UserIdentity:
        async with self._lock:
            identity = await self._load(self.keys.identity(), UserIdentity)
            if identity is not None:
                return identity
            identity = UserIdentity(token=str(uuid.uuid4()), generated_name=generate_participant_name())
            await self._save(self.keys.identity(), identity)
            LOGGER.info("Created identity %s (%s)", identity.token, identity.generated_name)
            return identity

    async def get_global_token(self) -> str:
        return (await self.get_or_create_identity()).token

    async def get_display_name(self) -> str:
        return (await self.get_or_create_identity()).display_name

    async def set_custom_name(self, name: str) -> UserIdentity:
        """Trimmed name overrides the generated one; empty input clears the override."""
        identity = await self.get_or_create_identity()
        cleaned = (name or "").strip()
        identity = identity.model_copy(update={"custom_name": cleaned or None})
        async with self._lock:
            await self._save(self.keys.identity(), identity)
        return identity

    # ----------------------------
    # Room -> participant id
    # ----------------------------
    async def _participants(self) -> RoomParticipantMap:
        return await self._load(self.keys.room_participants(), RoomParticipantMap) or RoomParticipantMap()

    async def save_room_participant_id(self, room: str, participant_id: str) -> None:
        mapping = await self._participants()
        mapping.rooms[room] = participant_id
        await self._save(self.keys.room_participants(), mapping)

    async def get_room_participant_id(self, room: str) -> Optional[str]:
        if not room:
            return None
        return (await self._participants()).rooms.get(room)

    async def clear_room_participant_id(self, room: str) -> None:
        mapping = await self._participants()
        if mapping.rooms.pop(room, None) is not None:
            await self._save(self.keys.room_participants(), mapping)

    # ----------------------------
    # Room -> last visited
    # ----------------------------
    async def touch_room_visit(self, room: str, ts: Optional[int] = None) -> None:
        visits = await self._load(self.keys.room_visits(), RoomVisitMap) or RoomVisitMap()
        visits.rooms[room] = ts if ts is not None else now_ms()
        await self._save(self.keys.room_visits(), visits)

    async def get_room_visits(self) -> Dict[str, int]:
        visits = await self._load(self.keys.room_visits(), RoomVisitMap) or RoomVisitMap()
        return dict(visits.rooms)
