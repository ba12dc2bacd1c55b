# pokersync/main.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from pokersync.domain.room import RoomSyncEngine
from pokersync.domain.voting import VotingSyncEngine
from pokersync.log import configure_logging
from pokersync.settings import Settings, get_settings
from pokersync.store.backends import KeyValueBackend, RedisBackend, make_backend
from pokersync.store.identity import IdentityStore
from pokersync.transport.rpc import EstimationServiceClient, RoomServiceClient, make_http_client


@dataclass
class PokerClient:
    """Everything one client process needs, wired from settings."""

    settings: Settings
    http: httpx.AsyncClient
    identity: IdentityStore
    rooms: RoomServiceClient
    estimation: EstimationServiceClient
    room: RoomSyncEngine
    # Configured backend; the identity store may have swapped to memory since
    backend: KeyValueBackend

    def voting(self) -> VotingSyncEngine:
        """Voting engine bound to the room we are currently in."""
        return VotingSyncEngine.from_room(self.room, self.estimation, settings=self.settings)

    async def aclose(self) -> None:
        await self.room.unmount()
        await self.http.aclose()
        if isinstance(self.backend, RedisBackend):
            await self.backend.r.aclose()


def create_client(settings: Optional[Settings] = None, *, http: Optional[httpx.AsyncClient] = None) -> PokerClient:
    settings = settings or get_settings()
    configure_logging(settings)

    http = http or make_http_client(settings)
    rooms = RoomServiceClient(http, package=settings.RPC_PACKAGE)
    estimation = EstimationServiceClient(http, package=settings.RPC_PACKAGE)
    backend = make_backend(settings)
    identity = IdentityStore(backend, prefix=settings.STORAGE_PREFIX)
    return PokerClient(
        settings=settings,
        http=http,
        identity=identity,
        rooms=rooms,
        estimation=estimation,
        room=RoomSyncEngine(rooms, estimation, identity, settings=settings),
        backend=backend,
    )
