"""Client-side synchronization for planning poker rooms and voting rounds."""

from pokersync.domain.room import RoomSyncEngine
from pokersync.domain.voting import VotingSyncEngine
from pokersync.main import PokerClient, create_client
from pokersync.store.identity import IdentityStore

__all__ = ["IdentityStore", "PokerClient", "RoomSyncEngine", "VotingSyncEngine", "create_client"]
