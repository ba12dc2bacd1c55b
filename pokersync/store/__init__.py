from pokersync.store.backends import FileBackend, KeyValueBackend, MemoryBackend, RedisBackend, make_backend
from pokersync.store.identity import IdentityStore
from pokersync.store.models import UserIdentity

__all__ = [
    "FileBackend",
    "IdentityStore",
    "KeyValueBackend",
    "MemoryBackend",
    "RedisBackend",
    "UserIdentity",
    "make_backend",
]
