from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional, Protocol, Union

from redis.asyncio import Redis
from redis.exceptions import RedisError

from pokersync.settings import Settings


class StorageUnavailable(Exception):
    """Raised by a backend when the underlying storage cannot be used."""


# Raw record as stored; decoding happens where the record is parsed.
Raw = Union[str, bytes]


class KeyValueBackend(Protocol):
    async def get(self, key: str) -> Optional[Raw]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class MemoryBackend:
    """Process-local dict. Also the fallback when real storage fails."""

    def __init__(self, data: Optional[Dict[str, Raw]] = None) -> None:
        self._data: Dict[str, Raw] = dict(data or {})

    async def get(self, key: str) -> Optional[Raw]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileBackend:
    """
    One JSON document per key under a directory.
    Closest local equivalent of browser localStorage.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).expanduser()

    def _path(self, key: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)
        return self.root / f"{safe}.json"

    async def get(self, key: str) -> Optional[Raw]:
        path = self._path(key)
        try:
            if not path.exists():
                return None
            return path.read_bytes()
        except OSError as exc:
            raise StorageUnavailable(f"cannot read {path}: {exc}") from exc

    async def set(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            tmp.write_text(value, encoding="utf-8")
            tmp.replace(path)
        except OSError as exc:
            raise StorageUnavailable(f"cannot write {path}: {exc}") from exc

    async def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageUnavailable(f"cannot delete {key}: {exc}") from exc


class RedisBackend:
    """Shared storage so several processes (tabs) see the same identity."""

    def __init__(self, r: Redis) -> None:
        self.r = r

    async def get(self, key: str) -> Optional[Raw]:
        try:
            return await self.r.get(key)
        except RedisError as exc:
            raise StorageUnavailable(str(exc)) from exc

    async def set(self, key: str, value: str) -> None:
        try:
            await self.r.set(key, value)
        except RedisError as exc:
            raise StorageUnavailable(str(exc)) from exc

    async def delete(self, key: str) -> None:
        try:
            await self.r.delete(key)
        except RedisError as exc:
            raise StorageUnavailable(str(exc)) from exc


def make_backend(settings: Settings) -> KeyValueBackend:
    kind = settings.STORAGE_BACKEND
    if kind == "memory":
        return MemoryBackend()
    if kind == "redis":
        return RedisBackend(Redis.from_url(settings.REDIS_URL, decode_responses=False))
    if kind == "file":
        return FileBackend(settings.STORAGE_DIR)
    raise ValueError(f"Unknown STORAGE_BACKEND: {kind}")
