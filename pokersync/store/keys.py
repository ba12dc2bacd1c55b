from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SK:
    """
    Storage key builder for the locally persisted records.
    Each record is an independent JSON value.
    """
    prefix: str = "esteemed"

    def identity(self) -> str:
        return f"{self.prefix}_identity"  # JSON UserIdentity

    def room_participants(self) -> str:
        return f"{self.prefix}_room_participants"  # JSON room -> participant id

    def room_visits(self) -> str:
        return f"{self.prefix}_room_visits"  # JSON room -> last visited (epoch ms)