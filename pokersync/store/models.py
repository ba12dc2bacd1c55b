from __future__ import annotations

from typing import Dict, Optional
from pydantic import BaseModel, Field


class UserIdentity(BaseModel):
    token: str
    generated_name: str
    custom_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.custom_name or self.generated_name


class RoomParticipantMap(BaseModel):
    rooms: Dict[str, str] = Field(default_factory=dict)  # room -> participant id


class RoomVisitMap(BaseModel):
    rooms: Dict[str, int] = Field(default_factory=dict)  # room -> epoch ms
