# pokersync/transport/protocols.py
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from pokersync.domain.types import CARD_PRESETS, ROOM_STATES, CardPreset, RoomState


# =========================
# Enum helpers
# =========================
# The remote speaks Connect JSON: enums arrive as "ROOM_STATE_VOTING", as the
# bare name, or as the proto number.

def _enum_from_wire(value: Any, prefix: str, names: tuple, default: str) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        # 0 is UNSPECIFIED
        if 1 <= value <= len(names):
            return names[value - 1]
        return default
    if isinstance(value, str):
        v = value.strip().upper()
        if v.startswith(prefix):
            v = v[len(prefix):]
        if v in names:
            return v
        if v in ("", "UNSPECIFIED"):
            return default
    raise ValueError(f"Unknown enum value: {value!r}")


def room_state_from_wire(value: Any) -> RoomState:
    return _enum_from_wire(value, "ROOM_STATE_", ROOM_STATES, "WAITING")  # type: ignore[return-value]


def card_preset_from_wire(value: Any) -> CardPreset:
    return _enum_from_wire(value, "CARD_PRESET_", CARD_PRESETS, "FIBONACCI")  # type: ignore[return-value]


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python; unknown fields ignored."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"kind"})


# =========================
# Room data
# =========================

class Card(WireModel):
    value: str
    numeric_value: int = 0
    is_numeric: bool = False


class CardConfig(WireModel):
    preset: CardPreset = "FIBONACCI"
    cards: List[Card] = Field(default_factory=list)

    @field_validator("preset", mode="before")
    @classmethod
    def _preset(cls, v: Any) -> CardPreset:
        return card_preset_from_wire(v)

    @field_serializer("preset")
    def _preset_out(self, v: CardPreset) -> str:
        return f"CARD_PRESET_{v}"


class Participant(WireModel):
    id: str
    name: str = ""
    is_host: bool = False
    is_spectator: bool = False
    is_connected: bool = True
    joined_at: int = 0


class Room(WireModel):
    id: str
    name: str = ""  # durable name used in room URLs
    participants: List[Participant] = Field(default_factory=list)
    state: RoomState = "WAITING"
    current_topic: str = ""
    card_config: Optional[CardConfig] = None
    created_at: int = 0

    @field_validator("state", mode="before")
    @classmethod
    def _state(cls, v: Any) -> RoomState:
        return room_state_from_wire(v)

    @property
    def display_name(self) -> str:
        return self.name or self.id


# =========================
# Vote data
# =========================

class Vote(WireModel):
    participant_id: str
    participant_name: str = ""
    value: str = ""
    has_voted: bool = True

    @field_validator("value", mode="before")
    @classmethod
    def _value(cls, v: Any) -> str:
        return "" if v is None else str(v)


class VoteSummary(WireModel):
    """Computed by the remote; never recomputed locally."""
    votes: List[Vote] = Field(default_factory=list)
    average: Any = None
    mode: Any = None
    has_consensus: bool = False


# =========================
# Unary responses
# =========================

class JoinRoomResponse(WireModel):
    room: Optional[Room] = None
    participant_id: str = ""
    session_token: str = ""


# CreateRoom answers with the same shape
CreateRoomResponse = JoinRoomResponse


class GetRoomResponse(WireModel):
    room: Optional[Room] = None


class RevealVotesResponse(WireModel):
    summary: Optional[VoteSummary] = None


# =========================
# Room events (WatchRoom)
# =========================

class ParticipantJoined(WireModel):
    kind: Literal["participantJoined"] = "participantJoined"
    participant: Participant


class ParticipantLeft(WireModel):
    kind: Literal["participantLeft"] = "participantLeft"
    participant_id: str


class HostChanged(WireModel):
    kind: Literal["hostChanged"] = "hostChanged"
    new_host_id: str


class StateChanged(WireModel):
    kind: Literal["stateChanged"] = "stateChanged"
    new_state: RoomState

    @field_validator("new_state", mode="before")
    @classmethod
    def _state(cls, v: Any) -> RoomState:
        return room_state_from_wire(v)


class TopicChanged(WireModel):
    kind: Literal["topicChanged"] = "topicChanged"
    topic: str = ""


class RoomClosed(WireModel):
    kind: Literal["roomClosed"] = "roomClosed"
    reason: str = ""


RoomEvent = Union[
    ParticipantJoined,
    ParticipantLeft,
    HostChanged,
    StateChanged,
    TopicChanged,
    RoomClosed,
]


# =========================
# Vote events (WatchVotes)
# =========================

class VoteCast(WireModel):
    kind: Literal["voteCast"] = "voteCast"
    participant_id: str
    participant_name: str = ""


class VotesRevealed(WireModel):
    kind: Literal["votesRevealed"] = "votesRevealed"
    summary: Optional[VoteSummary] = None


class RoundReset(WireModel):
    kind: Literal["roundReset"] = "roundReset"


VoteEvent = Union[VoteCast, VotesRevealed, RoundReset]


# =========================
# Parser helpers
# =========================

_ROOM_EVENTS_BY_CASE = {
    "participantJoined": ParticipantJoined,
    "participantLeft": ParticipantLeft,
    "hostChanged": HostChanged,
    "stateChanged": StateChanged,
    "topicChanged": TopicChanged,
    "roomClosed": RoomClosed,
}

_VOTE_EVENTS_BY_CASE = {
    "voteCast": VoteCast,
    "votesRevealed": VotesRevealed,
    "roundReset": RoundReset,
}


def _parse_oneof(payload: Dict[str, Any], by_case: Dict[str, type]) -> Any:
    """
    Accepts the Connect JSON oneof shape {"participantLeft": {...}} and the
    tagged shape {"event": {"case": "participantLeft", "value": {...}}}.
    Raises ValueError (pydantic ValidationError included) if invalid.
    """
    if not isinstance(payload, dict):
        raise ValueError("Event payload must be an object")

    tagged = payload.get("event")
    if isinstance(tagged, dict) and isinstance(tagged.get("case"), str):
        case, value = tagged["case"], tagged.get("value") or {}
    else:
        known = [k for k in payload if k in by_case]
        if len(known) != 1:
            raise ValueError(f"Unknown event: {sorted(payload)}")
        case = known[0]
        value = payload[case] or {}

    cls = by_case.get(case)
    if cls is None:
        raise ValueError(f"Unknown event type: {case}")
    return cls.model_validate(value)


def parse_room_event(payload: Dict[str, Any]) -> RoomEvent:
    return _parse_oneof(payload, _ROOM_EVENTS_BY_CASE)


def parse_vote_event(payload: Dict[str, Any]) -> VoteEvent:
    return _parse_oneof(payload, _VOTE_EVENTS_BY_CASE)
