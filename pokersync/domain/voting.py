from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from pokersync.settings import Settings, get_settings
from pokersync.transport.protocols import Participant, RoundReset, VoteCast, VoteEvent, VotesRevealed, VoteSummary
from pokersync.transport.rpc import EstimationServiceClient, RpcError
from pokersync.transport.stream import ReconnectingStream

if TYPE_CHECKING:
    from pokersync.domain.room import RoomSyncEngine, RoomSyncState

LOGGER = logging.getLogger(__name__)


class VoteStatus(BaseModel):
    participant_id: str
    participant_name: str = ""
    has_voted: bool = False


class VotingState(BaseModel):
    vote_statuses: List[VoteStatus] = Field(default_factory=list)
    summary: Optional[VoteSummary] = None
    current_vote: Optional[str] = None
    is_revealed: bool = False
    is_connected: bool = False
    is_loading: bool = False
    error: Optional[str] = None


def reset_votes(state: VotingState) -> VotingState:
    """Start-of-round state: nobody has voted, nothing revealed."""
    return state.model_copy(
        update={
            "vote_statuses": [v.model_copy(update={"has_voted": False}) for v in state.vote_statuses],
            "summary": None,
            "current_vote": None,
            "is_revealed": False,
        }
    )


def apply_vote_event(state: VotingState, event: VoteEvent) -> VotingState:
    if isinstance(event, VoteCast):
        # Only who voted is broadcast; the value stays secret until reveal
        statuses = list(state.vote_statuses)
        for i, v in enumerate(statuses):
            if v.participant_id == event.participant_id:
                statuses[i] = v.model_copy(update={"has_voted": True})
                break
        else:
            statuses.append(
                VoteStatus(
                    participant_id=event.participant_id,
                    participant_name=event.participant_name,
                    has_voted=True,
                )
            )
        return state.model_copy(update={"vote_statuses": statuses, "error": None})

    if isinstance(event, VotesRevealed):
        return state.model_copy(update={"summary": event.summary, "is_revealed": True, "error": None})

    if isinstance(event, RoundReset):
        return reset_votes(state).model_copy(update={"error": None})

    return state


def vote_progress(vote_statuses: Sequence[VoteStatus], participants: Sequence[Participant]) -> Tuple[int, int]:
    """(voted_count, total_voters); spectators never count as voters."""
    voted = sum(1 for v in vote_statuses if v.has_voted)
    total = sum(1 for p in participants if not p.is_spectator)
    return voted, total


class VotingSyncEngine:
    """Vote participation and reveal results for a room we already joined."""

    def __init__(
        self,
        estimation: EstimationServiceClient,
        *,
        room_id: Optional[str],
        participant_id: Optional[str],
        session_token: Optional[str],
        is_host: bool = False,
        settings: Optional[Settings] = None,
    ) -> None:
        self.estimation = estimation
        self.room_id = room_id
        self.participant_id = participant_id
        self.session_token = session_token
        self.is_host = is_host
        self.settings = settings or get_settings()
        self._state = VotingState()
        self._stream: Optional[ReconnectingStream] = None
        self._stream_error: Optional[str] = None
        self._unbind: Optional[Callable[[], None]] = None

    @classmethod
    def from_room(
        cls,
        room: "RoomSyncEngine",
        estimation: Optional[EstimationServiceClient] = None,
        *,
        settings: Optional[Settings] = None,
    ) -> "VotingSyncEngine":
        """Build from the room engine's identifiers and follow its host flag."""
        s = room.state
        engine = cls(
            estimation or room.estimation,
            room_id=s.room.id if s.room else None,
            participant_id=s.current_participant_id,
            session_token=s.session_token,
            is_host=s.is_host,
            settings=settings or room.settings,
        )
        engine._unbind = room.subscribe(engine._on_room_state)
        return engine

    def _on_room_state(self, room_state: "RoomSyncState") -> None:
        if self.room_id is None:
            # Built before the room engine had a room: adopt the first one
            if room_state.room is not None:
                self.room_id = room_state.room.id
                self.participant_id = room_state.current_participant_id
                self.session_token = room_state.session_token
                self.is_host = room_state.is_host
            return
        if room_state.room is None or room_state.room.id != self.room_id:
            self.stop()
            return
        self.is_host = room_state.is_host

    # ----------------------------
    # Read side
    # ----------------------------
    @property
    def state(self) -> VotingState:
        return self._state.model_copy(deep=True)

    @property
    def stream(self) -> Optional[ReconnectingStream]:
        return self._stream

    def _update(self, **fields) -> None:
        self._state = self._state.model_copy(update=fields)

    def _actor(self) -> Optional[Tuple[str, str, str]]:
        if not self.room_id or not self.participant_id or not self.session_token:
            return None
        return self.room_id, self.participant_id, self.session_token

    # ----------------------------
    # Stream
    # ----------------------------
    def start(self) -> None:
        if self._stream is not None or not self.room_id or not self.session_token:
            return
        room_id, token = self.room_id, self.session_token
        self._stream = ReconnectingStream(
            lambda: self.estimation.watch_votes(room_id, token),
            self._on_event,
            on_status=self._on_stream_status,
            floor_ms=self.settings.RETRY_FLOOR_MS,
            cap_ms=self.settings.RETRY_CAP_MS,
            name=f"votes:{room_id}",
        )
        self._stream.start()

    def stop(self) -> None:
        if self._unbind is not None:
            self._unbind()
            self._unbind = None
        if self._stream is not None:
            self._stream.cancel()
            self._stream = None
        self._state = VotingState()

    def _on_event(self, event: VoteEvent) -> None:
        self._state = apply_vote_event(self._state, event)

    def _on_stream_status(self, connected: bool, error: Optional[str]) -> None:
        if connected:
            # Action errors outlive a reconnect; only the stream's own error is cleared
            keep = None if self._state.error == self._stream_error else self._state.error
            self._stream_error = None
            self._update(is_connected=True, error=keep)
        else:
            self._stream_error = error
            self._update(is_connected=False, error=error or self._state.error)

    # ----------------------------
    # Actions
    # ----------------------------
    async def cast_vote(self, value: str) -> None:
        """Last call wins; other clients only learn that we voted."""
        actor = self._actor()
        if actor is None:
            return
        self._update(is_loading=True, error=None)
        try:
            await self.estimation.cast_vote(*actor, value)
        except RpcError as exc:
            self._update(is_loading=False, error=str(exc))
            return
        self._update(current_vote=value, is_loading=False)

    async def reveal_votes(self) -> None:
        actor = self._actor()
        if actor is None or not self.is_host:
            return
        self._update(is_loading=True, error=None)
        try:
            response = await self.estimation.reveal_votes(*actor)
        except RpcError as exc:
            self._update(is_loading=False, error=str(exc))
            return
        self._update(summary=response.summary, is_revealed=True, is_loading=False)

    async def reset_round(self) -> None:
        actor = self._actor()
        if actor is None or not self.is_host:
            return
        self._update(is_loading=True, error=None)
        try:
            await self.estimation.reset_round(*actor)
        except RpcError as exc:
            self._update(is_loading=False, error=str(exc))
            return
        self._state = reset_votes(self._state).model_copy(update={"is_loading": False})
