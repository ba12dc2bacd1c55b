from __future__ import annotations

import logging
from typing import Callable, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field

from pokersync.settings import Settings, get_settings
from pokersync.store.identity import IdentityStore, now_ms
from pokersync.transport.protocols import (
    CardConfig,
    HostChanged,
    JoinRoomResponse,
    Participant,
    ParticipantJoined,
    ParticipantLeft,
    Room,
    RoomClosed,
    RoomEvent,
    StateChanged,
    TopicChanged,
)
from pokersync.transport.rpc import EstimationServiceClient, RoomServiceClient, RpcError
from pokersync.transport.stream import ReconnectingStream, StreamSignal

LOGGER = logging.getLogger(__name__)

REMOVED_FROM_ROOM = "You have been removed from the room"

RoomEffect = Literal["CLEAR_ROOM_PARTICIPANT", "STOP_STREAM"]
Result = Tuple["RoomSyncState", List[RoomEffect]]
Listener = Callable[["RoomSyncState"], None]


class RoomSyncState(BaseModel):
    room: Optional[Room] = None
    participants: List[Participant] = Field(default_factory=list)
    current_participant_id: Optional[str] = None
    session_token: Optional[str] = None
    is_host: bool = False
    is_spectator: bool = False
    is_connected: bool = False
    is_loading: bool = False
    error: Optional[str] = None
    # Set while our own LeaveRoom call is in flight so the echo of our
    # participantLeft is not mistaken for a kick.
    leaving: bool = False

    @property
    def room_state(self) -> Optional[str]:
        return self.room.state if self.room else None


# ----------------------------
# Event application (pure)
# ----------------------------

def _with_participants(state: RoomSyncState, participants: List[Participant], **extra) -> RoomSyncState:
    update = {"participants": participants, **extra}
    if state.room is not None:
        update["room"] = state.room.model_copy(update={"participants": participants})
    return state.model_copy(update=update)


def _torn_down(state: RoomSyncState, error: str) -> RoomSyncState:
    return state.model_copy(
        update={
            "room": None,
            "participants": [],
            "is_host": False,
            "is_spectator": False,
            "is_connected": False,
            "is_loading": False,
            "error": error,
        }
    )


def apply_room_event(state: RoomSyncState, event: RoomEvent) -> Result:
    """
    Apply one server event. Returns (new_state, effects) where effects tell
    the engine what to do outside the snapshot.
    """
    if isinstance(event, ParticipantJoined):
        joined = event.participant
        participants = list(state.participants)
        for i, p in enumerate(participants):
            if p.id == joined.id:
                participants[i] = joined
                break
        else:
            participants.append(joined)
        return _with_participants(state, participants, error=None), []

    if isinstance(event, ParticipantLeft):
        if event.participant_id == state.current_participant_id:
            if state.leaving:
                return state, []
            return _torn_down(state, REMOVED_FROM_ROOM), ["CLEAR_ROOM_PARTICIPANT", "STOP_STREAM"]
        participants = [p for p in state.participants if p.id != event.participant_id]
        return _with_participants(state, participants, error=None), []

    if isinstance(event, HostChanged):
        participants = [p.model_copy(update={"is_host": p.id == event.new_host_id}) for p in state.participants]
        is_host = state.current_participant_id is not None and state.current_participant_id == event.new_host_id
        return _with_participants(state, participants, is_host=is_host, error=None), []

    if isinstance(event, StateChanged):
        if state.room is None:
            return state, []
        room = state.room.model_copy(update={"state": event.new_state})
        return state.model_copy(update={"room": room, "error": None}), []

    if isinstance(event, TopicChanged):
        if state.room is None:
            return state, []
        room = state.room.model_copy(update={"current_topic": event.topic})
        return state.model_copy(update={"room": room, "error": None}), []

    if isinstance(event, RoomClosed):
        return _torn_down(state, f"Room closed: {event.reason}"), ["CLEAR_ROOM_PARTICIPANT", "STOP_STREAM"]

    return state, []


# ----------------------------
# Engine
# ----------------------------

class RoomSyncEngine:
    """
    Owns the local room snapshot for one client.

    Callers read ``state`` (a copy) and invoke actions; only this class
    mutates the snapshot, either from a completed action or from the room
    event stream.
    """

    def __init__(
        self,
        rooms: RoomServiceClient,
        estimation: EstimationServiceClient,
        identity: IdentityStore,
        *,
        settings: Optional[Settings] = None,
    ) -> None:
        self.rooms = rooms
        self.estimation = estimation
        self.identity = identity
        self.settings = settings or get_settings()
        self._state = RoomSyncState()
        self._stream: Optional[ReconnectingStream] = None
        self._stream_error: Optional[str] = None
        self._listeners: List[Listener] = []

    # ----------------------------
    # Read side
    # ----------------------------
    @property
    def state(self) -> RoomSyncState:
        return self._state.model_copy(deep=True)

    @property
    def stream(self) -> Optional[ReconnectingStream]:
        return self._stream

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, state: RoomSyncState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(self.state)
            except Exception:
                LOGGER.exception("Room state listener failed")

    def _update(self, **fields) -> None:
        self._commit(self._state.model_copy(update=fields))

    def _actor(self) -> Optional[Tuple[str, str, str]]:
        s = self._state
        if s.room is None or not s.current_participant_id or not s.session_token:
            return None
        return s.room.id, s.current_participant_id, s.session_token

    # ----------------------------
    # Stream
    # ----------------------------
    def _start_stream(self, room_id: str, session_token: str) -> None:
        self._stop_stream()
        self._stream = ReconnectingStream(
            lambda: self.rooms.watch_room(room_id, session_token),
            self._on_event,
            on_status=self._on_stream_status,
            floor_ms=self.settings.RETRY_FLOOR_MS,
            cap_ms=self.settings.RETRY_CAP_MS,
            name=f"room:{room_id}",
        )
        self._stream.start()

    def _stop_stream(self) -> None:
        if self._stream is not None:
            self._stream.cancel()
            self._stream = None

    async def _on_event(self, event: RoomEvent) -> Optional[StreamSignal]:
        room_key = self._state.room.name if self._state.room else None
        state, effects = apply_room_event(self._state, event)
        self._commit(state)

        if "CLEAR_ROOM_PARTICIPANT" in effects and room_key:
            await self.identity.clear_room_participant_id(room_key)
        if "STOP_STREAM" in effects:
            LOGGER.info("Left room %s: %s", room_key, state.error)
            return StreamSignal.TERMINAL
        return None

    def _on_stream_status(self, connected: bool, error: Optional[str]) -> None:
        if self._state.room is None:
            return
        if connected:
            # Clear only the error the stream itself reported
            keep = None if self._state.error == self._stream_error else self._state.error
            self._stream_error = None
            self._update(is_connected=True, error=keep)
        else:
            self._stream_error = error
            self._update(is_connected=False, error=error or self._state.error)

    # ----------------------------
    # Lifecycle
    # ----------------------------
    async def mount(self, room_identifier: str) -> bool:
        """
        Resume a previous session in this room without prompting for a name.
        Returns True if a rejoin happened.
        """
        participant_id = await self.identity.get_room_participant_id(room_identifier)
        if not participant_id:
            return False
        token = await self.identity.get_global_token()
        LOGGER.info("Rejoining %s as %s", room_identifier, participant_id)
        try:
            # Empty name: the remote reuses the existing name on reclaim
            await self._join(room_identifier, "", token, False)
        except RpcError:
            return False
        return True

    async def unmount(self) -> None:
        self._stop_stream()
        self._commit(RoomSyncState())

    # ----------------------------
    # Actions
    # ----------------------------
    def _enter(self, room: Room, participant_id: str, session_token: str, *, is_host: bool, is_spectator: bool) -> None:
        self._commit(
            RoomSyncState(
                room=room,
                participants=list(room.participants),
                current_participant_id=participant_id,
                session_token=session_token,
                is_host=is_host,
                is_spectator=is_spectator,
                is_connected=True,
            )
        )
        self._start_stream(room.id, session_token)

    async def _remember(self, room: Room, participant_id: str) -> None:
        await self.identity.save_room_participant_id(room.name, participant_id)
        await self.identity.touch_room_visit(room.name, now_ms())

    async def create_room(self, host_name: str, card_config: Optional[CardConfig] = None) -> str:
        """Create a room hosted by us. Returns the durable room name."""
        self._update(is_loading=True, error=None)
        token = await self.identity.get_global_token()
        try:
            response = await self.rooms.create_room(host_name, token, card_config)
            if response.room is None:
                raise RpcError("Failed to create room")
        except RpcError as exc:
            self._update(is_loading=False, error=str(exc))
            raise

        await self._remember(response.room, response.participant_id)
        self._enter(response.room, response.participant_id, token, is_host=True, is_spectator=False)
        return response.room.name

    async def _join(self, room_id: str, name: str, token: str, is_spectator: bool) -> None:
        self._update(is_loading=True, error=None)
        try:
            response: JoinRoomResponse = await self.rooms.join_room(room_id, name, token, is_spectator)
            if response.room is None:
                raise RpcError("Failed to join room")
        except RpcError as exc:
            self._update(is_loading=False, error=str(exc))
            raise

        room = response.room
        me = next((p for p in room.participants if p.id == response.participant_id), None)
        await self._remember(room, response.participant_id)
        self._enter(
            room,
            response.participant_id,
            token,
            is_host=me.is_host if me else False,
            is_spectator=me.is_spectator if me else False,
        )

    async def join_room(self, room_id: str, name: str, is_spectator: bool = False) -> None:
        token = await self.identity.get_global_token()
        await self._join(room_id, name, token, is_spectator)

    async def leave_room(self) -> None:
        actor = self._actor()
        if actor is None:
            return
        self._update(leaving=True)
        try:
            await self.rooms.leave_room(*actor)
        except RpcError as exc:
            LOGGER.info("Leave failed: %s", exc)
            self._update(leaving=False, error=str(exc))
            return
        # The room -> participant mapping is kept so the room can be resumed later.
        self._stop_stream()
        self._commit(RoomSyncState())

    async def start_round(self) -> None:
        actor = self._actor()
        if actor is None or not self._state.is_host:
            return
        try:
            await self.estimation.start_round(*actor)
        except RpcError as exc:
            self._update(error=str(exc))
            return
        # Provisional until the stateChanged event overwrites it
        if self._state.room is not None:
            self._update(room=self._state.room.model_copy(update={"state": "VOTING"}), error=None)

    async def kick_participant(self, target_id: str) -> None:
        actor = self._actor()
        if actor is None or not self._state.is_host:
            return
        try:
            await self.rooms.kick_participant(*actor, target_id)
        except RpcError as exc:
            self._update(error=str(exc))

    async def transfer_ownership(self, new_host_id: str) -> None:
        actor = self._actor()
        if actor is None or not self._state.is_host:
            return
        try:
            await self.rooms.transfer_ownership(*actor, new_host_id)
        except RpcError as exc:
            self._update(error=str(exc))

    async def set_topic(self, topic: str) -> None:
        actor = self._actor()
        if actor is None or not self._state.is_host:
            return
        try:
            await self.estimation.set_topic(*actor, topic.strip())
        except RpcError as exc:
            self._update(error=str(exc))

    async def refresh_room(self) -> None:
        """Replace the local room snapshot with the remote's current view."""
        if self._state.room is None:
            return
        try:
            response = await self.rooms.get_room(self._state.room.id)
        except RpcError as exc:
            self._update(error=str(exc))
            return
        if response.room is None or self._state.room is None:
            return
        me = next((p for p in response.room.participants if p.id == self._state.current_participant_id), None)
        self._update(
            room=response.room,
            participants=list(response.room.participants),
            is_host=me.is_host if me else False,
            is_spectator=me.is_spectator if me else False,
            error=None,
        )
