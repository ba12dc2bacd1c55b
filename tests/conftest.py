import asyncio

import pytest

from pokersync.settings import Settings
from pokersync.store.backends import MemoryBackend
from pokersync.store.identity import IdentityStore
from pokersync.transport.protocols import JoinRoomResponse, Participant, RevealVotesResponse, Room, VoteSummary
from pokersync.transport.rpc import RpcError
from pokersync.transport.stream import STREAM_OPEN

END = object()


class EventFeed:
    """Scripted server stream. Push events; ``drain()`` returns once all were handled."""

    def __init__(self):
        self.queue = asyncio.Queue()
        self.opened = 0

    async def stream(self):
        self.opened += 1
        yield STREAM_OPEN
        while True:
            item = await self.queue.get()
            try:
                if item is END:
                    return
                yield item
            finally:
                self.queue.task_done()

    async def push(self, *events):
        for e in events:
            self.queue.put_nowait(e)
        await self.drain()

    async def drain(self):
        await asyncio.wait_for(self.queue.join(), timeout=2)


def make_participant(pid, name=None, **fields):
    return Participant(id=pid, name=name or pid.upper(), **fields)


def make_room(*participants, state="WAITING", rid="r-1", name="brave-falcon-42"):
    return Room(id=rid, name=name, participants=list(participants), state=state)


class FakeRoomClient:
    def __init__(self):
        self.calls = []
        self.feed = EventFeed()
        self.room = make_room(make_participant("host", is_host=True))
        self.participant_id = "host"
        self.fail_with = None

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    async def create_room(self, host_name, session_token, card_config=None):
        self.calls.append(("create_room", host_name, session_token, card_config))
        self._maybe_fail()
        return JoinRoomResponse(room=self.room, participant_id=self.participant_id, session_token=session_token)

    async def join_room(self, room_id, participant_name, session_token, is_spectator=False):
        self.calls.append(("join_room", room_id, participant_name, session_token, is_spectator))
        self._maybe_fail()
        return JoinRoomResponse(room=self.room, participant_id=self.participant_id, session_token=session_token)

    async def leave_room(self, room_id, participant_id, session_token):
        self.calls.append(("leave_room", room_id, participant_id, session_token))
        self._maybe_fail()

    async def get_room(self, room_id):
        self.calls.append(("get_room", room_id))
        self._maybe_fail()
        return type("GetRoomResponse", (), {"room": self.room})()

    async def kick_participant(self, room_id, participant_id, session_token, target_participant_id):
        self.calls.append(("kick_participant", target_participant_id))
        self._maybe_fail()

    async def transfer_ownership(self, room_id, participant_id, session_token, new_host_id):
        self.calls.append(("transfer_ownership", new_host_id))
        self._maybe_fail()

    def watch_room(self, room_id, session_token):
        self.calls.append(("watch_room", room_id, session_token))
        return self.feed.stream()


class FakeEstimationClient:
    def __init__(self):
        self.calls = []
        self.feed = EventFeed()
        self.votes = {}
        self.names = {}
        self.fail_with = None

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    async def start_round(self, room_id, participant_id, session_token):
        self.calls.append(("start_round", participant_id))
        self._maybe_fail()

    async def cast_vote(self, room_id, participant_id, session_token, value):
        self.calls.append(("cast_vote", participant_id, value))
        self._maybe_fail()
        self.votes[participant_id] = value

    async def reveal_votes(self, room_id, participant_id, session_token):
        self.calls.append(("reveal_votes", participant_id))
        self._maybe_fail()
        summary = VoteSummary.model_validate(
            {
                "votes": [
                    {"participantId": pid, "participantName": self.names.get(pid, pid), "value": v}
                    for pid, v in self.votes.items()
                ],
                "average": "6.5",
                "mode": None,
                "hasConsensus": len(set(self.votes.values())) == 1,
            }
        )
        return RevealVotesResponse(summary=summary)

    async def reset_round(self, room_id, participant_id, session_token):
        self.calls.append(("reset_round", participant_id))
        self._maybe_fail()
        self.votes.clear()

    async def set_topic(self, room_id, participant_id, session_token, topic):
        self.calls.append(("set_topic", topic))
        self._maybe_fail()

    def watch_votes(self, room_id, session_token):
        self.calls.append(("watch_votes", room_id, session_token))
        return self.feed.stream()


@pytest.fixture
def settings():
    return Settings(RETRY_FLOOR_MS=1, RETRY_CAP_MS=4, STORAGE_BACKEND="memory")


@pytest.fixture
def identity():
    return IdentityStore(MemoryBackend())


@pytest.fixture
def room_client():
    return FakeRoomClient()


@pytest.fixture
def estimation_client():
    return FakeEstimationClient()


@pytest.fixture
def rpc_unavailable():
    return RpcError("service unavailable", code="unavailable", status_code=503)
