import pytest

from pokersync.transport.protocols import (
    HostChanged,
    ParticipantJoined,
    RoomClosed,
    RoundReset,
    StateChanged,
    VoteCast,
    VotesRevealed,
    JoinRoomResponse,
    parse_room_event,
    parse_vote_event,
)


def test_parse_room_event_oneof_shape():
    ev = parse_room_event(
        {"participantJoined": {"participant": {"id": "p1", "name": "Ada", "isHost": True, "joinedAt": "1700"}}}
    )
    assert isinstance(ev, ParticipantJoined)
    assert ev.participant.is_host is True
    assert ev.participant.joined_at == 1700

    assert isinstance(parse_room_event({"hostChanged": {"newHostId": "p2"}}), HostChanged)
    assert parse_room_event({"roomClosed": {"reason": "idle"}}) == RoomClosed(reason="idle")


def test_parse_room_event_tagged_shape():
    ev = parse_room_event({"event": {"case": "stateChanged", "value": {"newState": 2}}})
    assert isinstance(ev, StateChanged)
    assert ev.new_state == "VOTING"


@pytest.mark.parametrize("wire", ["ROOM_STATE_REVEALED", "REVEALED", 3])
def test_room_state_enum_forms(wire):
    assert parse_room_event({"stateChanged": {"newState": wire}}).new_state == "REVEALED"


def test_parse_unknown_event():
    with pytest.raises(ValueError):
        parse_room_event({"somethingElse": {}})
    with pytest.raises(ValueError):
        parse_room_event({"event": {"case": "bogus", "value": {}}})
    with pytest.raises(ValueError):
        parse_room_event({"stateChanged": {"newState": "EXPLODED"}})


def test_parse_vote_events():
    assert isinstance(parse_vote_event({"voteCast": {"participantId": "p1"}}), VoteCast)
    assert isinstance(parse_vote_event({"roundReset": {}}), RoundReset)
    revealed = parse_vote_event(
        {
            "votesRevealed": {
                "summary": {
                    "votes": [{"participantId": "p1", "participantName": "A", "value": 5}],
                    "average": 5,
                    "hasConsensus": True,
                }
            }
        }
    )
    assert isinstance(revealed, VotesRevealed)
    assert revealed.summary.votes[0].value == "5"
    assert revealed.summary.has_consensus is True


def test_join_response_ignores_unknown_fields():
    resp = JoinRoomResponse.model_validate(
        {
            "room": {"id": "r1", "name": "calm-otter", "state": "ROOM_STATE_WAITING", "extra": 1,
                     "cardConfig": {"preset": "CARD_PRESET_TSHIRT", "cards": []}},
            "participantId": "p1",
        }
    )
    assert resp.room.state == "WAITING"
    assert resp.room.card_config.preset == "TSHIRT"
    assert resp.participant_id == "p1"
