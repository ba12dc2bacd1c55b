"""
Room and Estimation service clients.

Unary calls are JSON POSTs to ``/<package>.<Service>/<Method>``; server
streams answer with newline-delimited JSON frames ``{"result": {...}}``.
"""
from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Callable, Dict, Optional, Union

import httpx
from pydantic import ValidationError

from pokersync.settings import Settings
from pokersync.transport.protocols import (
    CardConfig,
    CreateRoomResponse,
    GetRoomResponse,
    JoinRoomResponse,
    RevealVotesResponse,
    RoomEvent,
    VoteEvent,
    parse_room_event,
    parse_vote_event,
)
from pokersync.transport.stream import STREAM_OPEN

LOGGER = logging.getLogger(__name__)

_HEADERS = {
    "Content-Type": "application/json",
    "Connect-Protocol-Version": "1",
}


class RpcError(Exception):
    """A remote call failed: bad status, error frame, or transport failure."""

    def __init__(self, message: str, *, code: str = "unknown", status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


def _error_from_response(status_code: int, body: bytes, reason: str) -> RpcError:
    code, message = "unknown", ""
    try:
        parsed = json.loads(body.decode("utf-8")) if body else None
    except (UnicodeDecodeError, json.JSONDecodeError):
        parsed = None
    if isinstance(parsed, dict):
        code = str(parsed.get("code") or code)
        message = str(parsed.get("message") or "")
    return RpcError(message or f"{status_code}: {reason}", code=code, status_code=status_code)


def make_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.API_BASE_URL,
        timeout=settings.REQUEST_TIMEOUT_SEC,
        headers={"User-Agent": settings.APP_NAME},
    )


class _ServiceClient:
    service = ""

    def __init__(self, http: httpx.AsyncClient, *, package: str = "esteemed.v1") -> None:
        self.http = http
        self.package = package

    def _path(self, method: str) -> str:
        return f"/{self.package}.{self.service}/{method}"

    async def _unary(self, method: str, request: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self.http.post(self._path(method), json=request, headers=_HEADERS)
        except httpx.HTTPError as exc:
            raise RpcError(f"{method} failed: {exc}", code="unavailable") from exc

        if response.status_code >= 400:
            raise _error_from_response(response.status_code, response.content, response.reason_phrase)
        if not response.content:
            return {}
        try:
            payload = response.json()
        except json.JSONDecodeError as exc:
            raise RpcError(f"{method} returned invalid JSON", code="internal") from exc
        return payload if isinstance(payload, dict) else {}

    async def _stream(
        self,
        method: str,
        request: Dict[str, Any],
        parse: Callable[[Dict[str, Any]], Any],
    ) -> AsyncIterator[Any]:
        """
        Yields STREAM_OPEN once headers arrive, then one parsed event per frame.
        Malformed and unknown frames are skipped.
        """
        headers = dict(_HEADERS, **{"Connect-Accept-Encoding": "identity"})
        timeout = httpx.Timeout(self.http.timeout.connect, read=None)
        try:
            async with self.http.stream(
                "POST", self._path(method), json=request, headers=headers, timeout=timeout
            ) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    raise _error_from_response(response.status_code, body, response.reason_phrase)
                yield STREAM_OPEN

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        frame = json.loads(line)
                    except json.JSONDecodeError:
                        LOGGER.debug("%s: skipping invalid frame %r", method, line[:200])
                        continue
                    if not isinstance(frame, dict):
                        continue
                    error = frame.get("error")
                    if isinstance(error, dict):
                        raise RpcError(
                            str(error.get("message") or "stream error"),
                            code=str(error.get("code") or "unknown"),
                        )
                    result = frame.get("result")
                    if not isinstance(result, dict):
                        continue
                    try:
                        yield parse(result)
                    except ValueError as exc:
                        LOGGER.debug("%s: skipping unknown event: %s", method, exc)
        except httpx.HTTPError as exc:
            raise RpcError(f"{method} stream failed: {exc}", code="unavailable") from exc


class RoomServiceClient(_ServiceClient):
    service = "RoomService"

    async def create_room(
        self, host_name: str, session_token: str, card_config: Optional[CardConfig] = None
    ) -> CreateRoomResponse:
        request: Dict[str, Any] = {"hostName": host_name, "sessionToken": session_token}
        if card_config is not None:
            request["cardConfig"] = card_config.to_wire()
        return _validate(CreateRoomResponse, await self._unary("CreateRoom", request))

    async def join_room(
        self, room_id: str, participant_name: str, session_token: str, is_spectator: bool = False
    ) -> JoinRoomResponse:
        request = {
            "roomId": room_id,
            "participantName": participant_name,
            "sessionToken": session_token,
            "isSpectator": is_spectator,
        }
        return _validate(JoinRoomResponse, await self._unary("JoinRoom", request))

    async def leave_room(self, room_id: str, participant_id: str, session_token: str) -> None:
        await self._unary(
            "LeaveRoom",
            {"roomId": room_id, "participantId": participant_id, "sessionToken": session_token},
        )

    async def get_room(self, room_id: str) -> GetRoomResponse:
        return _validate(GetRoomResponse, await self._unary("GetRoom", {"roomId": room_id}))

    async def kick_participant(
        self, room_id: str, participant_id: str, session_token: str, target_participant_id: str
    ) -> None:
        await self._unary(
            "KickParticipant",
            {
                "roomId": room_id,
                "participantId": participant_id,
                "sessionToken": session_token,
                "targetParticipantId": target_participant_id,
            },
        )

    async def transfer_ownership(
        self, room_id: str, participant_id: str, session_token: str, new_host_id: str
    ) -> None:
        await self._unary(
            "TransferOwnership",
            {
                "roomId": room_id,
                "participantId": participant_id,
                "sessionToken": session_token,
                "newHostId": new_host_id,
            },
        )

    def watch_room(self, room_id: str, session_token: str) -> AsyncIterator[Union[RoomEvent, object]]:
        return self._stream("WatchRoom", {"roomId": room_id, "sessionToken": session_token}, parse_room_event)


class EstimationServiceClient(_ServiceClient):
    service = "EstimationService"

    def _actor(self, room_id: str, participant_id: str, session_token: str) -> Dict[str, Any]:
        return {"roomId": room_id, "participantId": participant_id, "sessionToken": session_token}

    async def start_round(self, room_id: str, participant_id: str, session_token: str) -> None:
        await self._unary("StartRound", self._actor(room_id, participant_id, session_token))

    async def cast_vote(self, room_id: str, participant_id: str, session_token: str, value: str) -> None:
        request = self._actor(room_id, participant_id, session_token)
        request["value"] = value
        await self._unary("CastVote", request)

    async def reveal_votes(self, room_id: str, participant_id: str, session_token: str) -> RevealVotesResponse:
        payload = await self._unary("RevealVotes", self._actor(room_id, participant_id, session_token))
        return _validate(RevealVotesResponse, payload)

    async def reset_round(self, room_id: str, participant_id: str, session_token: str) -> None:
        await self._unary("ResetRound", self._actor(room_id, participant_id, session_token))

    async def set_topic(self, room_id: str, participant_id: str, session_token: str, topic: str) -> None:
        request = self._actor(room_id, participant_id, session_token)
        request["topic"] = topic
        await self._unary("SetTopic", request)

    def watch_votes(self, room_id: str, session_token: str) -> AsyncIterator[Union[VoteEvent, object]]:
        return self._stream("WatchVotes", {"roomId": room_id, "sessionToken": session_token}, parse_vote_event)


def _validate(model, payload: Dict[str, Any]):
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise RpcError(f"Unexpected response: {exc.error_count()} invalid field(s)", code="internal") from exc
