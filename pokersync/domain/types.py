from __future__ import annotations

from typing import Literal

RoomState = Literal["WAITING", "VOTING", "REVEALED"]
CardPreset = Literal["FIBONACCI", "MODIFIED_FIBONACCI", "TSHIRT", "POWERS_OF_TWO", "LINEAR", "CUSTOM"]

ROOM_STATES: tuple[RoomState, ...] = ("WAITING", "VOTING", "REVEALED")
CARD_PRESETS: tuple[CardPreset, ...] = (
    "FIBONACCI",
    "MODIFIED_FIBONACCI",
    "TSHIRT",
    "POWERS_OF_TWO",
    "LINEAR",
    "CUSTOM",
)

QUESTION_CARD = "?"
COFFEE_CARD = "☕"
