from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from pokersync.domain.types import COFFEE_CARD, QUESTION_CARD, CardPreset
from pokersync.transport.protocols import Card, CardConfig

MIN_CARDS = 2
MAX_CARDS = 15
MAX_CARD_LENGTH = 10

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_INTEGER = re.compile(r"-?\d+")


def _deck(*values: Tuple[str, int, bool]) -> List[Card]:
    return [Card(value=v, numeric_value=n, is_numeric=numeric) for v, n, numeric in values]


_SPECIALS = ((QUESTION_CARD, 0, False), (COFFEE_CARD, 0, False))

PRESET_DECKS: Dict[CardPreset, List[Card]] = {
    "FIBONACCI": _deck(*((str(n), n, True) for n in (1, 2, 3, 5, 8, 13, 21)), *_SPECIALS),
    "MODIFIED_FIBONACCI": _deck(*((str(n), n, True) for n in (0, 1, 2, 3, 5, 8, 13, 20, 40, 100)), *_SPECIALS),
    "TSHIRT": _deck(("XS", 1, False), ("S", 2, False), ("M", 3, False), ("L", 5, False), ("XL", 8, False), *_SPECIALS),
    "POWERS_OF_TWO": _deck(*((str(n), n, True) for n in (1, 2, 4, 8, 16, 32)), *_SPECIALS),
    "LINEAR": _deck(*((str(n), n, True) for n in range(1, 11)), *_SPECIALS),
}


@dataclass
class CardParseResult:
    cards: List[Card] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def classify_card(value: str) -> Card:
    """Numeric when the token is an integer; "?" and the coffee cup never are."""
    if value not in (QUESTION_CARD, COFFEE_CARD) and _INTEGER.fullmatch(value):
        return Card(value=value, numeric_value=int(value), is_numeric=True)
    return Card(value=value, numeric_value=0, is_numeric=False)


def parse_custom_cards(text: str) -> CardParseResult:
    """
    Parse comma-separated card values.
    Blank tokens are skipped and repeated values collapse to the first one.
    """
    if not (text or "").strip():
        return CardParseResult(error="Enter at least 2 card values")

    seen: set[str] = set()
    cards: List[Card] = []
    for part in text.split(","):
        value = _CONTROL_CHARS.sub("", part.strip())
        if not value:
            continue
        if len(value) > MAX_CARD_LENGTH:
            return CardParseResult(error=f'Card "{value}" is too long (max {MAX_CARD_LENGTH} chars)')
        if value in seen:
            continue
        seen.add(value)
        cards.append(classify_card(value))

    if len(cards) < MIN_CARDS:
        return CardParseResult(error=f"At least {MIN_CARDS} cards are required")
    if len(cards) > MAX_CARDS:
        return CardParseResult(error=f"Maximum {MAX_CARDS} cards allowed")
    return CardParseResult(cards=cards)


def preset_cards(preset: CardPreset) -> List[Card]:
    deck = PRESET_DECKS.get(preset, PRESET_DECKS["FIBONACCI"])
    return [c.model_copy() for c in deck]


def preset_card_config(preset: CardPreset) -> CardConfig:
    if preset == "CUSTOM":
        raise ValueError("CUSTOM has no preset deck; use custom_card_config()")
    return CardConfig(preset=preset, cards=preset_cards(preset))


def custom_card_config(cards: List[Card]) -> CardConfig:
    return CardConfig(preset="CUSTOM", cards=list(cards))


def default_card_config() -> CardConfig:
    return preset_card_config("FIBONACCI")
