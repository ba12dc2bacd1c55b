from __future__ import annotations

import random
from typing import Optional

ADJECTIVES = [
    "brave", "clever", "happy", "swift", "calm", "bold", "bright", "quick", "gentle", "kind",
    "wise", "cool", "epic", "fancy", "grand", "jolly", "keen", "lucky", "merry", "noble",
    "proud", "quiet", "rapid", "sharp", "smart", "sunny", "super", "tiny", "vast", "warm",
]

ANIMALS = [
    "falcon", "dolphin", "penguin", "tiger", "eagle", "panda", "koala", "otter", "fox", "owl",
    "wolf", "bear", "hawk", "lynx", "raven", "shark", "whale", "seal", "deer", "hare",
    "crane", "finch", "gecko", "ibis", "jay", "kiwi", "lemur", "moose", "newt", "ocelot",
]


def generate_participant_name(rng: Optional[random.Random] = None) -> str:
    """Return a name like "Brave Falcon"."""
    rng = rng or random
    return f"{rng.choice(ADJECTIVES).capitalize()} {rng.choice(ANIMALS).capitalize()}"
