"""Color choice for newly created topic groups."""
import hashlib
import random
from typing import Callable, List, Optional

PALETTE = ["blue", "red", "yellow", "green", "pink", "purple", "cyan", "orange"]

ColorPolicy = Callable[[str], str]


class RandomColors:
    def __init__(self, seed: Optional[int] = None, palette: Optional[List[str]] = None) -> None:
        self.palette = palette or PALETTE
        self._rng = random.Random(seed)

    def __call__(self, label: str) -> str:
        return self._rng.choice(self.palette)


class RoundRobinColors:
    def __init__(self, palette: Optional[List[str]] = None) -> None:
        self.palette = palette or PALETTE
        self._next = 0

    def __call__(self, label: str) -> str:
        color = self.palette[self._next % len(self.palette)]
        self._next += 1
        return color


class LabelHashColors:
    """Same label, same color, across runs and machines."""

    def __init__(self, palette: Optional[List[str]] = None) -> None:
        self.palette = palette or PALETTE

    def __call__(self, label: str) -> str:
        digest = hashlib.md5(label.lower().encode("utf-8")).digest()
        return self.palette[int.from_bytes(digest[:8], "big") % len(self.palette)]


COLOR_POLICIES = {
    "random": RandomColors,
    "round_robin": RoundRobinColors,
    "hash": LabelHashColors,
}


def color_policy(name: str) -> ColorPolicy:
    try:
        return COLOR_POLICIES[name]()
    except KeyError:
        raise ValueError(f"Unknown color policy {name!r}; choose from {', '.join(COLOR_POLICIES)}") from None
