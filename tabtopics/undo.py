"""Bounded log of mutating actions, newest last."""
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Dict, Iterable, List, Optional

TAB_ADDED = "tab_added"
GROUP_CREATED = "group_created"

UNDO_LIMIT = 10


@dataclass
class Action:
    kind: str
    tab_ids: List[int]
    group_id: Optional[int] = None
    label: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "Action":
        return cls(
            kind=data["kind"],
            tab_ids=[int(t) for t in data.get("tab_ids", [])],
            group_id=data.get("group_id"),
            label=data.get("label"),
            timestamp=data.get("timestamp") or time.time(),
        )


class UndoLog:
    """Ring buffer of the last `limit` actions; older ones fall off."""

    def __init__(self, actions: Iterable[Action] = (), limit: int = UNDO_LIMIT) -> None:
        self._actions = deque(actions, maxlen=limit)

    def __len__(self) -> int:
        return len(self._actions)

    def record(self, action: Action) -> None:
        self._actions.append(action)

    def peek(self) -> Optional[Action]:
        return self._actions[-1] if self._actions else None

    def pop(self) -> Optional[Action]:
        return self._actions.pop() if self._actions else None

    def to_list(self) -> List[Dict]:
        return [a.to_dict() for a in self._actions]

    @classmethod
    def from_list(cls, data: Iterable[Dict], limit: int = UNDO_LIMIT) -> "UndoLog":
        return cls((Action.from_dict(d) for d in data), limit=limit)
