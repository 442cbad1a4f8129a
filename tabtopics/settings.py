"""Settings, activity history and the JSON state file that holds them."""
import json
import os
import time
from collections import deque
from dataclasses import asdict, dataclass, field, fields
from typing import Dict, List, Optional

from tabtopics.cluster import MIN_GROUP_SIZE, SIMILARITY_THRESHOLD
from tabtopics.colors import COLOR_POLICIES
from tabtopics.scan import MAX_CONCURRENT_SCANS, SCAN_TIMEOUT
from tabtopics.text import MAX_PAGE_CHARS
from tabtopics.undo import UndoLog

DEFAULT_STATE_PATH = os.path.join("data", "tabtopics_state.json")
GROUPING_MODES = ("semantic", "domain")
HISTORY_LIMIT = 10


@dataclass
class Settings:
    auto_group: bool = True
    auto_eject_on_url_change: bool = True
    grouping_mode: str = "semantic"
    similarity_threshold: float = SIMILARITY_THRESHOLD
    min_group_size: int = MIN_GROUP_SIZE
    blacklist: List[str] = field(default_factory=list)
    user_grouped_tabs: List[int] = field(default_factory=list)
    batch_size: int = MAX_CONCURRENT_SCANS
    scan_timeout: float = SCAN_TIMEOUT
    max_page_chars: int = MAX_PAGE_CHARS
    color_policy: str = "random"

    def validate(self) -> "Settings":
        if self.grouping_mode not in GROUPING_MODES:
            raise ValueError(f"grouping_mode must be one of {GROUPING_MODES}, got {self.grouping_mode!r}")
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValueError(f"similarity_threshold must be within [0, 1], got {self.similarity_threshold}")
        if self.min_group_size < 1:
            raise ValueError(f"min_group_size must be at least 1, got {self.min_group_size}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {self.batch_size}")
        if self.scan_timeout <= 0:
            raise ValueError(f"scan_timeout must be positive, got {self.scan_timeout}")
        if self.color_policy not in COLOR_POLICIES:
            raise ValueError(f"color_policy must be one of {tuple(COLOR_POLICIES)}, got {self.color_policy!r}")
        return self

    def is_blacklisted(self, host: str) -> bool:
        host = host.lower()
        return any(blocked and blocked.lower() in host for blocked in self.blacklist)

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "Settings":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known}).validate()


class History:
    """Recent activity messages, newest first."""

    def __init__(self, entries: Optional[List[Dict]] = None, limit: int = HISTORY_LIMIT) -> None:
        self.entries = deque(entries or [], maxlen=limit)

    def log(self, message: str) -> None:
        self.entries.appendleft({"time": time.strftime("%H:%M"), "msg": message})

    def messages(self) -> List[str]:
        return [e.get("msg", "") for e in self.entries]

    def to_list(self) -> List[Dict]:
        return list(self.entries)


@dataclass
class State:
    settings: Settings = field(default_factory=Settings)
    history: History = field(default_factory=History)
    undo: UndoLog = field(default_factory=UndoLog)
    # URL of every tab as of the last run, for spotting navigations.
    tab_urls: Dict[int, str] = field(default_factory=dict)


def load_state(path: Optional[str]) -> State:
    if not path or not os.path.exists(path):
        return State()
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return State(
        settings=Settings.from_dict(data.get("settings", {})),
        history=History(data.get("history", [])),
        undo=UndoLog.from_list(data.get("undo", [])),
        tab_urls={int(k): v for k, v in data.get("tab_urls", {}).items()},
    )


def save_state(path: Optional[str], state: State) -> None:
    if not path:
        return
    dir_name = os.path.dirname(path)
    if dir_name:
        os.makedirs(dir_name, exist_ok=True)
    data = {
        "settings": state.settings.to_dict(),
        "history": state.history.to_list(),
        "undo": state.undo.to_list(),
        "tab_urls": {str(k): v for k, v in state.tab_urls.items()},
    }
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
