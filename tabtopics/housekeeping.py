"""Exact-URL duplicate handling and tab statistics."""
import sys
from collections import Counter
from typing import Dict, List, Optional
from urllib.parse import urlparse

from tabtopics.manager import TabManager
from tabtopics.settings import History


def normalize_host(url: str) -> str:
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""
    if host.startswith("www."):
        host = host[4:]
    return host


def find_duplicates(manager: TabManager, window_id: Optional[int] = None) -> Dict:
    if window_id is None:
        window_id = manager.current_window_id()
    by_url: Dict[str, List] = {}
    for tab in manager.list_tabs(window_id):
        if tab.url:
            by_url.setdefault(tab.url, []).append(tab)
    duplicates = [
        {
            "url": url,
            "count": len(tabs),
            "title": tabs[0].title,
            "tab_ids": [t.id for t in tabs],
        }
        for url, tabs in by_url.items()
        if len(tabs) > 1
    ]
    return {
        "duplicates": duplicates,
        "total_duplicates": sum(d["count"] - 1 for d in duplicates),
    }


def close_duplicates(manager: TabManager, history: Optional[History] = None) -> int:
    """Close every tab but the first of each duplicate set; returns how many closed."""
    closed = 0
    for dup in find_duplicates(manager)["duplicates"]:
        to_close = dup["tab_ids"][1:]
        try:
            manager.close_tabs(to_close)
        except Exception as exc:
            print(f"[WARN] Failed to close duplicates of {dup['url']}: {exc}", file=sys.stderr)
            continue
        closed += len(to_close)
    if history is not None:
        history.log(f"Closed {closed} duplicate tab{'s' if closed != 1 else ''}")
    return closed


def tab_stats(manager: TabManager, top: int = 5) -> Dict:
    window_id = manager.current_window_id()
    tabs = manager.list_tabs(window_id)
    domains = Counter(h for h in (normalize_host(t.url) for t in tabs) if h)
    return {
        "total": len(tabs),
        "grouped": sum(1 for t in tabs if t.grouped),
        "ungrouped": sum(1 for t in tabs if not t.grouped and not t.pinned),
        "pinned": sum(1 for t in tabs if t.pinned),
        "group_count": len(manager.list_groups(window_id)),
        "top_domains": [{"domain": d, "count": c} for d, c in domains.most_common(top)],
    }
