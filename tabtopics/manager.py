"""Tab and group access used by the sweep.

TabManager is the narrow interface the grouping engine talks to.
SessionTabManager implements it on top of a session JSON file written by
`tabtopics export`: a list of windows, each with its tabs and groups.
"""
import asyncio
import json
import os
import sys
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

import requests

from tabtopics.text import MAX_PAGE_CHARS, extract_visible_text, is_http_url

UNGROUPED = -1


@dataclass(frozen=True)
class TabDescriptor:
    id: int
    title: str
    url: str
    status: str = "complete"
    pinned: bool = False
    group_id: int = UNGROUPED
    window_id: Optional[int] = None

    @property
    def grouped(self) -> bool:
        return self.group_id != UNGROUPED


@dataclass(frozen=True)
class TabGroup:
    id: int
    window_id: Optional[int] = None
    title: str = ""
    color: str = "grey"


class TabManager(ABC):
    """Host-side tab and group operations. Every call may raise."""

    @abstractmethod
    def current_window_id(self) -> Optional[int]:
        ...

    @abstractmethod
    def list_tabs(self, window_id: Optional[int] = None, pinned: Optional[bool] = None) -> List[TabDescriptor]:
        ...

    @abstractmethod
    def list_groups(self, window_id: Optional[int] = None) -> List[TabGroup]:
        ...

    @abstractmethod
    def get_tab(self, tab_id: int) -> Optional[TabDescriptor]:
        ...

    @abstractmethod
    async def extract_page_text(self, tab_id: int) -> str:
        """Visible text of a loaded page. May be slow, hang or fail."""
        ...

    @abstractmethod
    def assign_to_group(self, tab_id: int, group_id: int) -> None:
        ...

    @abstractmethod
    def create_group(self, tab_ids: List[int]) -> int:
        ...

    @abstractmethod
    def update_group(self, group_id: int, title: str, color: str) -> None:
        ...

    @abstractmethod
    def remove_from_group(self, tab_ids: List[int]) -> None:
        ...

    @abstractmethod
    def close_tabs(self, tab_ids: List[int]) -> None:
        ...


def fetch_html(url: str, timeout: float, user_agent: Optional[str]) -> str:
    headers = {}
    if user_agent:
        headers["User-Agent"] = user_agent
    resp = requests.get(url, headers=headers, timeout=timeout)
    resp.raise_for_status()
    content_type = resp.headers.get("content-type", "")
    if "text/html" not in content_type and "application/xhtml+xml" not in content_type:
        return ""
    return resp.text


def load_session(path: str) -> List[Dict]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


class SessionTabManager(TabManager):
    """In-memory tab state loaded from (and saved back to) a session JSON file."""

    def __init__(
        self,
        path: Optional[str] = None,
        windows: Optional[List[Dict]] = None,
        fetch_timeout: float = 10.0,
        user_agent: Optional[str] = "Mozilla/5.0",
        js: bool = False,
        max_chars: int = MAX_PAGE_CHARS,
        fetch_workers: int = 5,
    ) -> None:
        self.path = path
        self.fetch_timeout = fetch_timeout
        self.user_agent = user_agent
        self.js = js
        self.max_chars = max_chars
        self.fetch_workers = fetch_workers
        self._executor: Optional[ThreadPoolExecutor] = None
        self._tabs: Dict[int, TabDescriptor] = {}
        self._order: List[int] = []
        self._groups: Dict[int, TabGroup] = {}
        self._windows: List[Dict] = []
        self._playwright = None
        self._browser = None
        if windows is None and path:
            windows = load_session(path)
        self._load_windows(windows or [])

    def _load_windows(self, windows: List[Dict]) -> None:
        next_id = 1 + max(
            (t.get("id", -1) for w in windows for t in w.get("tabs", []) if isinstance(t.get("id"), int)),
            default=-1,
        )
        for index, w in enumerate(windows):
            window_id = w.get("windowId")
            if window_id is None:
                window_id = index + 1
            self._windows.append(
                {"browser": w.get("browser"), "windowId": window_id, "focused": bool(w.get("focused"))}
            )
            for g in w.get("groups", []):
                group = TabGroup(
                    id=int(g["id"]),
                    window_id=window_id,
                    title=g.get("title") or "",
                    color=g.get("color") or "grey",
                )
                self._groups[group.id] = group
            for t in w.get("tabs", []):
                url = (t.get("url") or "").strip()
                if not url:
                    continue
                tab_id = t.get("id")
                if not isinstance(tab_id, int):
                    tab_id = next_id
                    next_id += 1
                group_id = t.get("groupId", UNGROUPED)
                if group_id is None:
                    group_id = UNGROUPED
                group_id = int(group_id)
                if group_id != UNGROUPED and group_id not in self._groups:
                    self._groups[group_id] = TabGroup(id=group_id, window_id=window_id)
                self._tabs[tab_id] = TabDescriptor(
                    id=tab_id,
                    title=(t.get("title") or "").strip(),
                    url=url,
                    status=t.get("status") or "complete",
                    pinned=bool(t.get("pinned")),
                    group_id=group_id,
                    window_id=window_id,
                )
                self._order.append(tab_id)

    def to_windows(self) -> List[Dict]:
        output = []
        for w in self._windows:
            window_id = w["windowId"]
            tabs = [
                {
                    "id": t.id,
                    "title": t.title,
                    "url": t.url,
                    "status": t.status,
                    "pinned": t.pinned,
                    "groupId": t.group_id,
                }
                for t in self.list_tabs(window_id)
            ]
            groups = [
                {"id": g.id, "title": g.title, "color": g.color}
                for g in self.list_groups(window_id)
            ]
            output.append(dict(w, tabs=tabs, groups=groups))
        return output

    def save(self, path: Optional[str] = None) -> None:
        path = path or self.path
        if not path:
            raise ValueError("No session path to save to")
        dir_name = os.path.dirname(path)
        if dir_name:
            os.makedirs(dir_name, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_windows(), f, ensure_ascii=False, indent=2)

    # -- queries --

    def current_window_id(self) -> Optional[int]:
        if not self._windows:
            return None
        for w in self._windows:
            if w.get("focused"):
                return w["windowId"]
        return self._windows[0]["windowId"]

    def list_tabs(self, window_id: Optional[int] = None, pinned: Optional[bool] = None) -> List[TabDescriptor]:
        tabs = [self._tabs[tid] for tid in self._order]
        if window_id is not None:
            tabs = [t for t in tabs if t.window_id == window_id]
        if pinned is not None:
            tabs = [t for t in tabs if t.pinned == pinned]
        return tabs

    def list_groups(self, window_id: Optional[int] = None) -> List[TabGroup]:
        groups = list(self._groups.values())
        if window_id is not None:
            groups = [g for g in groups if g.window_id == window_id]
        return groups

    def get_tab(self, tab_id: int) -> Optional[TabDescriptor]:
        return self._tabs.get(tab_id)

    def _require_tab(self, tab_id: int) -> TabDescriptor:
        tab = self._tabs.get(tab_id)
        if tab is None:
            raise KeyError(f"No tab with id {tab_id}")
        return tab

    # -- page text --

    async def extract_page_text(self, tab_id: int) -> str:
        tab = self._require_tab(tab_id)
        if not is_http_url(tab.url):
            return ""
        if self.js:
            html = await self._render_html(tab.url)
        else:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(self.fetch_workers, thread_name_prefix="tabtopics-fetch")
            loop = asyncio.get_running_loop()
            html = await loop.run_in_executor(
                self._executor, fetch_html, tab.url, self.fetch_timeout, self.user_agent
            )
        return extract_visible_text(html, tab.url, self.max_chars)

    async def _render_html(self, url: str) -> str:
        if self._browser is None:
            try:
                from playwright.async_api import async_playwright
            except Exception:
                print("[ERROR] Playwright is required for --js. Install with: pip install playwright", file=sys.stderr)
                raise
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(headless=True)
        context = await self._browser.new_context(user_agent=self.user_agent)
        try:
            page = await context.new_page()
            await page.goto(url, wait_until="networkidle", timeout=self.fetch_timeout * 1000)
            return await page.content()
        finally:
            await context.close()

    async def aclose(self) -> None:
        # Fetches abandoned by a scan timeout are not waited for.
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    # -- mutations --

    def assign_to_group(self, tab_id: int, group_id: int) -> None:
        tab = self._require_tab(tab_id)
        if group_id not in self._groups:
            raise KeyError(f"No group with id {group_id}")
        self._tabs[tab_id] = replace(tab, group_id=group_id)

    def create_group(self, tab_ids: List[int]) -> int:
        if not tab_ids:
            raise ValueError("Cannot create a group without tabs")
        tabs = [self._require_tab(tid) for tid in tab_ids]
        group_id = 1 + max(self._groups, default=0)
        self._groups[group_id] = TabGroup(id=group_id, window_id=tabs[0].window_id)
        for tab in tabs:
            self._tabs[tab.id] = replace(tab, group_id=group_id)
        self._prune_groups()
        return group_id

    def update_group(self, group_id: int, title: str, color: str) -> None:
        group = self._groups.get(group_id)
        if group is None:
            raise KeyError(f"No group with id {group_id}")
        self._groups[group_id] = replace(group, title=title, color=color)

    def remove_from_group(self, tab_ids: List[int]) -> None:
        for tid in tab_ids:
            tab = self._require_tab(tid)
            self._tabs[tid] = replace(tab, group_id=UNGROUPED)
        self._prune_groups()

    def close_tabs(self, tab_ids: List[int]) -> None:
        for tid in tab_ids:
            self._require_tab(tid)
        for tid in tab_ids:
            del self._tabs[tid]
        self._order = [tid for tid in self._order if tid in self._tabs]
        self._prune_groups()

    def _prune_groups(self) -> None:
        used = {t.group_id for t in self._tabs.values()}
        for group_id in list(self._groups):
            if group_id not in used:
                del self._groups[group_id]
