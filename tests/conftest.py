import asyncio
from typing import Dict, Iterable, List, Optional

import pytest

from tabtopics.manager import UNGROUPED, SessionTabManager


class StubTabManager(SessionTabManager):
    """Session manager with scripted page text and injectable host failures."""

    def __init__(
        self,
        windows: List[Dict],
        page_texts: Optional[Dict[int, str]] = None,
        hang: Iterable[int] = (),
        fail: Iterable[int] = (),
        fail_groups_with: Iterable[int] = (),
    ) -> None:
        super().__init__(windows=windows)
        self.page_texts = page_texts or {}
        self.hang = set(hang)
        self.fail = set(fail)
        self.fail_groups_with = set(fail_groups_with)
        self.extract_calls: List[int] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def extract_page_text(self, tab_id: int) -> str:
        self.extract_calls.append(tab_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if tab_id in self.hang:
                await asyncio.sleep(3600)
            await asyncio.sleep(0)
            if tab_id in self.fail:
                raise RuntimeError("content probe failed")
            return self.page_texts.get(tab_id, "")
        finally:
            self.in_flight -= 1

    def create_group(self, tab_ids: List[int]) -> int:
        if self.fail_groups_with & set(tab_ids):
            raise RuntimeError("host rejected group")
        return super().create_group(tab_ids)


def make_tab(
    tab_id: int,
    title: str,
    url: str,
    group_id: int = UNGROUPED,
    pinned: bool = False,
    status: str = "complete",
) -> Dict:
    return {"id": tab_id, "title": title, "url": url, "groupId": group_id, "pinned": pinned, "status": status}


@pytest.fixture
def stub_manager():
    def build(tabs: List[Dict], groups: Iterable[Dict] = (), **kwargs) -> StubTabManager:
        windows = [{"browser": "chrome", "windowId": 1, "focused": True, "tabs": tabs, "groups": list(groups)}]
        return StubTabManager(windows, **kwargs)
    return build


@pytest.fixture
def tab():
    return make_tab
