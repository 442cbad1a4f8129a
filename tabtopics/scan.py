"""Batched, timeout-bounded scanning of tabs into term vectors."""
import asyncio
from dataclasses import dataclass, field
from typing import List

from tabtopics.manager import TabDescriptor, TabManager
from tabtopics.text import MAX_PAGE_CHARS, is_http_url, tab_vector, truncate_text
from tabtopics.vectorize import TermVector

MAX_CONCURRENT_SCANS = 5
SCAN_TIMEOUT = 1.5

OK = "ok"
DEGRADED = "degraded"
FAILED = "failed"


@dataclass
class ScanOutcome:
    """Result of scanning one tab.

    ok: vector built from every stream that applied to the tab.
    degraded: page text timed out or failed; vector uses title and URL only.
    failed: the scan itself raised; the vector is empty and matches nothing.
    """
    tab: TabDescriptor
    status: str
    vector: TermVector = field(default_factory=dict)
    reason: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status != FAILED


def wants_page_text(tab: TabDescriptor) -> bool:
    return is_http_url(tab.url or "") and tab.status == "complete"


async def scan_tab(
    manager: TabManager,
    tab: TabDescriptor,
    timeout: float = SCAN_TIMEOUT,
    max_chars: int = MAX_PAGE_CHARS,
) -> ScanOutcome:
    page_text = ""
    reason = ""
    if wants_page_text(tab):
        try:
            page_text = await asyncio.wait_for(manager.extract_page_text(tab.id), timeout)
        except asyncio.TimeoutError:
            reason = f"page text timed out after {timeout:g}s"
        except Exception as exc:
            reason = f"page text failed: {exc}"
    vector = tab_vector(tab, truncate_text(page_text or "", max_chars))
    return ScanOutcome(tab, DEGRADED if reason else OK, vector, reason)


async def scan_tabs(
    manager: TabManager,
    tabs: List[TabDescriptor],
    batch_size: int = MAX_CONCURRENT_SCANS,
    timeout: float = SCAN_TIMEOUT,
    max_chars: int = MAX_PAGE_CHARS,
) -> List[ScanOutcome]:
    """Scan tabs batch by batch; one outcome per tab, in input order.

    A batch runs concurrently and is fully settled before the next one starts,
    so at most batch_size extractions are in flight.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")
    outcomes: List[ScanOutcome] = []
    for start in range(0, len(tabs), batch_size):
        batch = tabs[start:start + batch_size]
        results = await asyncio.gather(
            *(scan_tab(manager, tab, timeout, max_chars) for tab in batch),
            return_exceptions=True,
        )
        for tab, result in zip(batch, results):
            if isinstance(result, Exception):
                outcomes.append(ScanOutcome(tab, FAILED, {}, f"{type(result).__name__}: {result}"))
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes.append(result)
    return outcomes
