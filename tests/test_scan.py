import asyncio
import time
from unittest.mock import patch

import pytest

from tabtopics.scan import DEGRADED, FAILED, OK, scan_tab, scan_tabs
from tabtopics.text import tab_vector as real_tab_vector


def _titles(n: int):
    return [f"Topic number{i} overview" for i in range(n)]


class TestScanTab:
    def test_page_text_included(self, stub_manager, tab):
        manager = stub_manager([tab(1, "Raft paper", "https://papers.dev/raft")],
                               page_texts={1: "distributed consensus raft"})
        outcome = asyncio.run(scan_tab(manager, manager.get_tab(1)))
        assert outcome.status == OK
        assert outcome.vector["consensus"] == 0.5
        assert outcome.vector["raft"] == 5.0 + 1.5 + 0.5

    def test_timeout_degrades_to_title_and_url(self, stub_manager, tab):
        manager = stub_manager([tab(1, "Kubernetes ingress", "https://one.dev/networking")], hang=[1])
        start = time.monotonic()
        outcome = asyncio.run(scan_tab(manager, manager.get_tab(1), timeout=0.05))
        assert time.monotonic() - start < 1.0
        assert outcome.status == DEGRADED
        assert "timed out" in outcome.reason
        assert outcome.vector == {"kubernetes": 5.0, "ingress": 5.0, "networking": 1.5}

    def test_probe_error_degrades(self, stub_manager, tab):
        manager = stub_manager([tab(1, "Kubernetes ingress", "https://one.dev/")], fail=[1])
        outcome = asyncio.run(scan_tab(manager, manager.get_tab(1)))
        assert outcome.status == DEGRADED
        assert "content probe failed" in outcome.reason
        assert outcome.vector == {"kubernetes": 5.0, "ingress": 5.0}

    def test_loading_and_non_http_tabs_not_probed(self, stub_manager, tab):
        manager = stub_manager([
            tab(1, "Settings panel", "chrome://settings"),
            tab(2, "Slow loading article", "https://news.dev/story", status="loading"),
        ])
        outcomes = asyncio.run(scan_tabs(manager, manager.list_tabs()))
        assert manager.extract_calls == []
        assert [o.status for o in outcomes] == [OK, OK]

    def test_page_text_clipped(self, stub_manager, tab):
        manager = stub_manager([tab(1, "", "https://a.dev/")], page_texts={1: "alpha " * 10 + "omega"})
        outcome = asyncio.run(scan_tab(manager, manager.get_tab(1), max_chars=12))
        assert outcome.vector == {"alpha": 1.0}


class TestScanTabs:
    def test_batches_cap_concurrency_and_keep_order(self, stub_manager, tab):
        tabs = [tab(i, title, f"https://site{i}.dev/") for i, title in enumerate(_titles(12))]
        manager = stub_manager(tabs)
        outcomes = asyncio.run(scan_tabs(manager, manager.list_tabs(), batch_size=5))
        assert manager.max_in_flight == 5
        assert [o.tab.id for o in outcomes] == list(range(12))
        assert all(o.succeeded for o in outcomes)

    def test_hung_tabs_bounded_by_batches(self, stub_manager, tab):
        tabs = [tab(i, title, f"https://site{i}.dev/") for i, title in enumerate(_titles(6))]
        manager = stub_manager(tabs, hang=range(6))
        start = time.monotonic()
        outcomes = asyncio.run(scan_tabs(manager, manager.list_tabs(), batch_size=3, timeout=0.05))
        assert time.monotonic() - start < 2.0
        assert [o.status for o in outcomes] == [DEGRADED] * 6

    def test_failure_is_settled_not_raised(self, stub_manager, tab):
        manager = stub_manager([tab(1, "First tab here", "https://a.dev/"), tab(2, "Second tab here", "https://b.dev/")])

        def flaky(t, page_text=""):
            if t.id == 2:
                raise ValueError("bad descriptor")
            return real_tab_vector(t, page_text)

        with patch("tabtopics.scan.tab_vector", side_effect=flaky):
            outcomes = asyncio.run(scan_tabs(manager, manager.list_tabs()))
        assert outcomes[0].status == OK
        assert outcomes[1].status == FAILED
        assert outcomes[1].vector == {}
        assert "bad descriptor" in outcomes[1].reason
        assert not outcomes[1].succeeded

    def test_empty_input(self, stub_manager):
        assert asyncio.run(scan_tabs(stub_manager([]), [])) == []

    def test_rejects_zero_batch(self, stub_manager):
        with pytest.raises(ValueError):
            asyncio.run(scan_tabs(stub_manager([]), [], batch_size=0))
