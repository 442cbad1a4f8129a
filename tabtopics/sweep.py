"""Run a grouping sweep against a tab manager, and undo its effects.

A sweep is two-phase: the full plan is computed from a snapshot of the
window first, then applied as individual mutations. A mutation that fails is
reported and skipped; mutations already applied are never rolled back.
"""
import sys
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

from tabtopics.cluster import SweepPlan, build_group_vectors, plan_by_domain, plan_sweep
from tabtopics.colors import ColorPolicy, color_policy as make_color_policy
from tabtopics.manager import TabDescriptor, TabManager
from tabtopics.scan import scan_tabs
from tabtopics.settings import History, Settings
from tabtopics.text import is_http_url
from tabtopics.undo import GROUP_CREATED, TAB_ADDED, Action, UndoLog
from tabtopics.vectorize import TermVector


@dataclass
class SweepSummary:
    status: str = "complete"
    candidates: int = 0
    scanned: int = 0
    scanned_ok: int = 0
    tabs_added_to_existing: int = 0
    groups_created: int = 0
    failures: int = 0
    error: str = ""
    plan: Optional[SweepPlan] = None
    messages: List[str] = field(default_factory=list)


def _note(summary: SweepSummary, history: History, message: str) -> None:
    summary.messages.append(message)
    history.log(message)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


def sweep_candidates(tabs: List[TabDescriptor], settings: Settings) -> List[TabDescriptor]:
    """Tabs the sweep may touch: http(s), not user-grouped, not blacklisted."""
    user_grouped = set(settings.user_grouped_tabs)
    candidates = []
    for tab in tabs:
        if not is_http_url(tab.url or ""):
            continue
        if tab.id in user_grouped:
            continue
        try:
            host = urlparse(tab.url).hostname or ""
        except ValueError:
            continue
        if settings.is_blacklisted(host):
            continue
        candidates.append(tab)
    return candidates


async def existing_group_vectors(
    manager: TabManager,
    window_id: Optional[int],
    members: List[TabDescriptor],
    settings: Settings,
) -> Dict[int, TermVector]:
    outcomes = await scan_tabs(manager, members, settings.batch_size, settings.scan_timeout, settings.max_page_chars)
    vectors = {o.tab.id: o.vector for o in outcomes}
    return build_group_vectors(
        (group.id, [vectors[t.id] for t in members if t.group_id == group.id])
        for group in manager.list_groups(window_id)
    )


def apply_plan(
    manager: TabManager,
    plan: SweepPlan,
    undo: UndoLog,
    summary: Optional[SweepSummary] = None,
    verbose: bool = False,
) -> SweepSummary:
    summary = summary if summary is not None else SweepSummary()
    for assignment in plan.assignments:
        try:
            manager.assign_to_group(assignment.tab_id, assignment.group_id)
        except Exception as exc:
            summary.failures += 1
            print(f"[WARN] Failed to add tab {assignment.tab_id} to group {assignment.group_id}: {exc}", file=sys.stderr)
            continue
        undo.record(Action(TAB_ADDED, [assignment.tab_id], assignment.group_id))
        summary.tabs_added_to_existing += 1
        if verbose:
            print(f"[INFO] Added tab {assignment.tab_id} to group {assignment.group_id} "
                  f"(similarity: {assignment.score:.2f})")

    for group in plan.groups:
        try:
            group_id = manager.create_group(group.tab_ids)
        except Exception as exc:
            summary.failures += 1
            print(f"[WARN] Failed to create group {group.label}: {exc}", file=sys.stderr)
            continue
        undo.record(Action(GROUP_CREATED, list(group.tab_ids), group_id, group.label))
        try:
            manager.update_group(group_id, group.label, group.color)
        except Exception as exc:
            summary.failures += 1
            print(f"[WARN] Created group {group_id} but could not label it {group.label}: {exc}", file=sys.stderr)
            continue
        summary.groups_created += 1
        if verbose:
            print(f"[INFO] Created group: {group.label} ({len(group.tab_ids)} tabs)")
    return summary


async def run_sweep(
    manager: TabManager,
    settings: Settings,
    undo: Optional[UndoLog] = None,
    history: Optional[History] = None,
    color_policy: Optional[ColorPolicy] = None,
    dry_run: bool = False,
    verbose: bool = False,
) -> SweepSummary:
    """One grouping pass over the current window.

    With dry_run the plan is returned in the summary and nothing is mutated.
    Errors outside individual mutations end the sweep with status "failed".
    """
    undo = undo if undo is not None else UndoLog()
    history = history if history is not None else History()
    summary = SweepSummary()

    if not settings.auto_group:
        summary.status = "paused"
        if verbose:
            print("[INFO] Auto-grouping paused")
        return summary

    try:
        policy = color_policy or make_color_policy(settings.color_policy)
        window_id = manager.current_window_id()
        candidates = sweep_candidates(manager.list_tabs(window_id, pinned=False), settings)
        ungrouped = [t for t in candidates if not t.grouped]
        summary.candidates = len(ungrouped)

        if not ungrouped:
            summary.status = "noop"
            summary.messages.append("No ungrouped tabs to process")
            if verbose:
                print("[INFO] No ungrouped tabs to process")
            return summary

        if settings.grouping_mode == "domain":
            plan = plan_by_domain(ungrouped, settings.min_group_size, policy)
        else:
            _note(summary, history, f"Analyzing {len(ungrouped)} ungrouped tabs...")
            members = [t for t in candidates if t.grouped]
            group_vectors = await existing_group_vectors(manager, window_id, members, settings)
            outcomes = await scan_tabs(
                manager, ungrouped, settings.batch_size, settings.scan_timeout, settings.max_page_chars
            )
            summary.scanned = len(outcomes)
            summary.scanned_ok = sum(1 for o in outcomes if o.succeeded)
            if verbose:
                print(f"[INFO] Scanned {summary.scanned_ok}/{summary.scanned} tabs successfully")
                for o in outcomes:
                    if o.reason:
                        print(f"[INFO] Tab {o.tab.id} {o.status}: {o.reason}")
            plan = plan_sweep(
                [(o.tab.id, o.vector) for o in outcomes],
                group_vectors,
                settings.similarity_threshold,
                settings.min_group_size,
                policy,
            )

        summary.plan = plan
        if dry_run:
            summary.status = "planned"
            return summary

        apply_plan(manager, plan, undo, summary, verbose)

        if settings.grouping_mode == "domain":
            _note(summary, history, f"Domain mode: Created {_plural(summary.groups_created, 'group')}")
        else:
            if summary.tabs_added_to_existing:
                _note(summary, history,
                      f"Added {_plural(summary.tabs_added_to_existing, 'tab')} to existing groups")
            if summary.groups_created:
                _note(summary, history, f"Created {_plural(summary.groups_created, 'new group')}")
            if not summary.tabs_added_to_existing and not summary.groups_created:
                _note(summary, history, "No similar tabs found")
    except Exception as exc:
        summary.status = "failed"
        summary.error = str(exc) or type(exc).__name__
        print(f"[ERROR] Sweep failed: {summary.error}", file=sys.stderr)
        _note(summary, history, "Error during sweep")
    return summary


def undo_last(manager: TabManager, undo: UndoLog, history: Optional[History] = None) -> Tuple[bool, str]:
    """Reverse the newest recorded action. The action is consumed either way."""
    history = history if history is not None else History()
    action = undo.pop()
    if action is None:
        return False, "No action to undo"
    try:
        if action.kind == GROUP_CREATED:
            tab_ids = [tid for tid in action.tab_ids if manager.get_tab(tid) is not None]
            if not tab_ids:
                return False, "Tabs no longer exist"
            manager.remove_from_group(tab_ids)
            history.log(f"Undid: {action.label}")
            return True, f"Ungrouped {action.label}"
        if action.kind == TAB_ADDED:
            if not action.tab_ids or manager.get_tab(action.tab_ids[0]) is None:
                return False, "Tab no longer exists"
            manager.remove_from_group(action.tab_ids[:1])
            history.log("Undid: Tab addition")
            return True, "Tab removed from group"
    except Exception as exc:
        print(f"[WARN] Undo failed: {exc}", file=sys.stderr)
        return False, f"Undo failed: {exc}"
    return False, "Cannot undo this action"


def eject_on_url_change(
    manager: TabManager,
    tab: TabDescriptor,
    settings: Settings,
    history: Optional[History] = None,
) -> bool:
    """Take a grouped tab that navigated elsewhere out of its group."""
    if not tab.grouped or not settings.auto_eject_on_url_change:
        return False
    if tab.id in settings.user_grouped_tabs:
        return False
    try:
        manager.remove_from_group([tab.id])
    except Exception as exc:
        print(f"[WARN] Failed to eject tab {tab.id}: {exc}", file=sys.stderr)
        return False
    if history is not None:
        history.log(f"Ejected: {tab.title[:30]}...")
    return True


def eject_changed_tabs(
    manager: TabManager,
    previous_urls: Dict[int, str],
    settings: Settings,
    history: Optional[History] = None,
) -> List[int]:
    """Eject every grouped tab whose URL differs from previous_urls."""
    ejected = []
    for tab in manager.list_tabs():
        before = previous_urls.get(tab.id)
        if before is None or before == tab.url:
            continue
        if eject_on_url_change(manager, tab, settings, history):
            ejected.append(tab.id)
    return ejected
