"""Command line entry point.

Usage:
  tabtopics export --out session.json
  tabtopics sweep session.json [--dry-run] [-v]
  tabtopics undo session.json
  tabtopics open session.json --chrome
"""
import argparse
import asyncio
import json
import sys
from dataclasses import replace
from typing import List, Optional

from tabtopics.colors import COLOR_POLICIES
from tabtopics.export import export_session
from tabtopics.housekeeping import close_duplicates, find_duplicates, tab_stats
from tabtopics.launch import open_groups
from tabtopics.manager import SessionTabManager
from tabtopics.settings import DEFAULT_STATE_PATH, GROUPING_MODES, Settings, State, load_state, save_state
from tabtopics.sweep import SweepSummary, eject_changed_tabs, run_sweep, undo_last


def _add_state_arg(p: argparse.ArgumentParser) -> None:
    p.add_argument("--state", default=DEFAULT_STATE_PATH, help="Settings/history/undo state file")


def _settings_from_args(settings: Settings, args: argparse.Namespace) -> Settings:
    overrides = {}
    for name, attr in (
        ("threshold", "similarity_threshold"),
        ("min_group_size", "min_group_size"),
        ("mode", "grouping_mode"),
        ("color_policy", "color_policy"),
        ("batch_size", "batch_size"),
        ("scan_timeout", "scan_timeout"),
    ):
        value = getattr(args, name, None)
        if value is not None:
            overrides[attr] = value
    return replace(settings, **overrides).validate()


def _print_plan(summary: SweepSummary) -> None:
    plan = summary.plan
    if plan is None:
        return
    for a in plan.assignments:
        print(f"  + tab {a.tab_id} -> group {a.group_id} (similarity: {a.score:.2f})")
    for g in plan.groups:
        print(f"  * new group {g.label!r} [{g.color}]: tabs {', '.join(str(t) for t in g.tab_ids)}")
    if plan.leftovers:
        print(f"  - left ungrouped: {', '.join(str(t) for t in plan.leftovers)}")


async def _sweep(manager: SessionTabManager, settings: Settings, state: State, args: argparse.Namespace) -> SweepSummary:
    try:
        return await run_sweep(
            manager,
            settings,
            undo=state.undo,
            history=state.history,
            dry_run=args.dry_run,
            verbose=args.verbose,
        )
    finally:
        await manager.aclose()


def cmd_export(args: argparse.Namespace) -> int:
    chrome, firefox = args.chrome, args.firefox
    if not chrome and not firefox:
        chrome = firefox = True
    windows, had_error = export_session(chrome, firefox, args.firefox_profile, args.verbose)
    with open(args.out, "w", encoding="utf-8") as f:
        json.dump(windows, f, ensure_ascii=False, indent=2)
    print(f"[OK] Wrote {args.out} with {sum(len(w.get('tabs', [])) for w in windows)} tabs across {len(windows)} windows.")
    if had_error:
        print("[NOTE] Some browsers failed to export; see warnings above.", file=sys.stderr)
    return 0


def cmd_sweep(args: argparse.Namespace) -> int:
    state = load_state(args.state)
    settings = _settings_from_args(state.settings, args)
    manager = SessionTabManager(
        args.session,
        # A fetch never outlives the scan that waits for it.
        fetch_timeout=min(args.timeout, settings.scan_timeout),
        user_agent=args.user_agent,
        js=args.js,
        max_chars=settings.max_page_chars,
        fetch_workers=settings.batch_size,
    )

    if not args.dry_run:
        ejected = eject_changed_tabs(manager, state.tab_urls, settings, state.history)
        if ejected and args.verbose:
            print(f"[INFO] Ejected {len(ejected)} tabs whose URL changed")

    summary = asyncio.run(_sweep(manager, settings, state, args))

    if args.dry_run:
        print(f"[OK] Dry run: {summary.status}")
        _print_plan(summary)
        return 1 if summary.status == "failed" else 0

    out = args.out or args.session
    manager.save(out)
    state.tab_urls = {t.id: t.url for t in manager.list_tabs()}
    save_state(args.state, state)

    for message in summary.messages:
        print(f"[INFO] {message}")
    if summary.status == "failed":
        return 1
    print(
        f"[OK] Sweep {summary.status}: {summary.tabs_added_to_existing} tabs added to existing groups, "
        f"{summary.groups_created} groups created, {summary.scanned_ok}/{summary.scanned} tabs scanned, "
        f"{summary.failures} failures. Wrote {out}."
    )
    return 0


def cmd_undo(args: argparse.Namespace) -> int:
    state = load_state(args.state)
    manager = SessionTabManager(args.session)
    success, message = undo_last(manager, state.undo, state.history)
    manager.save()
    save_state(args.state, state)
    print(f"[{'OK' if success else 'WARN'}] {message}")
    return 0 if success else 1


def cmd_duplicates(args: argparse.Namespace) -> int:
    manager = SessionTabManager(args.session)
    if args.close:
        state = load_state(args.state)
        closed = close_duplicates(manager, state.history)
        manager.save()
        save_state(args.state, state)
        print(f"[OK] Closed {closed} duplicate tabs.")
        return 0
    result = find_duplicates(manager)
    for dup in result["duplicates"]:
        print(f"  {dup['count']}x {dup['title'] or dup['url']} ({dup['url']})")
    print(f"[OK] {result['total_duplicates']} duplicate tabs.")
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    stats = tab_stats(SessionTabManager(args.session))
    print(json.dumps(stats, indent=2))
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    state = load_state(args.state)
    if not state.history.entries:
        print("No recent activity")
    for entry in state.history.entries:
        print(f"{entry.get('time', '')}  {entry.get('msg', '')}")
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    state = load_state(args.state)
    settings = _settings_from_args(state.settings, args)
    if args.pause:
        settings.auto_group = False
    if args.resume:
        settings.auto_group = True
    if args.eject is not None:
        settings.auto_eject_on_url_change = args.eject
    for domain in args.blacklist_add or []:
        if domain not in settings.blacklist:
            settings.blacklist.append(domain)
    for domain in args.blacklist_remove or []:
        if domain in settings.blacklist:
            settings.blacklist.remove(domain)
    for tab_id in args.user_grouped_add or []:
        if tab_id not in settings.user_grouped_tabs:
            settings.user_grouped_tabs.append(tab_id)
    for tab_id in args.user_grouped_remove or []:
        if tab_id in settings.user_grouped_tabs:
            settings.user_grouped_tabs.remove(tab_id)
    if args.blacklist_add or args.blacklist_remove:
        state.history.log("Blacklist updated")
    state.settings = settings.validate()
    save_state(args.state, state)
    print(json.dumps(state.settings.to_dict(), indent=2))
    return 0


def cmd_open(args: argparse.Namespace) -> int:
    chrome, firefox = args.chrome, args.firefox
    if not chrome and not firefox:
        chrome = firefox = True
    manager = SessionTabManager(args.session)
    opened = 0
    if chrome:
        opened += open_groups(manager, "chrome", args.group, args.chrome_path, args.all_tabs, args.dry_run)
    if firefox:
        opened += open_groups(manager, "firefox", args.group, args.firefox_path, args.all_tabs, args.dry_run)
    print(f"[OK] Opened {opened} groups.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="tabtopics", description="Group browser tabs by topic.")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("export", help="Export open Chrome/Firefox tabs to a session JSON")
    p.add_argument("--chrome", action="store_true", help="Export Chrome windows/tabs")
    p.add_argument("--firefox", action="store_true", help="Export Firefox windows/tabs")
    p.add_argument("--firefox-profile", help="Override: path to a specific Firefox profile directory")
    p.add_argument("--out", default="session.json", help="Output JSON file path")
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("sweep", help="Group the ungrouped tabs of a session by topic")
    p.add_argument("session", help="Session JSON from `tabtopics export`")
    _add_state_arg(p)
    p.add_argument("--out", help="Write the regrouped session here instead of in place")
    p.add_argument("--threshold", type=float, help="Similarity threshold (0-1)")
    p.add_argument("--min-group-size", type=int, help="Minimum tabs for a new group")
    p.add_argument("--mode", choices=GROUPING_MODES, help="Grouping mode")
    p.add_argument("--color-policy", choices=sorted(COLOR_POLICIES), help="How new groups get their color")
    p.add_argument("--batch-size", type=int, help="Tabs scanned concurrently")
    p.add_argument("--scan-timeout", type=float, help="Per-tab page text timeout in seconds")
    p.add_argument("--timeout", type=float, default=10.0, help="HTTP timeout seconds")
    p.add_argument("--user-agent", default="Mozilla/5.0", help="User-Agent for fetching pages")
    p.add_argument("--js", action="store_true", help="Use Playwright to render JS-heavy pages")
    p.add_argument("--dry-run", action="store_true", help="Print the plan without changing anything")
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    p.set_defaults(func=cmd_sweep)

    p = sub.add_parser("undo", help="Undo the most recent grouping action")
    p.add_argument("session")
    _add_state_arg(p)
    p.set_defaults(func=cmd_undo)

    p = sub.add_parser("duplicates", help="List (or close) tabs open on the same URL")
    p.add_argument("session")
    p.add_argument("--close", action="store_true", help="Close all but the first tab of each duplicate set")
    _add_state_arg(p)
    p.set_defaults(func=cmd_duplicates)

    p = sub.add_parser("stats", help="Tab counts for the current window")
    p.add_argument("session")
    p.set_defaults(func=cmd_stats)

    p = sub.add_parser("history", help="Recent activity")
    _add_state_arg(p)
    p.set_defaults(func=cmd_history)

    p = sub.add_parser("config", help="Show or change persisted settings")
    _add_state_arg(p)
    p.add_argument("--pause", action="store_true", help="Stop automatic grouping")
    p.add_argument("--resume", action="store_true", help="Resume automatic grouping")
    p.add_argument("--eject", dest="eject", action="store_true", default=None,
                   help="Eject grouped tabs that navigate to a new URL")
    p.add_argument("--no-eject", dest="eject", action="store_false")
    p.add_argument("--threshold", type=float)
    p.add_argument("--min-group-size", type=int)
    p.add_argument("--mode", choices=GROUPING_MODES)
    p.add_argument("--color-policy", choices=sorted(COLOR_POLICIES))
    p.add_argument("--batch-size", type=int)
    p.add_argument("--scan-timeout", type=float)
    p.add_argument("--blacklist-add", action="append", metavar="DOMAIN")
    p.add_argument("--blacklist-remove", action="append", metavar="DOMAIN")
    p.add_argument("--user-grouped-add", action="append", type=int, metavar="TAB_ID")
    p.add_argument("--user-grouped-remove", action="append", type=int, metavar="TAB_ID")
    p.set_defaults(func=cmd_config)

    p = sub.add_parser("open", help="Open each group as a new browser window")
    p.add_argument("session")
    p.add_argument("--chrome", action="store_true", help="Open groups in Chrome")
    p.add_argument("--firefox", action="store_true", help="Open groups in Firefox")
    p.add_argument("--chrome-path", help="Override Chrome executable path")
    p.add_argument("--firefox-path", help="Override Firefox executable path")
    p.add_argument("--group", type=int, help="Open a single group by id")
    p.add_argument("--all-tabs", action="store_true", help="Open all tabs in the selected browser(s)")
    p.add_argument("--dry-run", action="store_true", help="Print commands without launching")
    p.set_defaults(func=cmd_open)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except (FileNotFoundError, ValueError, RuntimeError, KeyError) as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 1
