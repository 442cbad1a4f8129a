"""Export open tabs from Google Chrome and Firefox on macOS into a session JSON.

Chrome: AppleScript (JXA) via `osascript -l JavaScript`.
Firefox: the freshest sessionstore*.jsonlz4 across all profiles, decoded with lz4.

The output is a list of windows:
  [{"browser", "windowId", "focused", "tabs": [...], "groups": [...]}]
"""
import json
import subprocess
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import lz4.block

MOZLZ4_MAGIC = b"mozLz40\x00"

CHROME_JXA = '''
function run() {
  var output = [];
  try {
    var chrome = Application('Google Chrome');
    chrome.windows().forEach(function(w){
      var tabs = w.tabs().map(function(t){
        return {id: t.id(), title: t.title(), url: t.url(), status: t.loading() ? 'loading' : 'complete'};
      });
      if (tabs.length > 0) {
        output.push({browser: 'chrome', windowId: w.id(), focused: w.index() === 1, tabs: tabs});
      }
    });
  } catch (e) {
    // Chrome not running or AppleScript disabled
  }
  return JSON.stringify(output);
}
'''

FF_BASE = Path.home() / "Library" / "Application Support" / "Firefox" / "Profiles"


def run_jxa(script: str) -> str:
    try:
        p = subprocess.run(
            ["osascript", "-l", "JavaScript", "-e", script],
            check=True, capture_output=True, text=True
        )
        return p.stdout.strip()
    except subprocess.CalledProcessError as e:
        raise RuntimeError(e.stderr.strip() or str(e))


def export_chrome() -> List[Dict]:
    out = run_jxa(CHROME_JXA)
    return json.loads(out) if out else []


def find_all_firefox_profiles(base: Path = FF_BASE) -> List[Path]:
    if not base.exists():
        return []
    return [p for p in base.iterdir() if p.is_dir()]


def best_sessionstore_for_profile(prof: Path) -> Optional[Tuple[Path, float]]:
    """Return (path, mtime) of the freshest sessionstore candidate or None."""
    candidates = []
    ssb = prof / "sessionstore-backups"
    for name in ("recovery.jsonlz4", "previous.jsonlz4"):
        p = ssb / name
        if p.exists():
            candidates.append(p)
    candidates.extend(ssb.glob("upgrade.jsonlz4*"))
    p_root = prof / "sessionstore.jsonlz4"
    if p_root.exists():
        candidates.append(p_root)
    scored = [(p, p.stat().st_mtime) for p in candidates if p.is_file()]
    if not scored:
        return None
    scored.sort(key=lambda t: t[1], reverse=True)
    return scored[0]


def choose_firefox_session(base: Path = FF_BASE) -> Optional[Tuple[Path, Path]]:
    """Return (profile_dir, sessionstore_path) with the freshest session across all profiles."""
    scored = []
    for prof in find_all_firefox_profiles(base):
        best = best_sessionstore_for_profile(prof)
        if best:
            scored.append((prof, best[0], best[1]))
    if not scored:
        return None
    scored.sort(key=lambda t: t[2], reverse=True)
    return scored[0][0], scored[0][1]


def decode_mozlz4(raw: bytes) -> Dict:
    if raw[:8] != MOZLZ4_MAGIC:
        raise RuntimeError("Unexpected Firefox sessionstore header; not mozlz4.")
    return json.loads(lz4.block.decompress(raw[8:]).decode("utf-8"))


def firefox_windows(session: Dict) -> List[Dict]:
    """Session windows in export form.

    Group ids are numbered across all windows; tab ids are left for the loader.
    """
    selected = session.get("selectedWindow", 1)
    next_group_id = 1
    payload = []
    for index, w in enumerate(session.get("windows", []), start=1):
        group_ids: Dict[str, int] = {}
        groups = []
        for g in w.get("groups", []):
            gid = next_group_id
            next_group_id += 1
            group_ids[str(g.get("id"))] = gid
            groups.append({"id": gid, "title": g.get("name") or "", "color": g.get("color") or "grey"})
        tabs = []
        for t in w.get("tabs", []):
            idx = t.get("index", 1)
            entries = t.get("entries", [])
            if not 1 <= idx <= len(entries):
                continue
            e = entries[idx - 1]
            url = e.get("url", "")
            if not url:
                continue
            tabs.append({
                "title": e.get("title", ""),
                "url": url,
                "status": "complete",
                "pinned": bool(t.get("pinned")),
                "groupId": group_ids.get(str(t.get("groupId")), -1),
            })
        if tabs:
            payload.append({
                "browser": "firefox",
                "windowId": None,
                "focused": index == selected,
                "tabs": tabs,
                "groups": groups,
            })
    return payload


def export_firefox(profile_override: Optional[str] = None, verbose: bool = False) -> List[Dict]:
    if profile_override:
        p = Path(profile_override).expanduser()
        if not p.exists():
            raise FileNotFoundError(f"Provided --firefox-profile does not exist: {p}")
        best = best_sessionstore_for_profile(p)
        if not best:
            raise FileNotFoundError(f"No sessionstore files found in provided profile: {p}")
        selected_profile, session_path = p, best[0]
    else:
        chosen = choose_firefox_session()
        if not chosen:
            raise FileNotFoundError("No Firefox sessionstore *.jsonlz4 files found in ANY profile. "
                                    "Open Firefox (non-private window), ensure tabs are open, wait 10s, and try again.")
        selected_profile, session_path = chosen

    if verbose:
        print(f"[INFO] Using Firefox profile: {selected_profile}")
        print(f"[INFO] Sessionstore file:    {session_path} (mtime={time.ctime(session_path.stat().st_mtime)})")

    return firefox_windows(decode_mozlz4(session_path.read_bytes()))


def number_windows(windows: List[Dict]) -> List[Dict]:
    """Give windows without an id a distinct one, and only one window focus."""
    used = {w["windowId"] for w in windows if w.get("windowId") is not None}
    next_id = 1
    focused_seen = False
    for w in windows:
        if w.get("windowId") is None:
            while next_id in used:
                next_id += 1
            w["windowId"] = next_id
            used.add(next_id)
        if w.get("focused") and not focused_seen:
            focused_seen = True
        else:
            w["focused"] = False
    return windows


def export_session(
    chrome: bool = True,
    firefox: bool = True,
    firefox_profile: Optional[str] = None,
    verbose: bool = False,
) -> Tuple[List[Dict], bool]:
    """Collect windows from the selected browsers; errors are non-fatal."""
    windows: List[Dict] = []
    had_error = False
    if chrome:
        try:
            windows.extend(export_chrome())
        except Exception as e:
            had_error = True
            print(f"[WARN] Chrome export failed: {e}", file=sys.stderr)
    if firefox:
        try:
            windows.extend(export_firefox(firefox_profile, verbose))
        except Exception as e:
            had_error = True
            print(f"[WARN] Firefox export failed: {e}", file=sys.stderr)
    return number_windows(windows), had_error
