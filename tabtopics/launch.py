"""Open the topic groups of a session, one new browser window per group."""
import os
import platform
import subprocess
from typing import Dict, List, Optional, Tuple

from tabtopics.manager import SessionTabManager, TabDescriptor, TabGroup

# Per browser: macOS app name and binary, Windows install dirs under the
# program-files roots, and the flags that put each URL into one new window.
BROWSERS = {
    "chrome": {
        "app": "Google Chrome",
        "mac_binary": "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
        "win_dirs": (("Google", "Chrome", "Application", "chrome.exe"),),
        "win_roots": ("PROGRAMFILES", "PROGRAMFILES(X86)", "LOCALAPPDATA"),
    },
    "firefox": {
        "app": "Firefox",
        "mac_binary": "/Applications/Firefox.app/Contents/MacOS/firefox",
        "win_dirs": (("Mozilla Firefox", "firefox.exe"),),
        "win_roots": ("PROGRAMFILES", "PROGRAMFILES(X86)"),
    },
}


def window_args(browser: str, urls: List[str]) -> List[str]:
    if browser == "chrome":
        return ["--new-window"] + urls
    if not urls:
        return []
    args = ["-new-window", urls[0]]
    for url in urls[1:]:
        args += ["-new-tab", url]
    return args


def locate_browser(browser: str, system: str) -> Optional[str]:
    spec = BROWSERS[browser]
    if system == "darwin":
        candidates = [spec["mac_binary"]]
    elif system == "windows":
        candidates = [
            os.path.join(os.environ.get(root, ""), *parts)
            for root in spec["win_roots"] if os.environ.get(root)
            for parts in spec["win_dirs"]
        ]
    else:
        candidates = []
    return next((c for c in candidates if os.path.exists(c)), None)


def browser_command(browser: str, urls: List[str], browser_path: Optional[str] = None) -> List[str]:
    """Command line that opens urls in a new window of browser."""
    if browser not in BROWSERS:
        raise ValueError(f"Unknown browser {browser!r}")
    system = platform.system().lower()
    args = window_args(browser, urls)
    if system == "darwin":
        if browser_path and os.path.exists(browser_path):
            return [browser_path] + args
        return ["open", "-na", BROWSERS[browser]["app"], "--args"] + args
    if system == "windows":
        browser_path = browser_path or locate_browser(browser, system)
        if not browser_path:
            raise FileNotFoundError(f"{BROWSERS[browser]['app']} executable not found. "
                                    f"Use --{browser}-path to set it.")
        return [browser_path] + args
    raise RuntimeError(f"Unsupported OS for {BROWSERS[browser]['app']} automation.")


def iter_group_tabs(
    manager: SessionTabManager,
    browser: Optional[str] = None,
    group_id: Optional[int] = None,
) -> List[Tuple[TabGroup, List[TabDescriptor]]]:
    browsers: Dict[Optional[int], Optional[str]] = {w["windowId"]: w.get("browser") for w in manager.to_windows()}
    tabs = manager.list_tabs()
    output = []
    for group in manager.list_groups():
        if group_id is not None and group.id != group_id:
            continue
        group_tabs = [t for t in tabs if t.group_id == group.id and t.url]
        if browser:
            group_tabs = [t for t in group_tabs if browsers.get(t.window_id) == browser]
        if group_tabs:
            output.append((group, group_tabs))
    return output


def open_groups(
    manager: SessionTabManager,
    browser: str,
    group_id: Optional[int] = None,
    browser_path: Optional[str] = None,
    all_tabs: bool = False,
    dry_run: bool = False,
) -> int:
    """Open each matching group in `browser`; returns how many windows were opened."""
    opened = 0
    for group, tabs in iter_group_tabs(manager, None if all_tabs else browser, group_id):
        urls = [t.url for t in tabs]
        cmd = browser_command(browser, urls, browser_path)
        if dry_run:
            print(f"[DRY] {group.title or group.id}:", " ".join(cmd))
        else:
            subprocess.Popen(cmd)
        opened += 1
    return opened
