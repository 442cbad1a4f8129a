import json
import os
from unittest.mock import patch

import lz4.block
import pytest

from tabtopics.export import (
    MOZLZ4_MAGIC, best_sessionstore_for_profile, choose_firefox_session, decode_mozlz4,
    export_session, firefox_windows, number_windows,
)
from tabtopics.launch import browser_command, iter_group_tabs, open_groups, window_args
from tabtopics.manager import SessionTabManager

FIREFOX_SESSION = {
    "selectedWindow": 2,
    "windows": [
        {
            "tabs": [
                {"index": 2, "entries": [{"url": "https://old.dev/"}, {"url": "https://rust.dev/", "title": "Rust"}],
                 "groupId": "grp-a"},
                {"index": 1, "entries": [{"url": "https://mail.dev/", "title": "Mail"}], "pinned": True},
                {"index": 3, "entries": [{"url": "https://broken.dev/"}]},
            ],
            "groups": [{"id": "grp-a", "name": "Languages", "color": "blue"}],
        },
        {"tabs": [{"index": 1, "entries": [{"url": "https://news.dev/", "title": "News"}]}]},
        {"tabs": []},
    ],
}


def _write(path, mtime):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x")
    os.utime(path, (mtime, mtime))


# -- Firefox sessionstore --

class TestFirefoxSession:
    def test_windows_from_session(self):
        windows = firefox_windows(FIREFOX_SESSION)
        assert len(windows) == 2
        first, second = windows
        assert first["focused"] is False and second["focused"] is True
        assert first["groups"] == [{"id": 1, "title": "Languages", "color": "blue"}]
        assert first["tabs"] == [
            {"title": "Rust", "url": "https://rust.dev/", "status": "complete", "pinned": False, "groupId": 1},
            {"title": "Mail", "url": "https://mail.dev/", "status": "complete", "pinned": True, "groupId": -1},
        ]

    def test_groups_in_every_window_survive_loading(self):
        session = {"windows": [
            {"tabs": [{"index": 1, "entries": [{"url": "https://rust.dev/"}], "groupId": "g"}],
             "groups": [{"id": "g", "name": "Languages"}]},
            {"tabs": [{"index": 1, "entries": [{"url": "https://bread.dev/"}], "groupId": "g"}],
             "groups": [{"id": "g", "name": "Cooking"}]},
        ]}
        manager = SessionTabManager(windows=number_windows(firefox_windows(session)))
        assert [(g.window_id, g.title) for g in manager.list_groups()] == [(1, "Languages"), (2, "Cooking")]
        for tab in manager.list_tabs():
            assert [g.id for g in manager.list_groups(tab.window_id)] == [tab.group_id]

    def test_decode_mozlz4(self):
        raw = MOZLZ4_MAGIC + lz4.block.compress(json.dumps(FIREFOX_SESSION).encode("utf-8"))
        assert decode_mozlz4(raw) == FIREFOX_SESSION

    def test_bad_header(self):
        with pytest.raises(RuntimeError):
            decode_mozlz4(b"not-a-session")

    def test_freshest_sessionstore(self, tmp_path):
        prof = tmp_path / "abc.default"
        _write(prof / "sessionstore-backups" / "previous.jsonlz4", 100)
        _write(prof / "sessionstore-backups" / "recovery.jsonlz4", 300)
        _write(prof / "sessionstore.jsonlz4", 200)
        path, mtime = best_sessionstore_for_profile(prof)
        assert path.name == "recovery.jsonlz4"
        assert mtime == 300

    def test_freshest_profile(self, tmp_path):
        _write(tmp_path / "old" / "sessionstore.jsonlz4", 100)
        _write(tmp_path / "new" / "sessionstore.jsonlz4", 500)
        (tmp_path / "empty").mkdir()
        prof, _ = choose_firefox_session(tmp_path)
        assert prof.name == "new"
        assert choose_firefox_session(tmp_path / "missing") is None


class TestExportSession:
    def test_number_windows(self):
        windows = number_windows([
            {"windowId": None, "focused": True},
            {"windowId": 1, "focused": True},
            {"windowId": None, "focused": False},
        ])
        assert [w["windowId"] for w in windows] == [2, 1, 3]
        assert [w["focused"] for w in windows] == [True, False, False]

    def test_browser_errors_are_not_fatal(self, capsys):
        chrome = [{"browser": "chrome", "windowId": 7, "focused": True, "tabs": [{"id": 1, "url": "https://a.dev/"}]}]
        with patch("tabtopics.export.export_chrome", return_value=chrome), \
                patch("tabtopics.export.export_firefox", side_effect=FileNotFoundError("no profile")):
            windows, had_error = export_session()
        assert had_error
        assert windows == chrome
        assert "[WARN] Firefox export failed: no profile" in capsys.readouterr().err


# -- launch --

LAUNCH_SESSION = [
    {
        "browser": "chrome", "windowId": 1, "focused": True,
        "tabs": [
            {"id": 1, "title": "Pods", "url": "https://one.dev/", "groupId": 1},
            {"id": 2, "title": "Helm", "url": "https://two.dev/", "groupId": 1},
            {"id": 3, "title": "Loose", "url": "https://three.dev/"},
        ],
        "groups": [{"id": 1, "title": "Kubernetes", "color": "blue"}],
    },
    {
        "browser": "firefox", "windowId": 2, "focused": False,
        "tabs": [{"id": 4, "title": "Bread", "url": "https://bread.dev/", "groupId": 2}],
        "groups": [{"id": 2, "title": "Baking", "color": "red"}],
    },
]


class TestLaunch:
    def test_window_args(self):
        assert window_args("firefox", []) == []
        assert window_args("chrome", ["https://a.dev/"]) == ["--new-window", "https://a.dev/"]
        assert window_args("firefox", ["https://a.dev/", "https://b.dev/"]) == [
            "-new-window", "https://a.dev/", "-new-tab", "https://b.dev/",
        ]

    def test_group_tabs_by_browser(self):
        manager = SessionTabManager(windows=LAUNCH_SESSION)
        groups = iter_group_tabs(manager, "chrome")
        assert [(g.title, [t.id for t in tabs]) for g, tabs in groups] == [("Kubernetes", [1, 2])]
        assert len(iter_group_tabs(manager)) == 2
        assert [g.id for g, _ in iter_group_tabs(manager, group_id=2)] == [2]

    def test_open_groups_dry_run(self, capsys):
        manager = SessionTabManager(windows=LAUNCH_SESSION)
        with patch("tabtopics.launch.platform.system", return_value="Darwin"), \
                patch("tabtopics.launch.subprocess.Popen") as popen:
            assert open_groups(manager, "chrome", all_tabs=True, dry_run=True) == 2
        popen.assert_not_called()
        out = capsys.readouterr().out
        assert "[DRY] Kubernetes: open -na Google Chrome --args --new-window https://one.dev/ https://two.dev/" in out
        assert "[DRY] Baking:" in out

    def test_open_groups_launches(self):
        manager = SessionTabManager(windows=LAUNCH_SESSION)
        with patch("tabtopics.launch.platform.system", return_value="Darwin"), \
                patch("tabtopics.launch.subprocess.Popen") as popen:
            assert open_groups(manager, "firefox") == 1
        popen.assert_called_once_with(["open", "-na", "Firefox", "--args", "-new-window", "https://bread.dev/"])

    def test_unsupported_os(self):
        with patch("tabtopics.launch.platform.system", return_value="Linux"):
            with pytest.raises(RuntimeError):
                browser_command("chrome", ["https://a.dev/"])
        with pytest.raises(ValueError):
            browser_command("netscape", [])

    def test_windows_install_located(self, tmp_path):
        exe = tmp_path / "Mozilla Firefox" / "firefox.exe"
        exe.parent.mkdir()
        exe.write_bytes(b"")
        with patch("tabtopics.launch.platform.system", return_value="Windows"), \
                patch.dict(os.environ, {"PROGRAMFILES": str(tmp_path)}):
            assert browser_command("firefox", ["https://a.dev/"]) == [str(exe), "-new-window", "https://a.dev/"]

    def test_windows_missing_browser(self, tmp_path):
        with patch("tabtopics.launch.platform.system", return_value="Windows"), \
                patch.dict(os.environ, {"PROGRAMFILES": str(tmp_path)}, clear=True):
            with pytest.raises(FileNotFoundError):
                browser_command("chrome", ["https://a.dev/"])
