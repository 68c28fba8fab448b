from __future__ import annotations
import subprocess
from types import SimpleNamespace

import pytest

from lulubridge import bridge as bridge_mod
from lulubridge.bridge import LuLuBridge
from lulubridge.errors import ScrapeFailure


class Recorder:
    def __init__(self, *results):
        self.results = list(results)
        self.scripts = []

    def __call__(self, cmd, capture_output, text, timeout):
        self.scripts.append(cmd[2])
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def done(stdout="", code=0):
    return SimpleNamespace(returncode=code, stdout=stdout, stderr="err")


@pytest.fixture
def macos(monkeypatch):
    monkeypatch.setattr(bridge_mod.sys, "platform", "darwin")
    monkeypatch.setattr(LuLuBridge, "lulu_running", lambda self: True)


def test_scrape_splits_fragments(monkeypatch):
    monkeypatch.setattr(subprocess, "run", Recorder(done("curl|||8.8.8.8|||  |||443 (TCP)|||\n")))
    assert LuLuBridge().scrape_fragments() == ["curl", "8.8.8.8", "443 (TCP)"]


def test_scrape_error_marker(monkeypatch):
    monkeypatch.setattr(subprocess, "run", Recorder(done("ERROR:no window")))
    with pytest.raises(ScrapeFailure, match="no window"):
        LuLuBridge().scrape_fragments()


def test_timeout_is_a_failure(monkeypatch):
    monkeypatch.setattr(subprocess, "run", Recorder(subprocess.TimeoutExpired("osascript", 5)))
    with pytest.raises(ScrapeFailure):
        LuLuBridge().scrape_fragments()


def test_has_alert_window(monkeypatch, macos):
    monkeypatch.setattr(subprocess, "run", Recorder(done("true\n"), done("false\n")))
    b = LuLuBridge()
    assert b.has_alert_window() is True
    assert b.has_alert_window() is False


def test_has_alert_window_query_error(monkeypatch, macos):
    monkeypatch.setattr(subprocess, "run", Recorder(done("", code=1)))
    with pytest.raises(ScrapeFailure):
        LuLuBridge().has_alert_window()


def test_no_lulu_process_skips_osascript(monkeypatch):
    monkeypatch.setattr(bridge_mod.sys, "platform", "darwin")
    monkeypatch.setattr(LuLuBridge, "lulu_running", lambda self: False)
    rec = Recorder()
    monkeypatch.setattr(subprocess, "run", rec)
    assert LuLuBridge().has_alert_window() is False
    assert rec.scripts == []


def test_non_macos_is_a_scrape_failure(monkeypatch):
    monkeypatch.setattr(bridge_mod.sys, "platform", "linux")
    with pytest.raises(ScrapeFailure):
        LuLuBridge().has_alert_window()


def test_duration_falls_back_to_radio(monkeypatch):
    rec = Recorder(done("", code=1), done("ok"))
    monkeypatch.setattr(subprocess, "run", rec)
    assert LuLuBridge().choose_duration("Process lifetime") is True
    assert "pop up button 2" in rec.scripts[0]
    assert 'radio button "Process lifetime"' in rec.scripts[1]


def test_click_button_quotes_label(monkeypatch):
    rec = Recorder(done("ok"))
    monkeypatch.setattr(subprocess, "run", rec)
    assert LuLuBridge().click_button('Al"low') is True
    assert 'button "Al\\"low" of window 1' in rec.scripts[0]
