from __future__ import annotations
import json
from typing import List, Optional

import pytest
import requests

from lulubridge.config import AppConfig, GatewayConfig
from lulubridge.errors import DeliveryError, ScrapeFailure
from lulubridge.models import DeliveryReceipt, MonitorState

CURL_FRAGMENTS = ["443 (TCP)", "8.8.8.8", "curl", "/usr/bin/curl", "12345"]


class FakeBridge:
    """Scriptable stand-in for LuLuBridge; records every call."""

    def __init__(self, window: bool = False, fragments: Optional[List[str]] = None):
        self.window = window
        self.fragments = list(fragments or [])
        self.window_error = False
        self.scrape_error = False
        self.missing = set()          # bridge methods whose control is "not found"
        self.calls: List[tuple] = []

    def has_alert_window(self) -> bool:
        self.calls.append(("has_alert_window",))
        if self.window_error:
            raise ScrapeFailure("window list query failed")
        return self.window

    def scrape_fragments(self) -> List[str]:
        self.calls.append(("scrape_fragments",))
        if self.scrape_error:
            raise ScrapeFailure("alert window read failed")
        return list(self.fragments)

    def _click(self, name: str, arg: Optional[str] = None) -> bool:
        self.calls.append((name,) if arg is None else (name, arg))
        return self.window and name not in self.missing

    def expand_details(self) -> bool:
        return self._click("expand_details")

    def choose_scope(self, label: str) -> bool:
        return self._click("choose_scope", label)

    def choose_duration(self, label: str) -> bool:
        return self._click("choose_duration", label)

    def click_button(self, label: str) -> bool:
        return self._click("click_button", label)

    @property
    def ui_calls(self) -> List[tuple]:
        return [c for c in self.calls if c[0] not in ("has_alert_window", "scrape_fragments")]


class FakeClient:
    def __init__(self, fail: bool = False, message_id: Optional[str] = None):
        self.fail = fail
        self.message_id = message_id
        self.sent: List[str] = []
        self.edits: List[tuple] = []

    def forward(self, message, record=None) -> DeliveryReceipt:
        self.sent.append(message)
        if self.fail:
            raise DeliveryError("Request timeout")
        return DeliveryReceipt(message_id=self.message_id)

    def edit_message(self, message_id, action, success, original=None) -> bool:
        self.edits.append((message_id, action, success, original))
        return True


class FakeResponse:
    def __init__(self, status_code: int = 200, body=None, text: Optional[str] = None):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else json.dumps(body)

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    """Minimal requests.Session replacement: canned response or exception."""

    def __init__(self, response=None, exc: Optional[Exception] = None):
        self.response = response or FakeResponse(200, {"ok": True})
        self.exc = exc
        self.posts: List[dict] = []

    def post(self, url, data=None, headers=None, timeout=None):
        self.posts.append({"url": url, "json": json.loads(data), "headers": headers, "timeout": timeout})
        if self.exc:
            raise self.exc
        return self.response


@pytest.fixture
def cfg(tmp_path) -> AppConfig:
    return AppConfig(fallback_path=str(tmp_path / "openclaw" / "lulu-alert.txt"))


@pytest.fixture
def gateway() -> GatewayConfig:
    return GatewayConfig(host="127.0.0.1", port=18789, token="secret-token")


@pytest.fixture
def state() -> MonitorState:
    return MonitorState()


@pytest.fixture
def bridge() -> FakeBridge:
    return FakeBridge()


@pytest.fixture
def timeout_session() -> FakeSession:
    return FakeSession(exc=requests.Timeout("timed out"))
