from __future__ import annotations
import threading
import time

from lulubridge.actions import ActionPlayer
from lulubridge.monitor import AlertMonitor, TickOutcome

from conftest import CURL_FRAGMENTS, FakeBridge, FakeClient


class BlockingScrapeBridge(FakeBridge):
    """Holds the scrape open until released; notes any click made meanwhile."""

    def __init__(self):
        super().__init__(window=True, fragments=CURL_FRAGMENTS)
        self.scraping = False
        self.scrape_started = threading.Event()
        self.release = threading.Event()
        self.overlapping: list = []

    def scrape_fragments(self):
        self.scraping = True
        self.scrape_started.set()
        try:
            self.release.wait(5)
            return super().scrape_fragments()
        finally:
            self.scraping = False

    def _click(self, name, arg=None):
        if self.scraping:
            self.overlapping.append(name)
        return super()._click(name, arg)


def test_action_waits_for_tick_scrape(cfg, state):
    bridge = BlockingScrapeBridge()
    monitor = AlertMonitor(cfg, bridge, FakeClient(message_id="1"), state)
    player = ActionPlayer(bridge, state)
    results = {}

    ticker = threading.Thread(target=lambda: results.update(tick=monitor.tick()))
    actor = threading.Thread(target=lambda: results.update(action=player.perform("allow")))

    ticker.start()
    assert bridge.scrape_started.wait(5)
    actor.start()
    time.sleep(0.1)
    assert bridge.ui_calls == []

    bridge.release.set()
    ticker.join(5)
    actor.join(5)
    assert not ticker.is_alive() and not actor.is_alive()

    assert bridge.overlapping == []
    assert results["tick"] is TickOutcome.FORWARDED
    assert results["action"].success
    assert ("click_button", "Allow") in bridge.ui_calls
    scrape_at = bridge.calls.index(("scrape_fragments",))
    first_click = bridge.calls.index(bridge.ui_calls[0])
    assert scrape_at < first_click
