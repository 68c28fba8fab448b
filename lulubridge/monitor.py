from __future__ import annotations
import enum
import logging
from typing import Optional

from PySide6 import QtCore

from .config import AppConfig
from .errors import DeliveryError, FallbackWriteError, ScrapeFailure
from .extractor import extract
from .forwarder import GatewayClient, format_alert_message, write_fallback
from .models import AlertRecord, MonitorState

log = logging.getLogger(__name__)


class TickOutcome(enum.Enum):
    IDLE = "idle"                    # no window, nothing to clear
    DISMISSED = "dismissed"          # window went away, state cleared
    SEEN = "seen"                    # same alert re-observed
    FORWARDED = "forwarded"
    FALLBACK = "fallback"            # delivery failed, fallback file attempted
    SCRAPE_FAILED = "scrape_failed"


class AlertMonitor:
    """
    IDLE / ALERT_ACTIVE state machine. One call to tick() = one poll.
    Never raises: UI failures read as "no alert", delivery failures end in
    the fallback file.
    """

    def __init__(self, cfg: AppConfig, bridge, client: GatewayClient, state: MonitorState):
        self.cfg = cfg
        self.bridge = bridge
        self.client = client
        self.state = state

    def tick(self) -> TickOutcome:
        try:
            return self._tick()
        except Exception:
            log.exception("Poll error")
            return TickOutcome.IDLE

    def _tick(self) -> TickOutcome:
        with self.state.lock:
            try:
                present = self.bridge.has_alert_window()
            except ScrapeFailure as e:
                log.debug("Window query failed: %s", e)
                present = False

            if not present:
                was_active = self.state.alert_active or self.state.last_fingerprint is not None
                self.state.alert_active = False
                self.state.last_fingerprint = None
                if was_active:
                    log.debug("Alert dismissed")
                    return TickOutcome.DISMISSED
                return TickOutcome.IDLE

            try:
                fragments = self.bridge.scrape_fragments()
            except ScrapeFailure as e:
                log.debug("Failed to extract alert data: %s", e)
                return TickOutcome.SCRAPE_FAILED

            record = extract(fragments)
            self.state.alert_active = True
            if record.fingerprint == self.state.last_fingerprint:
                log.debug("Duplicate alert, skipping")
                return TickOutcome.SEEN
            self.state.last_fingerprint = record.fingerprint

        log.info("New LuLu alert: %s -> %s (%s)",
                 record.process_name or "unknown", record.destination,
                 record.reverse_dns or "no dns")
        log.debug("Texts: %s", ", ".join(record.raw_fragments[:3]))
        return self.forward(record)

    def forward(self, record: AlertRecord) -> TickOutcome:
        message = format_alert_message(record, self.cfg)
        try:
            receipt = self.client.forward(message, record)
        except DeliveryError as e:
            log.warning("Failed to send alert: %s", e)
            self.write_fallback(message)
            return TickOutcome.FALLBACK

        self.state.remember_message(receipt.message_id, message)
        if receipt.message_id:
            log.debug("Saved message ID: %s", receipt.message_id)
        log.info("Alert forwarded")
        return TickOutcome.FORWARDED

    def write_fallback(self, message: str) -> Optional[str]:
        try:
            path = write_fallback(self.cfg.fallback_path, message)
        except FallbackWriteError as e:
            log.error("Failed to write fallback: %s", e)
            return None
        log.info("Wrote alert to fallback file: %s", path)
        return str(path)

    def has_alert(self) -> bool:
        """Live window check for /status; failures read as False."""
        with self.state.lock:
            try:
                return bool(self.bridge.has_alert_window())
            except ScrapeFailure:
                return False


# ──────────────────────────────────────────────
# PollDriver – Qt timer around AlertMonitor.tick
# ──────────────────────────────────────────────
class _TickRunnable(QtCore.QRunnable):
    """Runs one tick on a pool thread."""
    def __init__(self, driver: "PollDriver"):
        super().__init__()
        self._driver = driver
        self.setAutoDelete(True)

    def run(self):
        self._driver.run_tick()


class PollDriver(QtCore.QObject):
    """
    Single-shot timer, re-armed only after the previous tick finished,
    so two ticks never run at once.
    """

    tick_finished = QtCore.Signal(object)   # TickOutcome

    def __init__(self, monitor: AlertMonitor, interval_ms: int,
                 pool: Optional[QtCore.QThreadPool] = None):
        super().__init__()
        self.monitor = monitor
        self._pool = pool if pool is not None else QtCore.QThreadPool.globalInstance()
        self._running = False

        self.timer = QtCore.QTimer(self)
        self.timer.setSingleShot(True)
        self.timer.setInterval(interval_ms)
        self.timer.timeout.connect(self._schedule_tick)
        self.tick_finished.connect(self._on_tick_finished)

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self):
        if self._running:
            log.info("Monitor already running")
            return
        self._running = True
        log.info("Poll interval: %dms", self.timer.interval())
        self._schedule_tick()

    def stop(self):
        self._running = False
        self.timer.stop()

    def _schedule_tick(self):
        if self._running:
            self._pool.start(_TickRunnable(self))

    def run_tick(self):
        """RUNS ON POOL THREAD."""
        outcome = self.monitor.tick()
        self.tick_finished.emit(outcome)

    @QtCore.Slot(object)
    def _on_tick_finished(self, outcome):
        if self._running:
            self.timer.start()
