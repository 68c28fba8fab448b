from __future__ import annotations
from PySide6 import QtCore
import argparse
import logging
import signal
import sys
from typing import List, Optional

from .actions import ACTIONS, ActionPlayer, parse_callback_data
from .bridge import LuLuBridge
from .config import AppConfig, load_config, load_gateway_config
from .control import ControlServer, create_app
from .errors import UnsupportedAction
from .forwarder import GatewayClient
from .models import MonitorState
from .monitor import AlertMonitor, PollDriver

log = logging.getLogger("lulubridge")

LOG_FORMAT = "[%(asctime)s] [%(name)s] %(message)s"


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stdout,
    )
    # request-level lines from the HTTP stacks are noise at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="lulubridge",
        description="Forward LuLu firewall alerts to the decision gateway and replay the answer.",
    )
    p.add_argument("command", nargs="?", choices=list(ACTIONS) + ["callback"],
                   help="one-shot: act on the open alert and exit")
    p.add_argument("data", nargs="?", help="callback data for `callback`, e.g. lulu:allow")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    p.add_argument("--poll", type=int, metavar="MS", help="poll interval in milliseconds")
    p.add_argument("--port", type=int, help="control server port")
    p.add_argument("--webhook", metavar="URL", help="deliver alerts to this webhook instead")
    return p


def apply_overrides(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    if args.poll:
        cfg.poll_interval_ms = max(100, args.poll)
    if args.port:
        cfg.control_port = args.port
    if args.webhook:
        cfg.webhook_url = args.webhook
    return cfg


class Controller(QtCore.QObject):
    """
    Wires the pieces together:
    - poll driver (single-shot timer, tick on pool thread)
    - control server (own thread, same UI lock)
    """
    def __init__(self, cfg: AppConfig, bridge: LuLuBridge, client: GatewayClient,
                 state: MonitorState):
        super().__init__()
        self.cfg = cfg
        self.state = state
        self.monitor = AlertMonitor(cfg, bridge, client, state)
        self.player = ActionPlayer(bridge, state)

        self.driver = PollDriver(self.monitor, cfg.poll_interval_ms)
        self.driver.tick_finished.connect(self.on_tick)

        app = create_app(self.monitor, self.player, client, state)
        self.server = ControlServer(app, cfg.control_host, cfg.control_port)

    def start(self):
        self.server.start_listening()
        self.driver.start()
        log.info("Watching for LuLu alerts...")
        if self.cfg.auto_execute:
            log.info("Auto-execute mode ENABLED - high confidence alerts will be handled automatically")

    def stop(self):
        self.driver.stop()
        self.server.stop()
        log.info("Monitor stopped")

    @QtCore.Slot(object)
    def on_tick(self, outcome):
        log.debug("Tick: %s", outcome.value)


def run_once(command: str, data: Optional[str], bridge: LuLuBridge, state: MonitorState) -> int:
    if command == "callback":
        try:
            command = parse_callback_data(data or "")
        except UnsupportedAction as e:
            log.error("Invalid callback format: %s", e)
            return 1
    result = ActionPlayer(bridge, state).perform(command)
    return 0 if result else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    cfg = apply_overrides(load_config(), args)
    state = MonitorState()
    bridge = LuLuBridge(timeout=cfg.ui_timeout_seconds)

    if args.command:
        return run_once(args.command, args.data, bridge, state)

    log.info("LuLu bridge starting...")
    gateway = load_gateway_config()
    if gateway.source:
        log.debug("Gateway %s:%s (from %s)", gateway.host, gateway.port, gateway.source)
    client = GatewayClient(cfg, gateway)

    app = QtCore.QCoreApplication(sys.argv[:1])
    controller = Controller(cfg, bridge, client, state)

    signal.signal(signal.SIGINT, lambda *_: app.quit())
    signal.signal(signal.SIGTERM, lambda *_: app.quit())
    # Lets the interpreter run signal handlers while Qt sits in its loop.
    wakeup = QtCore.QTimer()
    wakeup.start(250)
    wakeup.timeout.connect(lambda: None)

    controller.start()
    code = app.exec()

    controller.stop()
    return code


if __name__ == "__main__":
    sys.exit(main())
