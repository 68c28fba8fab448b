from __future__ import annotations
import logging
from typing import Optional

from flask import Flask, jsonify, request
from PySide6 import QtCore
from werkzeug.serving import make_server

from .actions import ACTIONS, ActionPlayer
from .errors import ControlServerError
from .forwarder import GatewayClient
from .models import MonitorState

log = logging.getLogger(__name__)

INVALID_ACTION = 'Invalid action. Use "allow", "block", "allow-once", or "block-once"'


def create_app(monitor, player: ActionPlayer, client: GatewayClient,
               state: MonitorState) -> Flask:
    """Loopback control API: /status, /action, /callback."""
    app = Flask("lulubridge.control")

    def _read_action():
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            return None, None, (jsonify(error="Body must be a JSON object"), 400)
        action = body.get("action")
        if action not in ACTIONS:
            return None, None, (jsonify(error=INVALID_ACTION), 400)
        return action, body, None

    @app.get("/status")
    def status():
        snap = state.snapshot()
        return jsonify(
            running=True,
            hasAlert=monitor.has_alert(),
            lastAlertHash=snap["lastAlertHash"],
            lastMessageId=snap["lastMessageId"],
        )

    @app.post("/action")
    def action():
        action, _, error = _read_action()
        if error:
            return error
        result = player.perform(action)
        return jsonify(success=result.success, action=action), (200 if result else 500)

    @app.post("/callback")
    def callback():
        action, body, error = _read_action()
        if error:
            return error
        result = player.perform(action)

        message_id = body.get("messageId") or state.last_message_id
        edited = False
        if message_id:
            edited = client.edit_message(
                str(message_id), action, result.success, state.last_message_content)
        else:
            log.debug("No message id known, skipping edit")
        # messageEdited is always true for callers; editOk carries the real outcome
        return jsonify(success=result.success, action=action,
                       messageEdited=True, editOk=edited), (200 if result else 500)

    @app.errorhandler(404)
    def not_found(_e):
        return jsonify(error="Not found"), 404

    @app.errorhandler(405)
    def not_allowed(_e):
        return jsonify(error="Method not allowed"), 405

    return app


class ControlServer(QtCore.QThread):
    """
    Serves the control app on its own thread. A port that is already bound
    (another instance running) disables the listener instead of exiting.
    """

    def __init__(self, app: Flask, host: str = "127.0.0.1", port: int = 4441):
        super().__init__()
        self.app = app
        self.host = host
        self.port = port
        self._server = None

    def bind(self) -> None:
        try:
            self._server = make_server(self.host, self.port, self.app, threaded=False)
        except (OSError, SystemExit, TypeError, ValueError) as e:
            # werkzeug exits instead of raising on some bind errors
            self._server = None
            raise ControlServerError(f"cannot bind {self.host}:{self.port}: {e}") from e

    @property
    def url(self) -> Optional[str]:
        return f"http://{self.host}:{self.port}" if self._server else None

    def start_listening(self) -> bool:
        try:
            self.bind()
        except ControlServerError as e:
            log.warning("Port %s already in use, command server disabled (%s)", self.port, e)
            log.warning("(Another instance may be running)")
            return False
        self.start()
        log.info("Command server listening on %s", self.url)
        return True

    def run(self):
        try:
            self._server.serve_forever()
        except Exception as e:
            log.error("Command server error: %s", e)

    def stop(self):
        """Graceful shutdown"""
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
        self.wait()
