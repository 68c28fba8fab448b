from __future__ import annotations


class BridgeError(Exception):
    """Base class for everything the bridge raises on purpose."""


class ScrapeFailure(BridgeError):
    """UI query or element read failed. Callers treat it as "no alert"."""


class DeliveryError(BridgeError):
    """Gateway/webhook returned a non-success answer or could not be reached."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class FallbackWriteError(BridgeError):
    pass


class UnsupportedAction(BridgeError):
    def __init__(self, action: object):
        super().__init__(f"Unsupported action: {action!r}")
        self.action = action


class UIInteractionPartialFailure(BridgeError):
    """
    One optional step of an action sequence could not find its control.
    Recorded on the step outcome; never propagated out of a sequence.
    """

    def __init__(self, step: str, detail: str = ""):
        super().__init__(f"{step}: {detail}" if detail else step)
        self.step = step
        self.detail = detail


class ControlServerError(BridgeError):
    pass
