from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from .errors import UIInteractionPartialFailure, UnsupportedAction
from .models import MonitorState

log = logging.getLogger(__name__)

ACTIONS = ("allow", "block", "allow-once", "block-once")
CALLBACK_PREFIX = "lulu"

SCOPE_ENDPOINT = "endpoint"
DURATION_ALWAYS = "Always"
DURATION_PROCESS = "Process lifetime"


@dataclass(frozen=True)
class Step:
    name: str
    method: str          # LuLuBridge method to call
    arg: Optional[str] = None
    required: bool = False


@dataclass(frozen=True)
class StepOutcome:
    name: str
    status: str          # done|skipped|failed
    detail: str = ""


@dataclass
class ActionResult:
    action: str
    success: bool
    steps: List[StepOutcome] = field(default_factory=list)
    error: str = ""

    def __bool__(self) -> bool:
        return self.success


def build_plan(action: str) -> Tuple[Step, ...]:
    """
    Ordered UI steps for an action: optional setup steps, then one mandatory
    button click. *-once actions pick the process-lifetime duration.
    """
    if action not in ACTIONS:
        raise UnsupportedAction(action)
    once = action.endswith("-once")
    button = "Allow" if action.startswith("allow") else "Block"
    return (
        Step("expand-details", "expand_details"),
        Step("scope", "choose_scope", SCOPE_ENDPOINT),
        Step("duration", "choose_duration", DURATION_PROCESS if once else DURATION_ALWAYS),
        Step(f"click-{button.lower()}", "click_button", button, required=True),
    )


def parse_callback_data(data: str) -> str:
    """`lulu:allow-once[:hash]` → `allow-once`. Raises UnsupportedAction otherwise."""
    parts = (data or "").strip().split(":")
    if len(parts) < 2 or parts[0] != CALLBACK_PREFIX or parts[1] not in ACTIONS:
        raise UnsupportedAction(data)
    return parts[1]


class ActionPlayer:
    """Replays an action into the open LuLu alert through the UI bridge."""

    def __init__(self, bridge, state: MonitorState):
        self.bridge = bridge
        self.state = state

    def perform(self, action: str) -> ActionResult:
        try:
            plan = build_plan(action)
        except UnsupportedAction as e:
            log.warning("Unknown action: %s", action)
            return ActionResult(action=str(action), success=False, error=str(e))

        log.info("Executing: %s", action)
        outcomes: List[StepOutcome] = []
        success = False
        with self.state.lock:
            for step in plan:
                outcome = self._run_step(step)
                outcomes.append(outcome)
                if step.required:
                    success = outcome.status == "done"
            if success:
                self.state.last_fingerprint = None

        skipped = [o.name for o in outcomes if o.status == "skipped"]
        if skipped:
            log.debug("Skipped steps for %s: %s", action, ", ".join(skipped))
        if success:
            log.info("Clicked %s", action)
        else:
            log.warning("Failed to click %s", action)
        return ActionResult(action=action, success=success, steps=outcomes)

    def _run_step(self, step: Step) -> StepOutcome:
        fn: Callable = getattr(self.bridge, step.method)
        try:
            ok = fn(step.arg) if step.arg is not None else fn()
            if not ok:
                raise UIInteractionPartialFailure(step.name, "control not found")
        except UIInteractionPartialFailure as e:
            return StepOutcome(step.name, "failed" if step.required else "skipped", e.detail)
        except Exception as e:
            log.debug("Step %s raised: %s", step.name, e)
            return StepOutcome(step.name, "failed" if step.required else "skipped", str(e))
        return StepOutcome(step.name, "done")

