from __future__ import annotations
import logging
import subprocess
import sys
from typing import List, Optional

import psutil

from .errors import ScrapeFailure
from .extractor import FRAGMENT_SEPARATOR, parse_scraped_output

log = logging.getLogger(__name__)

PROCESS_NAME = "LuLu"
ALERT_WINDOW_MARKER = "LuLu Alert"
DETAILS_BUTTON = "Details & Options"


# ──────────────────────────────────────────────
# AppleScript sources
# ──────────────────────────────────────────────
_CHECK_ALERT = f'''
tell application "System Events"
  if exists process "{PROCESS_NAME}" then
    tell process "{PROCESS_NAME}"
      repeat with wName in (name of every window)
        if wName contains "{ALERT_WINDOW_MARKER}" then return "true"
      end repeat
    end tell
  end if
end tell
return "false"
'''

# Recursive value/title/description dump of the front alert window.
_SCRAPE_ALERT = f'''
on textsOf(elem)
  set texts to {{}}
  tell application "System Events"
    try
      set v to value of elem
      if v is not missing value and v is not "" then set end of texts to (v as text)
    end try
    try
      set t to title of elem
      if t is not missing value and t is not "" then set end of texts to (t as text)
    end try
    try
      set d to description of elem
      if d is not missing value and d is not "" then set end of texts to (d as text)
    end try
    try
      repeat with child in (UI elements of elem)
        set texts to texts & my textsOf(child)
      end repeat
    end try
  end tell
  return texts
end textsOf

set outputText to ""
tell application "System Events"
  tell process "{PROCESS_NAME}"
    try
      set alertWindow to window 1
    on error errMsg
      return "ERROR:" & errMsg
    end try
  end tell
end tell
repeat with t in my textsOf(alertWindow)
  set outputText to outputText & t & "{FRAGMENT_SEPARATOR}"
end repeat
return outputText
'''

_EXPAND_DETAILS = f'''
tell application "System Events"
  tell process "{PROCESS_NAME}"
    set frontmost to true
    if (count of pop up buttons of window 1) > 0 then return "ok"
    click button "{DETAILS_BUTTON}" of window 1
  end tell
end tell
delay 0.2
return "ok"
'''

_CHOOSE_FROM_POPUP = '''
tell application "System Events"
  tell process "{process}"
    set frontmost to true
    set popup to pop up button {index} of window 1
    click popup
    delay 0.2
    click (first menu item of menu 1 of popup whose name contains "{label}")
  end tell
end tell
delay 0.2
return "ok"
'''

_CHOOSE_RADIO = '''
tell application "System Events"
  tell process "{process}"
    set frontmost to true
    try
      click radio button "{label}" of window 1
    on error
      click radio button "{label}" of group 1 of window 1
    end try
  end tell
end tell
delay 0.2
return "ok"
'''

_CLICK_BUTTON = '''
tell application "System Events"
  tell process "{process}"
    set frontmost to true
    delay 0.2
    click button "{label}" of window 1
  end tell
end tell
return "ok"
'''

SCOPE_POPUP_INDEX = 1
DURATION_POPUP_INDEX = 2


def _quote(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


class LuLuBridge:
    """
    Thin wrapper around `osascript` talking to System Events.
    Not thread-safe by itself; callers hold MonitorState.lock.
    """

    def __init__(self, timeout: float = 5.0, osascript: str = "osascript"):
        self.timeout = timeout
        self.osascript = osascript

    # ── low level ─────────────────────────────
    def run_script(self, source: str) -> Optional[str]:
        """Run one AppleScript. Returns stripped stdout, None on any failure."""
        try:
            proc = subprocess.run(
                [self.osascript, "-e", source],
                capture_output=True, text=True, timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            log.debug("osascript timed out after %.1fs", self.timeout)
            return None
        except OSError as e:
            log.debug("osascript not runnable: %s", e)
            return None
        if proc.returncode != 0:
            log.debug("osascript error: %s", proc.stderr.strip())
            return None
        return proc.stdout.strip()

    # ── queries ───────────────────────────────
    def lulu_running(self) -> bool:
        for p in psutil.process_iter(["name"]):
            try:
                if p.info.get("name") == PROCESS_NAME:
                    return True
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        return False

    def has_alert_window(self) -> bool:
        if sys.platform != "darwin":
            raise ScrapeFailure("UI automation needs macOS")
        try:
            if not self.lulu_running():
                return False
        except psutil.Error as e:
            raise ScrapeFailure(f"process list unavailable: {e}") from e
        out = self.run_script(_CHECK_ALERT)
        if out is None:
            raise ScrapeFailure("window list query failed")
        return out == "true"

    def scrape_fragments(self) -> List[str]:
        out = self.run_script(_SCRAPE_ALERT)
        if out is None:
            raise ScrapeFailure("alert window read failed")
        if out.startswith("ERROR:"):
            raise ScrapeFailure(out[len("ERROR:"):].strip())
        return parse_scraped_output(out)

    # ── interactions (True = control found and clicked) ─
    def expand_details(self) -> bool:
        return self.run_script(_EXPAND_DETAILS) == "ok"

    def choose_scope(self, label: str) -> bool:
        src = _CHOOSE_FROM_POPUP.format(
            process=PROCESS_NAME, index=SCOPE_POPUP_INDEX, label=_quote(label))
        return self.run_script(src) == "ok"

    def choose_duration(self, label: str) -> bool:
        src = _CHOOSE_FROM_POPUP.format(
            process=PROCESS_NAME, index=DURATION_POPUP_INDEX, label=_quote(label))
        if self.run_script(src) == "ok":
            return True
        # Older LuLu builds show duration as radio buttons.
        src = _CHOOSE_RADIO.format(process=PROCESS_NAME, label=_quote(label))
        return self.run_script(src) == "ok"

    def click_button(self, label: str) -> bool:
        src = _CLICK_BUTTON.format(process=PROCESS_NAME, label=_quote(label))
        return self.run_script(src) == "ok"
