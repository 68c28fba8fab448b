from __future__ import annotations
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import requests

from .config import AppConfig, GatewayConfig
from .errors import DeliveryError, FallbackWriteError
from .models import AlertRecord, DeliveryReceipt

log = logging.getLogger(__name__)

ALERT_OPEN_TAG = "[LULU_ALERT]"
ALERT_CLOSE_TAG = "[/LULU_ALERT]"

# 2x2 Telegram keyboard; callback_data is what comes back to /callback.
BUTTON_MATRIX = [
    [{"text": "✅ Always Allow", "callback_data": "lulu:allow"},
     {"text": "✅ Allow Once", "callback_data": "lulu:allow-once"}],
    [{"text": "❌ Always Block", "callback_data": "lulu:block"},
     {"text": "❌ Block Once", "callback_data": "lulu:block-once"}],
]


# ──────────────────────────────────────────────
# Localized strings
# ──────────────────────────────────────────────
_TEXT: Dict[str, Dict[str, object]] = {
    "en": {
        "analyze": [
            "Please analyze this LuLu firewall alert:",
            "1. Identify the program and the connection target",
            "2. Assess the risk level (🟢 low / 🟡 medium / 🔴 high)",
            "3. Recommend an action (Allow/Block, always or once)",
        ],
        "auto": [
            "⚡ Auto-execute mode is ON:",
            "If you are highly confident in the decision (well-known safe programs such as "
            "curl/brew/node/git/system services talking to normal targets),",
            "you may act directly:",
            "1. First call exec: curl -X POST {callback_url} -H \"Content-Type: application/json\" "
            "-d \"{{\\\"action\\\":\\\"allow\\\"}}\"",
            "2. Then send a Telegram notice (no buttons) saying it was allowed automatically and why",
            "",
            "If you are not confident or have any doubt, send the notice with buttons and let the user decide.",
        ],
        "send": [
            "Send a summary to Telegram (ID: {target}) with the 2x2 button matrix.",
            "Use the message tool: action=send, channel=telegram, target={target}",
            "buttons format (2x2):",
        ],
        "allowed": "Allowed",
        "blocked": "Blocked",
        "always": "always",
        "once": "once",
        "failed": "Action failed",
    },
    "zh-TW": {
        "analyze": [
            "請分析這個 LuLu 防火牆警報：",
            "1. 識別程式和連線目標",
            "2. 評估風險等級 (🟢低/🟡中/🔴高)",
            "3. 給出建議 (Allow/Block, 永久或本次)",
        ],
        "auto": [
            "⚡ 自動執行模式已開啟：",
            "如果你對決策有高度信心（已知安全程式如 curl/brew/node/git/系統服務連到正常目標），",
            "可以直接執行動作：",
            "1. 先調用 exec: curl -X POST {callback_url} -H \"Content-Type: application/json\" "
            "-d \"{{\\\"action\\\":\\\"allow\\\"}}\"",
            "2. 然後發送 Telegram 通知（無按鈕），說明已自動允許及原因",
            "",
            "如果信心不足或有任何疑慮，改為發送帶按鈕的通知讓用戶決定。",
        ],
        "send": [
            "發送摘要到 Telegram (ID: {target}) 並附上 2x2 按鈕矩陣。",
            "使用 message tool: action=send, channel=telegram, target={target}",
            "buttons 格式 (2x2):",
        ],
        "allowed": "已允許",
        "blocked": "已封鎖",
        "always": "永久",
        "once": "本次",
        "failed": "操作失敗",
    },
}

def _strings(locale: str) -> Dict[str, object]:
    return _TEXT.get(locale, _TEXT["en"])


def format_alert_message(record: AlertRecord, cfg: AppConfig) -> str:
    """Render a record into the prompt the gateway's analyzer receives."""
    text = _strings(cfg.locale)
    port = f"{record.port} ({record.protocol})" if record.port else ""
    lines: List[str] = [
        ALERT_OPEN_TAG,
        f"process: {record.process_name or 'unknown'}",
        f"pid: {record.pid or 'unknown'}",
        f"path: {record.path or 'unknown'}",
        f"args: {record.args or 'none'}",
        f"ip: {record.ip_address or 'unknown'}",
        f"port: {port or 'unknown'}",
        f"dns: {record.reverse_dns or 'unknown'}",
        ALERT_CLOSE_TAG,
        "",
    ]
    lines.extend(text["analyze"])

    if cfg.auto_execute:
        callback_url = f"http://{cfg.control_host}:{cfg.control_port}/callback"
        lines.append("")
        lines.extend(l.format(callback_url=callback_url) for l in text["auto"])

    lines.append("")
    lines.extend(l.format(target=cfg.telegram_id) for l in text["send"])
    rows = [json.dumps(row, ensure_ascii=False, separators=(",", ":")) for row in BUTTON_MATRIX]
    lines.append("[" + rows[0] + ",")
    lines.append(rows[1] + "]")
    return "\n".join(lines)


def format_status_suffix(action: str, success: bool, locale: str = "en") -> str:
    """`✅ **Allowed (always)**` style line appended to the delivered message."""
    text = _strings(locale)
    if not success:
        return f"❌ **{text['failed']}**"
    is_allow = action.startswith("allow")
    duration = text["once"] if action.endswith("-once") else text["always"]
    glyph = "✅" if is_allow else "🚫"
    label = text["allowed"] if is_allow else text["blocked"]
    return f"{glyph} **{label} ({duration})**"


def write_fallback(path: str, message: str) -> Path:
    """Overwrite the fallback file with `message`, creating parent dirs."""
    target = Path(path).expanduser()
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(message, encoding="utf-8")
    except OSError as e:
        raise FallbackWriteError(f"{target}: {e}") from e
    return target


# ──────────────────────────────────────────────
# GatewayClient – delivery + in-place edit
# ──────────────────────────────────────────────
class GatewayClient:
    def __init__(self, cfg: AppConfig, gateway: GatewayConfig,
                 session: Optional[requests.Session] = None):
        self.cfg = cfg
        self.gateway = gateway
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.gateway.token:
            headers["Authorization"] = f"Bearer {self.gateway.token}"
        return headers

    def _post(self, url: str, payload: dict, headers: Dict[str, str]) -> requests.Response:
        try:
            return self.session.post(
                url, data=json.dumps(payload), headers=headers,
                timeout=self.cfg.http_timeout_seconds,
            )
        except requests.Timeout as e:
            raise DeliveryError("Request timeout") from e
        except requests.RequestException as e:
            raise DeliveryError(f"Transport error: {e}") from e

    def forward(self, message: str, record: Optional[AlertRecord] = None) -> DeliveryReceipt:
        if self.cfg.webhook_url:
            return self._forward_webhook(message, record)
        return self._forward_gateway(message)

    def _forward_gateway(self, message: str) -> DeliveryReceipt:
        payload = {
            "tool": "sessions_spawn",
            "args": {
                "task": message,
                "model": self.cfg.model,
                "runTimeoutSeconds": self.cfg.run_timeout_seconds,
                "cleanup": "delete",
            },
        }
        log.debug("Sending to gateway: %s", self.gateway.invoke_url)
        resp = self._post(self.gateway.invoke_url, payload, self._headers())

        if resp.status_code != 200:
            log.debug("Gateway response: %s %s", resp.status_code, resp.text[:200])
            raise DeliveryError(f"Gateway returned {resp.status_code}", status=resp.status_code)
        try:
            body = resp.json()
        except ValueError:
            log.debug("Unparseable gateway body, assuming success: %s", resp.text[:200])
            return DeliveryReceipt(status=resp.status_code)
        if not isinstance(body, dict):
            return DeliveryReceipt(status=resp.status_code)
        if not body.get("ok"):
            err = body.get("error")
            detail = err.get("message") if isinstance(err, dict) else None
            raise DeliveryError(detail or "Unknown error", status=resp.status_code)

        result = body.get("result")
        details = result.get("details") if isinstance(result, dict) else None
        message_id = details.get("messageId") if isinstance(details, dict) else None
        return DeliveryReceipt(
            message_id=str(message_id) if message_id is not None else None,
            status=resp.status_code,
        )

    def _forward_webhook(self, message: str, record: Optional[AlertRecord]) -> DeliveryReceipt:
        payload = {
            "type": "lulu_alert",
            "message": message,
            "data": record.as_dict() if record else {},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        resp = self._post(self.cfg.webhook_url, payload, {"Content-Type": "application/json"})
        if not 200 <= resp.status_code < 300:
            raise DeliveryError(f"Webhook returned {resp.status_code}", status=resp.status_code)
        return DeliveryReceipt(status=resp.status_code)

    def edit_message(self, message_id: str, action: str, success: bool,
                     original: Optional[str] = None) -> bool:
        """Best effort: rewrite the delivered notification with an outcome line."""
        suffix = format_status_suffix(action, success, self.cfg.locale)
        new_message = f"{original}\n\n{suffix}" if original else suffix
        payload = {
            "tool": "message",
            "args": {
                "action": "edit",
                "channel": "telegram",
                "target": self.cfg.telegram_id,
                "messageId": message_id,
                "message": new_message,
            },
        }
        try:
            resp = self._post(self.gateway.invoke_url, payload, self._headers())
        except DeliveryError as e:
            log.debug("Edit message failed: %s", e)
            return False
        log.debug("Edit message result: %s", resp.status_code)
        return resp.status_code == 200
