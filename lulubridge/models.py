from __future__ import annotations
import threading
from dataclasses import dataclass, field
from typing import Optional, Tuple

FINGERPRINT_MAX_CHARS = 200

@dataclass(frozen=True)
class AlertRecord:
    raw_fragments: Tuple[str, ...] = ()
    process_name: str = ""
    pid: str = ""
    path: str = ""
    args: str = ""
    ip_address: str = ""
    port: str = ""
    protocol: str = ""
    reverse_dns: str = ""

    @property
    def fingerprint(self) -> str:
        """Dedup key: identity fields when known, else a truncated fragment join."""
        if self.process_name or self.pid or self.ip_address or self.port:
            return f"{self.process_name}|{self.pid}|{self.ip_address}|{self.port}"
        return "|".join(self.raw_fragments)[:FINGERPRINT_MAX_CHARS]

    @property
    def destination(self) -> str:
        ip = self.ip_address or "unknown"
        return f"{ip}:{self.port}" if self.port else ip

    def as_dict(self) -> dict:
        return {
            "processName": self.process_name,
            "pid": self.pid,
            "path": self.path,
            "args": self.args,
            "ipAddress": self.ip_address,
            "port": self.port,
            "protocol": self.protocol,
            "reverseDNS": self.reverse_dns,
            "rawTexts": list(self.raw_fragments),
        }


@dataclass(frozen=True)
class DeliveryReceipt:
    message_id: Optional[str] = None
    status: int = 200


@dataclass
class MonitorState:
    """
    Process-wide bridge state. `lock` serializes every UI-automation call
    and every mutation below; take it with `with state.lock:`.
    """
    last_fingerprint: Optional[str] = None
    last_message_id: Optional[str] = None
    last_message_content: Optional[str] = None
    alert_active: bool = False
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def remember_message(self, message_id: Optional[str], content: str) -> None:
        with self.lock:
            if message_id:
                self.last_message_id = message_id
                self.last_message_content = content

    def clear_alert(self) -> None:
        with self.lock:
            self.last_fingerprint = None

    def snapshot(self) -> dict:
        with self.lock:
            return {
                "lastAlertHash": self.last_fingerprint,
                "lastMessageId": self.last_message_id,
                "alertActive": self.alert_active,
            }
