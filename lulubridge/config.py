from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
import json
import logging

log = logging.getLogger(__name__)

APP_DIR = Path.home() / ".lulubridge"
CFG_PATH = APP_DIR / "config.json"

# The gateway writes its own config; we only read host/port/token from it.
GATEWAY_CONFIG_CANDIDATES = [
    Path.home() / ".openclaw" / "openclaw.json",
    Path.home() / ".openclaw" / "clawdbot.json",
    Path.home() / ".clawdbot" / "clawdbot.json",
]

DEFAULT_FALLBACK_PATH = str(Path.home() / ".openclaw" / "lulu-alert.txt")

SUPPORTED_LOCALES = ("en", "zh-TW")

@dataclass
class AppConfig:
    poll_interval_ms: int = 1000

    # Control surface (loopback only)
    control_host: str = "127.0.0.1"
    control_port: int = 4441

    # Forwarding
    auto_execute: bool = False
    telegram_id: str = "555773901"
    locale: str = "en"
    fallback_path: str = DEFAULT_FALLBACK_PATH
    webhook_url: str = ""                  # "" → deliver through the gateway
    model: str = "haiku"
    run_timeout_seconds: int = 30

    # Timeouts for external calls
    ui_timeout_seconds: float = 5.0
    http_timeout_seconds: float = 8.0


@dataclass
class GatewayConfig:
    host: str = "127.0.0.1"
    port: int = 18789
    token: Optional[str] = None
    source: Optional[str] = None

    @property
    def invoke_url(self) -> str:
        return f"http://{self.host}:{self.port}/tools/invoke"


def _sanitize(cfg: AppConfig) -> AppConfig:
    if cfg.locale not in SUPPORTED_LOCALES:
        log.warning("Unknown locale %r, falling back to 'en'", cfg.locale)
        cfg.locale = "en"
    cfg.poll_interval_ms = max(100, int(cfg.poll_interval_ms))
    try:
        cfg.control_port = int(cfg.control_port)
    except (TypeError, ValueError):
        log.warning("Invalid control_port %r, using %d", cfg.control_port, AppConfig.control_port)
        cfg.control_port = AppConfig.control_port
    cfg.telegram_id = str(cfg.telegram_id)
    return cfg

def load_config(path: Path = None) -> AppConfig:
    path = path or CFG_PATH
    if not path.exists():
        cfg = AppConfig()
        save_config(cfg, path)
        return cfg
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        known = {k: data[k] for k in data if k in AppConfig.__dataclass_fields__}
        return _sanitize(AppConfig(**known))
    except Exception as e:
        log.warning("Config %s unreadable (%s), rewriting defaults", path, e)
        cfg = AppConfig()
        save_config(cfg, path)
        return cfg

def save_config(cfg: AppConfig, path: Path = None) -> None:
    path = path or CFG_PATH
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(cfg.__dict__, indent=2), encoding="utf-8")
    except OSError as e:
        log.warning("Could not save config to %s: %s", path, e)

def load_gateway_config(candidates: List[Path] = None) -> GatewayConfig:
    """First readable candidate wins. Port is top-level, token sits at gateway.auth.token."""
    for path in candidates if candidates is not None else GATEWAY_CONFIG_CANDIDATES:
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError):
            continue
        if not isinstance(data, dict):
            continue

        gw = GatewayConfig(source=str(path))
        if data.get("port"):
            try:
                gw.port = int(data["port"])
            except (TypeError, ValueError):
                log.debug("Ignoring non-numeric gateway port %r", data["port"])
        gateway = data.get("gateway")
        auth = gateway.get("auth") if isinstance(gateway, dict) else None
        if isinstance(auth, dict) and auth.get("token"):
            gw.token = str(auth["token"])
            log.debug("Loaded gateway token from %s", path)
        log.debug("Gateway config from %s -> port %s", path, gw.port)
        return gw

    log.debug("Could not load gateway config from any file")
    return GatewayConfig()
