from __future__ import annotations
import json

from lulubridge.config import AppConfig, load_config, load_gateway_config, save_config


def test_first_run_writes_defaults(tmp_path):
    path = tmp_path / "lulubridge" / "config.json"
    cfg = load_config(path)
    assert cfg == AppConfig()
    assert json.loads(path.read_text(encoding="utf-8"))["control_port"] == 4441


def test_known_keys_loaded_unknown_ignored(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"auto_execute": True, "telegram_id": 123, "bogus": 1}))
    cfg = load_config(path)
    assert cfg.auto_execute is True
    assert cfg.telegram_id == "123"


def test_corrupt_file_is_replaced(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{broken")
    assert load_config(path) == AppConfig()
    assert json.loads(path.read_text(encoding="utf-8"))["poll_interval_ms"] == 1000


def test_unknown_locale_and_tiny_interval_are_sanitized(tmp_path):
    path = tmp_path / "config.json"
    save_config(AppConfig(locale="fr", poll_interval_ms=5), path)
    cfg = load_config(path)
    assert cfg.locale == "en"
    assert cfg.poll_interval_ms == 100


def test_gateway_first_readable_candidate_wins(tmp_path):
    missing = tmp_path / "missing.json"
    broken = tmp_path / "broken.json"
    broken.write_text("nope")
    good = tmp_path / "openclaw.json"
    good.write_text(json.dumps({"port": 19000, "gateway": {"auth": {"token": "t0k"}}}))
    later = tmp_path / "later.json"
    later.write_text(json.dumps({"port": 1}))

    gw = load_gateway_config([missing, broken, good, later])
    assert gw.port == 19000
    assert gw.token == "t0k"
    assert gw.source == str(good)
    assert gw.invoke_url == "http://127.0.0.1:19000/tools/invoke"


def test_gateway_defaults_when_nothing_readable(tmp_path):
    gw = load_gateway_config([tmp_path / "nope.json"])
    assert (gw.host, gw.port, gw.token, gw.source) == ("127.0.0.1", 18789, None, None)


def test_gateway_without_token(tmp_path):
    path = tmp_path / "c.json"
    path.write_text(json.dumps({"gateway": "not-a-dict"}))
    gw = load_gateway_config([path])
    assert gw.token is None
    assert gw.port == 18789


def test_string_control_port_is_coerced(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"control_port": "4450"}))
    assert load_config(path).control_port == 4450


def test_garbage_control_port_falls_back_to_default(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"control_port": "not-a-port", "auto_execute": True}))
    cfg = load_config(path)
    assert cfg.control_port == 4441
    assert cfg.auto_execute is True
