from __future__ import annotations
import re
from typing import Iterable, List

from .models import AlertRecord

FRAGMENT_SEPARATOR = "|||"

# ──────────────────────────────────────────────
# Patterns, checked in this order. Order is the contract:
# a fragment is claimed by the first pattern whose field is still empty.
# ──────────────────────────────────────────────
_IPV4_RE = re.compile(r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}$")
_PORT_PROTO_RE = re.compile(r"^(\d{1,5})\s*\((TCP|UDP)\)$", re.IGNORECASE)
_PID_RE = re.compile(r"^\d{4,6}$")
_HOSTNAME_RE = re.compile(r"^(?:[A-Za-z0-9-]+\.)+[A-Za-z]{2,}\.?$")
_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+$")

_NAME_MAX_CHARS = 30

# Section headers and labels LuLu renders around the values.
SKIP_FRAGMENTS = {s.lower() for s in (
    "Details & Options", "LuLu Alert", "Process:", "Connection:",
    "pid:", "args:", "path:", "port/protocol:", "ip address:",
    "(reverse) dns:", "Rule Scope:", "Rule Duration:", "Time stamp:",
    "none", "unknown",
)}

# UI chrome that looks like a bare name but never is one. Matched as whole
# tokens: "XPCProcessService" is a real name, "Process" is a label.
NAME_STOP_WORDS = frozenset(w.lower() for w in (
    "Details", "Options", "Process", "Connection", "LuLu", "Alert",
    "Block", "Allow", "Always", "lifetime", "endpoint", "Cancel",
))


def is_ipv4(text: str) -> bool:
    return bool(_IPV4_RE.match(text))

def is_port_protocol(text: str) -> bool:
    return bool(_PORT_PROTO_RE.match(text))

def is_pid(text: str) -> bool:
    return bool(_PID_RE.match(text))

def is_path(text: str) -> bool:
    return text.startswith("/")

def is_args(text: str) -> bool:
    return text.startswith(("http://", "https://", "-"))

def is_hostname(text: str) -> bool:
    return bool(_HOSTNAME_RE.match(text)) and not is_ipv4(text.rstrip("."))

def is_process_name(text: str) -> bool:
    if len(text) >= _NAME_MAX_CHARS or not _NAME_RE.match(text):
        return False
    if not any(c.isalpha() for c in text):
        return False
    return text.lower() not in NAME_STOP_WORDS

def is_label(text: str) -> bool:
    return text.endswith(":") or text.lower() in SKIP_FRAGMENTS


def parse_scraped_output(stdout: str) -> List[str]:
    """Split the bridge's `|||`-joined scrape into fragments, dropping blanks."""
    return [t for t in (stdout or "").split(FRAGMENT_SEPARATOR) if t.strip()]


# Field each predicate feeds, in priority order.
_CLASSIFIERS = (
    ("ip_address", is_ipv4),
    ("port", is_port_protocol),
    ("pid", is_pid),
    ("path", is_path),
    ("args", is_args),
    ("reverse_dns", is_hostname),
    ("process_name", is_process_name),
)


def classify(text: str) -> str:
    """Field a stripped fragment belongs to, or "" for labels and noise."""
    if not text or is_label(text):
        return ""
    for name, predicate in _CLASSIFIERS:
        if predicate(text):
            return name
    return ""


def extract(fragments: Iterable[str]) -> AlertRecord:
    """
    Reassemble scraped fragments into an AlertRecord.

    Single pass in scraped order. A fragment belongs to exactly one field
    (the first predicate it satisfies) and each field keeps its first
    fragment; later look-alikes are ignored. Never raises: unmatched text
    only stays in `raw_fragments`, and no input gives an all-unknown record.
    """
    raw = tuple(str(f) for f in (fragments or ()) if f is not None)
    fields = dict.fromkeys(
        ("process_name", "pid", "path", "args", "ip_address",
         "port", "protocol", "reverse_dns"), "")

    for fragment in raw:
        text = fragment.strip()
        kind = classify(text)
        if not kind or fields[kind]:
            continue

        if kind == "port":
            m = _PORT_PROTO_RE.match(text)
            fields["port"] = m.group(1)
            fields["protocol"] = m.group(2).upper()
        elif kind == "path":
            fields["path"] = text
            name = text.rstrip("/").rsplit("/", 1)[-1]
            if name and not fields["process_name"]:
                fields["process_name"] = name
        elif kind == "reverse_dns":
            fields["reverse_dns"] = text.rstrip(".")
        else:
            fields[kind] = text

    return AlertRecord(raw_fragments=raw, **fields)
