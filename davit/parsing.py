"""
parsing.py

Pure helpers for the rollout monitor:
- parse_log_line: best-effort structured parsing of one raw log line.
- classify_generation: decide whether a pod runs the image being rolled out.

Neither function raises for string input. Pods ship logs from different
logging agents (GKE structured logging, logrus, zap, plain stdout), so an
unknown shape always degrades to the raw line instead of failing.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

from davit.models import Generation

MATCH_CONTAINS = "contains"
MATCH_EXACT = "exact"
MATCH_STRATEGIES = (MATCH_CONTAINS, MATCH_EXACT)


# =========================
# Log parsing
# =========================

# Each rule is a key path into the decoded JSON object. Rules are tried in
# order and the first one that yields a string wins.
SEVERITY_RULES: Sequence[Tuple[str, ...]] = (
    ("severity",),  # GKE / Cloud Logging
    ("level",),  # logrus, zap, bunyan
)
TIMESTAMP_RULES: Sequence[Tuple[str, ...]] = (
    ("timestamp",),
    ("time",),
)
MESSAGE_RULES: Sequence[Tuple[str, ...]] = (
    ("message",),
    ("msg",),
    ("textPayload",),
    ("fields", "message"),
)


@dataclass(frozen=True)
class ParsedLine:
    message: str
    timestamp: Optional[str] = None
    severity: Optional[str] = None


def _lookup(obj: Dict[str, Any], path: Tuple[str, ...]) -> Optional[str]:
    value: Any = obj
    for key in path:
        if not isinstance(value, dict) or key not in value:
            return None
        value = value[key]
    return value if isinstance(value, str) else None


def extract_first(obj: Dict[str, Any], rules: Sequence[Tuple[str, ...]]) -> Optional[str]:
    """Return the value of the first rule that matches a string in obj."""
    for path in rules:
        value = _lookup(obj, path)
        if value is not None:
            return value
    return None


def _decode_object(line: str) -> Optional[Dict[str, Any]]:
    if not line.startswith("{"):
        return None
    try:
        decoded = json.loads(line)
    except (ValueError, RecursionError):
        return None
    return decoded if isinstance(decoded, dict) else None


def parse_log_line(raw: str) -> ParsedLine:
    """Parse a raw log line; JSON objects get severity, timestamp and message extracted."""
    line = raw.strip()
    obj = _decode_object(line)
    if obj is None:
        return ParsedLine(message=line)

    severity = extract_first(obj, SEVERITY_RULES)
    message = extract_first(obj, MESSAGE_RULES)
    return ParsedLine(
        message=line if message is None else message,
        timestamp=extract_first(obj, TIMESTAMP_RULES),
        severity=severity.upper() if severity is not None else None,
    )


# =========================
# Generation classification
# =========================

def image_tag(image: str) -> Optional[str]:
    """Tag component of an image reference, ignoring registry ports and digests."""
    reference = image.split("@", 1)[0]
    last_segment = reference.rsplit("/", 1)[-1]
    if ":" not in last_segment:
        return None
    return last_segment.rsplit(":", 1)[1]


def classify_generation(image: Optional[str], tag: str, match: str = MATCH_CONTAINS) -> Generation:
    """
    Classify a pod by its first container image.

    With the default "contains" strategy any image whose reference contains
    the tag is NEW, so tag "v1" also matches "app:v10". The "exact" strategy
    compares the parsed tag component instead.
    """
    if not image:
        return Generation.OLD
    if match == MATCH_EXACT:
        return Generation.NEW if image_tag(image) == tag else Generation.OLD
    return Generation.NEW if tag in image else Generation.OLD
