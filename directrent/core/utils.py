import hashlib
import json
import math
import re
from typing import Any, Iterable

from .constants import PROPERTY_TYPE_ALIASES

_POSTCODE_AREA = re.compile(r"^([A-Z]{1,2})")

def normalize_postcode(postcode: str | None) -> str:
    """
    Minimal normalization so encodings & cache keys are stable:
    - trim whitespace
    - uppercase
    - collapse multiple spaces
    """
    if not postcode:
        return ""
    return " ".join(str(postcode).strip().upper().split())

def postcode_district(postcode: str | None) -> str:
    """Outward code, e.g. 'SW1A 1AA' -> 'SW1A'."""
    norm = normalize_postcode(postcode)
    return norm.split(" ")[0] if norm else ""

def postcode_area(postcode: str | None) -> str:
    """Leading letters of the postcode, e.g. 'LS6 2AB' -> 'LS'."""
    m = _POSTCODE_AREA.match(normalize_postcode(postcode))
    return m.group(1) if m else ""

def canonical_property_type(value: str | None) -> str:
    """'apartment' -> 'Flat'; unknown spellings are returned trimmed."""
    if not value:
        return ""
    text = str(value).strip()
    return PROPERTY_TYPE_ALIASES.get(text.lower(), text)

def fnv1a_32(s: str) -> int:
    """Deterministic, fast hash for categorical encodings."""
    h = 0x811c9dc5
    for c in s.encode("utf-8"):
        h ^= c
        h = (h * 0x01000193) & 0xFFFFFFFF
    return h

def stable_code(value: str | None, buckets: int) -> int:
    """Map a free-text category to a stable bucket in [0, buckets)."""
    if not value:
        return 0
    return fnv1a_32(value.strip().lower()) % buckets

def round_half_up(x: float) -> int:
    """Currency rounding (.5 rounds up, unlike the builtin round)."""
    return int(math.floor(x + 0.5))

def price_band(estimate: float, spread: float) -> tuple[int, int]:
    """Symmetric +/- spread around an estimate, rounded to whole units."""
    low = round_half_up(estimate * (1 - spread))
    high = round_half_up(estimate * (1 + spread))
    return low, high

def clamp(x: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, x))

def to_float(value: Any, default: float | None = None) -> float | None:
    """Lenient numeric coercion for loosely-typed listing payloads."""
    if value is None or isinstance(value, bool):
        return default
    try:
        out = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(out):
        return default
    return out

def is_missing(value: Any) -> bool:
    """None and blank strings count as missing; 0 and False do not."""
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False

def missing_fields(payload: dict, required: Iterable[str]) -> list[str]:
    return [f for f in required if is_missing(payload.get(f))]

def cache_key(prefix: str, payload: dict) -> str:
    """Stable key for a JSON-able payload."""
    blob = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return f"{prefix}:{hashlib.sha256(blob.encode('utf-8')).hexdigest()[:32]}"

def canonical_furnishing(value: str | None) -> str:
    """'part furnished' / 'PART-FURNISHED' -> 'Part-Furnished'."""
    if not value:
        return ""
    key = "-".join(str(value).strip().lower().replace("_", " ").split())
    return {
        "furnished": "Furnished",
        "unfurnished": "Unfurnished",
        "part-furnished": "Part-Furnished",
    }.get(key, str(value).strip())
