"""
Snapshot fingerprinting — deterministic digest of a dashboard payload.

The fingerprint is a change-detection aid, NOT a security or integrity
primitive: it is a 32-bit rolling hash and collisions are possible (and easy
to construct on purpose). It only has to answer "did the dashboard data
change since the snapshot was taken?" for honest inputs.

Algorithm:
  1. Serialize the payload to canonical JSON (sorted keys, compact separators).
  2. Fold the UTF-16 code units of that string into a signed 32-bit integer
     with ``h = h * 31 + code`` (wrapping on overflow).
  3. Render the integer in base 36.

Inputs are assumed to be acyclic, JSON-representable structures; anything
else is a caller error and whatever ``json.dumps`` raises propagates.
"""
import json
import struct
from typing import Any

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
_UINT32_MASK = 0xFFFFFFFF


def canonical_json(payload: Any) -> str:
    """Serialize ``payload`` so that equal structures produce identical text."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _utf16_code_units(text: str) -> tuple:
    data = text.encode("utf-16-le", "surrogatepass")
    return struct.unpack(f"<{len(data) // 2}H", data)


def _to_int32(value: int) -> int:
    value &= _UINT32_MASK
    return value - 0x100000000 if value & 0x80000000 else value


def to_base36(value: int) -> str:
    """Render a signed integer in base 36 (``-`` prefix for negatives)."""
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36_DIGITS[rem])
    return sign + "".join(reversed(digits))


def rolling_hash(text: str) -> int:
    """32-bit signed polynomial hash (multiplier 31) over UTF-16 code units."""
    h = 0
    for code in _utf16_code_units(text):
        h = ((h << 5) - h + code) & _UINT32_MASK
    return _to_int32(h)


def fingerprint(payload: Any) -> str:
    """
    Return the fingerprint of ``payload``.

    ``None`` serializes to ``"null"`` and has a stable fingerprint like any
    other value.
    """
    return to_base36(rolling_hash(canonical_json(payload)))
