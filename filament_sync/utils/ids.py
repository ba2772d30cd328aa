# filament_sync/utils/ids.py
from __future__ import annotations

import re
from typing import Any

# Crockford base32, 26 chars, uppercase only (no I, L, O, U)
ULID_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"
_ULID_RE = re.compile(ULID_PATTERN)

# Largest integer a JSON number can carry without precision loss
MAX_SAFE_INTEGER = 2**53 - 1


def is_ulid(value: Any) -> bool:
    return isinstance(value, str) and _ULID_RE.fullmatch(value) is not None
