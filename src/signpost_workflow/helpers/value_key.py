from __future__ import annotations

import re
import uuid
from collections.abc import Iterable

_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]+")


def slugify_label(label: str | None) -> str:
    """Lower-case the label, collapse non-alphanumeric runs to "_" and trim the ends."""
    return _NON_ALPHANUMERIC.sub("_", (label or "").lower()).strip("_")


def random_value_key() -> str:
    return f"path_{uuid.uuid4().hex[:8]}"


def derive_value_key(label: str | None) -> str:
    return slugify_label(label) or random_value_key()


def unique_value_key(base_key: str, taken: Iterable[str]) -> str:
    """Return base_key, or base_key_1, base_key_2, ... whichever is first not taken."""
    taken_keys = set(taken)
    value_key = base_key
    counter = 1
    while value_key in taken_keys:
        value_key = f"{base_key}_{counter}"
        counter += 1
    return value_key
