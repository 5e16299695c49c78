from __future__ import annotations

import os
from typing import List, Optional, Sequence


def _read(name: str, strip: bool) -> Optional[str]:
    raw = os.environ.get(name)
    if raw is not None and strip:
        raw = raw.strip()
    return raw


def env_str(name: str, default: str, *, strip: bool = True) -> str:
    raw = _read(name, strip)
    return default if raw is None else raw


def env_optional_str(name: str, default: Optional[str] = None, *, strip: bool = True) -> Optional[str]:
    """Like env_str, but an empty value also yields ``default``."""

    return _read(name, strip) or default


def env_int(name: str, default: int, *, minimum: Optional[int] = None) -> int:
    raw = _read(name, True)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if minimum is not None and value < minimum:
        return default
    return value


def env_list(name: str, default: Sequence[str] = ()) -> List[str]:
    """Comma-separated list; blank entries are dropped."""

    raw = _read(name, False)
    if raw is None:
        return list(default)
    items = [part.strip() for part in raw.split(",")]
    return [item for item in items if item] or list(default)
