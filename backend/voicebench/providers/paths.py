import re
from typing import Any, List, Union


class _Missing:
    """Sentinel for a path that does not resolve."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()

_TOKEN_RE = re.compile(r"""\[\s*(?:"([^"]*)"|'([^']*)'|(-?\d+))\s*\]|([^.\[\]]+)""")


def parse_path(path: str) -> List[Union[str, int]]:
    """Split ``result.items[0].text`` into ``["result", "items", 0, "text"]``."""
    parts: List[Union[str, int]] = []
    for m in _TOKEN_RE.finditer(path or ""):
        dq, sq, idx, name = m.groups()
        if idx is not None:
            parts.append(int(idx))
        elif dq is not None:
            parts.append(dq)
        elif sq is not None:
            parts.append(sq)
        elif name is not None and name.strip():
            parts.append(name.strip())
    return parts


def extract(value: Any, path: str) -> Any:
    """Read a nested value out of a parsed JSON tree.

    Returns ``MISSING`` as soon as any step does not resolve; never raises.
    """
    parts = parse_path(path)
    if not parts:
        return MISSING
    current = value
    for part in parts:
        if current is None:
            return MISSING
        if isinstance(current, dict):
            key = part if isinstance(part, str) else str(part)
            if key not in current:
                return MISSING
            current = current[key]
        elif isinstance(current, list):
            if isinstance(part, str):
                if not part.lstrip("-").isdigit():
                    return MISSING
                part = int(part)
            if part < -len(current) or part >= len(current):
                return MISSING
            current = current[part]
        else:
            return MISSING
    if current is None:
        return MISSING
    return current


def extract_or(value: Any, path: str, default: Any = None) -> Any:
    found = extract(value, path)
    return default if found is MISSING else found
