import re
from urllib.parse import quote
from typing import Any, Mapping

PLACEHOLDER_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")

_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\b": "\\b",
    "\f": "\\f",
}


def escape_json_string(value: str) -> str:
    """Escape a string so it can sit between double quotes in a JSON document."""
    out = []
    for ch in value:
        if ch in _ESCAPES:
            out.append(_ESCAPES[ch])
        elif ord(ch) < 0x20:
            out.append(f"\\u{ord(ch):04x}")
        else:
            out.append(ch)
    return "".join(out)


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return escape_json_string(value)
    return str(value)


def render(template: str, variables: Mapping[str, Any]) -> str:
    """Substitute ``{name}`` placeholders with values from ``variables``.

    Strings are JSON-escaped, numbers and booleans are written as literals.
    Placeholders without a value (unknown or None) are left in place so
    optional fields do not break rendering.
    """
    if not template:
        return template

    def _sub(match: "re.Match[str]") -> str:
        name = match.group(1)
        value = variables.get(name)
        if value is None:
            return match.group(0)
        return _literal(value)

    return PLACEHOLDER_RE.sub(_sub, template)


def render_url(url: str, variables: Mapping[str, Any]) -> str:
    """Like ``render`` but percent-encodes substituted values for use in a URL."""
    if not url:
        return url

    def _sub(match: "re.Match[str]") -> str:
        value = variables.get(match.group(1))
        if value is None:
            return match.group(0)
        if isinstance(value, bool):
            value = "true" if value else "false"
        return quote(str(value), safe="")

    return PLACEHOLDER_RE.sub(_sub, url)
