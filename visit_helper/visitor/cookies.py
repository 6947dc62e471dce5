"""Lift session tokens out of ``Set-Cookie`` headers and inline scripts."""
from __future__ import annotations

import re
from typing import Iterable, Mapping

# document.cookie = "ik=<value>"  /  Document.Cookie='ik=<value>; path=/'
# Only the property is case-insensitive; the token name must match exactly.
_EMBEDDED_TEMPLATE = r"""(?i:document\.cookie)\s*=\s*(["']){name}=([^"';\s]+)[^"']*\1"""


def parse_set_cookie_headers(headers: Iterable[str | None]) -> dict[str, str]:
    jar: dict[str, str] = {}
    for header in headers:
        if not header:
            continue
        pair = header.split(";", 1)[0]
        name, sep, value = pair.partition("=")
        if not sep:
            continue
        name = name.strip()
        if not name:
            continue
        jar[name] = value.strip()
    return jar


def find_embedded_token(body: str, name: str = "ik") -> str | None:
    pattern = re.compile(_EMBEDDED_TEMPLATE.format(name=re.escape(name)))
    match = pattern.search(body or "")
    if not match:
        return None
    return match.group(2)


def format_cookie_header(tokens: Mapping[str, str]) -> str:
    return "; ".join(f"{name}={value}" for name, value in tokens.items())
