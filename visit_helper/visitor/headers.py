"""Browser-like header sets shared by the bootstrap GETs and the form POST."""
from __future__ import annotations

from typing import Mapping

# WeChat in-app browser on iOS; the visitor page only renders for mobile agents.
USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 18_7 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Mobile/15E148 MicroMessenger/8.0.65(0x1800412a) NetType/WIFI Language/zh_CN"
)

BASE_HEADERS: Mapping[str, str] = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "zh-CN,zh-Hans;q=0.9",
    "Accept-Encoding": "identity",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Dest": "document",
    "Priority": "u=0, i",
    "User-Agent": USER_AGENT,
}


def build_headers(**overrides: str | None) -> dict[str, str]:
    """Compose the fixed base with per-request headers.

    Keyword names map to header names by swapping ``_`` for ``-``
    (``sec_fetch_site`` -> ``Sec-Fetch-Site``). ``None`` drops a header.
    """

    headers = dict(BASE_HEADERS)
    for key, value in overrides.items():
        name = "-".join(part.capitalize() for part in key.split("_"))
        if value is None:
            headers.pop(name, None)
        else:
            headers[name] = value
    return headers


def navigation_headers(*, cookie: str | None = None, same_origin: bool = False) -> dict[str, str]:
    return build_headers(
        sec_fetch_site="same-origin" if same_origin else "none",
        cookie=cookie or None,
    )


def form_headers(*, base_url: str, referer_path: str, cookie: str, content_length: int) -> dict[str, str]:
    return build_headers(
        content_type="application/x-www-form-urlencoded",
        content_length=str(content_length),
        sec_fetch_site="same-origin",
        origin=base_url,
        referer=f"{base_url}{referer_path}",
        cookie=cookie,
    )
