from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

import httpx

from visit_helper.errors import TransportError


def _freeze_headers(headers: httpx.Headers) -> Mapping[str, str | list[str]]:
    collected: dict[str, str | list[str]] = {}
    for name, value in headers.multi_items():
        key = name.lower()
        existing = collected.get(key)
        if existing is None:
            collected[key] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            collected[key] = [existing, value]
    return MappingProxyType(collected)


@dataclass(frozen=True)
class ExchangeResult:
    status_code: int
    headers: Mapping[str, str | list[str]] = field(default_factory=dict)
    body: bytes = b""

    def header_values(self, name: str) -> list[str]:
        value = self.headers.get(name.lower())
        if value is None:
            return []
        if isinstance(value, list):
            return list(value)
        return [value]

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class HttpExchange:
    """Issue one request at a time and hand back the complete response.

    Redirects are not followed and the client's cookie jar is emptied after
    every exchange: session tokens are tracked by the caller and sent as an
    explicit ``Cookie`` header.
    """

    def __init__(self, client: httpx.AsyncClient, *, base_url: str) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")

    def url_for(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: Mapping[str, str],
        content: bytes | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> ExchangeResult:
        url = self.url_for(path)
        try:
            response = await self.client.request(
                method,
                url,
                headers=dict(headers),
                content=content,
                follow_redirects=False,
            )
            body = response.content
        except httpx.RequestError as exc:
            raise TransportError(method=method, url=url, cause=exc, context=context) from exc
        finally:
            self.client.cookies.clear()
        return ExchangeResult(
            status_code=response.status_code,
            headers=_freeze_headers(response.headers),
            body=body,
        )

    async def get(self, path: str, *, headers: Mapping[str, str]) -> ExchangeResult:
        return await self.request("GET", path, headers=headers)

    async def post(
        self,
        path: str,
        *,
        headers: Mapping[str, str],
        content: bytes,
        context: Mapping[str, Any] | None = None,
    ) -> ExchangeResult:
        return await self.request("POST", path, headers=headers, content=content, context=context)
