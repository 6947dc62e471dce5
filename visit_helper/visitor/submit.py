from __future__ import annotations

from datetime import datetime, timezone
from typing import Mapping
from urllib.parse import urlencode

from visit_helper.config import VisitorIdentity
from visit_helper.json_logger import JsonLogger, mask_value
from visit_helper.visitor.cookies import format_cookie_header
from visit_helper.visitor.headers import form_headers
from visit_helper.visitor.http import ExchangeResult, HttpExchange

# The site schedules visits in Asia/Shanghai; no DST, so a fixed offset is enough.
SHANGHAI_OFFSET_MINUTES = 8 * 60
MORNING = "1"
AFTERNOON = "2"
PAYLOAD_PREVIEW_CHARS = 200
_MASKED_FIELDS = ("xm", "zjhm", "phone")


def compute_time_period(now: datetime | None = None) -> str:
    """Return ``"1"`` before local noon in UTC+8 and ``"2"`` from noon on."""

    current = now or datetime.now(timezone.utc)
    if current.tzinfo is not None:
        current = current.astimezone(timezone.utc)
    utc_minutes = current.hour * 60 + current.minute
    local_hour = ((utc_minutes + SHANGHAI_OFFSET_MINUTES) // 60) % 24
    return MORNING if local_hour < 12 else AFTERNOON


def build_payload(identity: VisitorIdentity, now: datetime | None = None) -> dict[str, str]:
    return {
        "campus": identity.campus,
        "time": compute_time_period(now),
        "xm": identity.name,
        "zjhm": identity.id_number,
        "phone": identity.phone,
    }


def payload_preview(payload: Mapping[str, str]) -> str:
    masked = {key: mask_value(value) if key in _MASKED_FIELDS else value for key, value in payload.items()}
    return urlencode(masked)[:PAYLOAD_PREVIEW_CHARS]


async def submit_form(
    exchange: HttpExchange,
    tokens: Mapping[str, str],
    identity: VisitorIdentity,
    *,
    submit_path: str,
    referer_path: str,
    logger: JsonLogger,
    now: datetime | None = None,
) -> ExchangeResult:
    """POST the visitor form with the acquired session cookies.

    A non-2xx status is returned to the caller, not raised: the site reports
    success or rejection in the page text.
    """

    payload = build_payload(identity, now)
    body = urlencode(payload).encode("utf-8")
    headers = form_headers(
        base_url=exchange.base_url,
        referer_path=referer_path,
        cookie=format_cookie_header(tokens),
        content_length=len(body),
    )
    preview = payload_preview(payload)
    logger.info(phase="submit", message="posting visitor form", path=submit_path, time_period=payload["time"])
    response = await exchange.post(
        submit_path,
        headers=headers,
        content=body,
        context={"payload_preview": preview},
    )
    status = "ok" if response.ok else "warn"
    logger.info(
        phase="submit",
        status=status,
        message="visitor form response received",
        status_code=response.status_code,
        body_bytes=len(response.body),
    )
    return response
