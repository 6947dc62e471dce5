from __future__ import annotations

import logging
import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from typing import Any, Awaitable, Callable

import httpx
from jinja2 import Environment
from markupsafe import Markup

from visit_helper import __version__
from visit_helper.config import Config, EmailSettings
from visit_helper.errors import NotificationConfigError

logger = logging.getLogger(__name__)

APP_NAME = "Visit Helper"
SMTP_SSL_PORT = 465
UPDATE_CHECK_USER_AGENT = "visit-helper"
TEXT = "text"
HTML = "html"

EMAIL_TEMPLATE = """
<section style="font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Arial,sans-serif;background:#f8f9fb;padding:24px;">
  <header style="border-bottom:1px solid #e5e7eb;padding-bottom:12px;margin-bottom:16px;">
    <strong style="font-size:16px;color:#111827;">{{ app_name }}</strong>
  </header>
  {% if release and release.newer %}
  <a href="{{ release.url }}" target="_blank" style="display:block;background:#fff4e5;color:#92400e;padding:8px 12px;border-radius:6px;text-decoration:none;margin-bottom:16px;font-size:13px;">
    发现新版本 {{ release.tag }}，点击查看 ›
  </a>
  {% endif %}
  <main style="background:#fff;padding:16px;border-radius:8px;border:1px solid #e5e7eb;color:#111827;">
    {% if kind == "html" %}{{ content }}{% else %}<pre style="margin:0;font-family:Menlo,Consolas,monospace;">{{ content }}</pre>{% endif %}
  </main>
  <footer style="font-size:12px;color:#6b7280;margin-top:16px;">
    {{ app_name }} v{{ version }} · {{ year }}
  </footer>
</section>
""".strip()

_environment = Environment(autoescape=True)


@dataclass(frozen=True)
class NotificationMessage:
    title: str
    content: str
    kind: str = TEXT


@dataclass(frozen=True)
class ReleaseInfo:
    tag: str
    url: str
    newer: bool


@dataclass(frozen=True)
class SmtpConfig:
    """Resolved SMTP settings.

    The host defaults to ``smtp.<sender domain>``. That matches the mail
    providers this tool is deployed against (163.com, qq.com, ...), not SMTP
    in general; set EMAIL_SMTP_HOST when the provider differs.
    """

    host: str
    port: int
    sender: str
    username: str
    password: str
    to: list[str]
    timeout: float


def _load_smtp_config(settings: EmailSettings, *, timeout: float) -> SmtpConfig:
    if not settings.configured:
        raise NotificationConfigError("Email channel is not configured (EMAIL_USER/EMAIL_PASS/EMAIL_TO).")
    _, sep, domain = settings.user.partition("@")
    if not sep or not domain:
        raise NotificationConfigError(f"Email sender {settings.user!r} has no domain part.")
    recipients = [item.strip() for item in settings.to.split(",") if item.strip()]
    return SmtpConfig(
        host=settings.smtp_host or f"smtp.{domain}",
        port=SMTP_SSL_PORT,
        sender=settings.user,
        username=settings.user,
        password=settings.password,
        to=recipients,
        timeout=timeout,
    )


def _unverified_ssl_context() -> ssl.SSLContext:
    # Personal-use deployment: accept self-signed or mismatched certificates.
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def _parse_version(raw: str) -> tuple[int, int, int]:
    parts = raw.strip().lstrip("vV").split(".")
    numbers: list[int] = []
    for part in (parts + ["0", "0", "0"])[:3]:
        digits = ""
        for char in part:
            if not char.isdigit():
                break
            digits += char
        numbers.append(int(digits) if digits else 0)
    return numbers[0], numbers[1], numbers[2]


def compare_versions(current: str, latest: str) -> int:
    """Return <0, 0 or >0 as ``current`` is older, equal or newer than ``latest``."""

    a = _parse_version(current)
    b = _parse_version(latest)
    return (a > b) - (a < b)


def render_email_html(message: NotificationMessage, release: ReleaseInfo | None = None) -> str:
    content: Any = Markup(message.content) if message.kind == HTML else message.content
    template = _environment.from_string(EMAIL_TEMPLATE)
    return template.render(
        app_name=APP_NAME,
        release=release,
        kind=message.kind,
        content=content,
        version=__version__,
        year=datetime.now().year,
    )


def _send_email(config: SmtpConfig, subject: str, html: str) -> None:
    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = f"{APP_NAME} <{config.sender}>"
    message["To"] = ", ".join(config.to)
    message.set_content("This message requires an HTML capable mail client.")
    message.add_alternative(html, subtype="html")
    with smtplib.SMTP_SSL(
        config.host, config.port, timeout=config.timeout, context=_unverified_ssl_context()
    ) as client:
        client.login(config.username, config.password)
        client.send_message(message, to_addrs=config.to)


class Notifier:
    """Deliver run results by email, plus any configured push channels.

    Every channel is attempted independently and in order; one failing never
    stops the others and nothing is raised to the caller.
    """

    def __init__(self, config: Config, *, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self.client = client
        self._owns_client = client is None
        self.release: ReleaseInfo | None = None

    async def _http(self) -> httpx.AsyncClient:
        if self.client is None:
            self.client = httpx.AsyncClient(timeout=self.config.timeout_seconds)
        return self.client

    async def aclose(self) -> None:
        if self.client is not None and self._owns_client:
            await self.client.aclose()
            self.client = None

    async def email(self, message: NotificationMessage) -> None:
        smtp_config = _load_smtp_config(self.config.email, timeout=self.config.timeout_seconds)
        html = render_email_html(message, self.release)
        _send_email(smtp_config, message.title, html)

    async def dingtalk_webhook(self, message: NotificationMessage) -> None:
        if not self.config.dingtalk_webhook:
            raise NotificationConfigError("DingTalk webhook is not configured (DINGDING_WEBHOOK).")
        client = await self._http()
        response = await client.post(
            self.config.dingtalk_webhook,
            json={"msgtype": "text", "text": {"content": f"{message.title}\n{message.content}"}},
        )
        response.raise_for_status()

    async def serverchan(self, message: NotificationMessage) -> None:
        if not self.config.serverchan_url:
            raise NotificationConfigError("ServerChan relay is not configured (SERVERCHAN_URL).")
        client = await self._http()
        response = await client.get(
            self.config.serverchan_url,
            params={"title": message.title, "desp": message.content},
        )
        response.raise_for_status()

    async def check_update(self) -> ReleaseInfo | None:
        """Best-effort, non-fatal: return release info or ``None`` on any failure."""

        if not self.config.releases_url:
            return None
        try:
            return await self._fetch_latest_release()
        except Exception as exc:
            logger.debug("version check skipped: %r", exc)
            return None

    async def _fetch_latest_release(self) -> ReleaseInfo | None:
        client = await self._http()
        response = await client.get(
            self.config.releases_url,
            headers={"User-Agent": UPDATE_CHECK_USER_AGENT},
        )
        response.raise_for_status()
        data = response.json()
        latest = data[0] if isinstance(data, list) and data else None
        if not isinstance(latest, dict) or not latest.get("tag_name"):
            return None
        tag = str(latest["tag_name"])
        return ReleaseInfo(
            tag=tag,
            url=str(latest.get("html_url") or self.config.homepage_url),
            newer=compare_versions(__version__, tag) < 0,
        )

    def _channels(self) -> list[tuple[str, Callable[[NotificationMessage], Awaitable[None]]]]:
        channels: list[tuple[str, Callable[[NotificationMessage], Awaitable[None]]]] = [("email", self.email)]
        if self.config.dingtalk_webhook:
            channels.append(("dingtalk", self.dingtalk_webhook))
        if self.config.serverchan_url:
            channels.append(("serverchan", self.serverchan))
        return channels

    async def push_message(self, title: str, content: str, kind: str = TEXT) -> dict[str, bool]:
        message = NotificationMessage(title=title, content=content, kind=kind)
        self.release = await self.check_update()

        results: dict[str, bool] = {}
        for label, action in self._channels():
            try:
                await action(message)
            except NotificationConfigError as exc:
                logger.warning("[%s] channel not configured: %s", label, exc)
                results[label] = False
            except Exception:
                logger.exception("[%s] notification delivery failed", label)
                results[label] = False
            else:
                logger.info("[%s] notification delivered", label)
                results[label] = True
        return results
