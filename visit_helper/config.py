"""
CONFIG.PY: configuration for one check-in run.

This module is the ONLY place allowed to read environment variables.
Everything else receives a ``Config`` instance explicitly (the workflow, the
notifier and the CLI) and never calls ``os.getenv`` itself.

Values come from the process environment, optionally seeded from a ``.env``
file at the project root; OS env overrides ``.env`` automatically.

The identity defaults below are placeholders for local testing only. A real
deployment must set VISIT_NAME / VISIT_ID_NUMBER / VISIT_PHONE.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping
from urllib.parse import urlsplit

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://qiandao.sjtu.edu.cn"
DEFAULT_LANDING_PATH = "/visitor/?xq=mh"
DEFAULT_TOKEN_PATH = "/visitor/"
DEFAULT_SUBMIT_PATH = "/visitor/submit.php"
DEFAULT_REFERER_PATH = "/visitor/"
DEFAULT_TIMEOUT_SECONDS = 30

DEFAULT_CAMPUS = "闵行校区"
DEFAULT_NAME = "测试访客"
DEFAULT_ID_NUMBER = "000000000000000000"
DEFAULT_PHONE = "13800000000"


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded."""


def _get(env: Mapping[str, str], key: str, default: str = "") -> str:
    value = env.get(key)
    if value is None:
        return default
    stripped = value.strip()
    return stripped or default


def _parse_int(value: str, *, key: str) -> int:
    try:
        parsed = int(value.strip())
    except (TypeError, ValueError):
        message = f"Config key {key} must be an integer; got {value!r}"
        logger.error(message)
        raise ConfigError(message)
    if parsed <= 0:
        message = f"Config key {key} must be positive; got {parsed}"
        logger.error(message)
        raise ConfigError(message)
    return parsed


def _clean_url(value: str, *, key: str) -> str:
    stripped = value.strip().rstrip("/")
    if not stripped.startswith(("http://", "https://")):
        message = f"Config key {key} must be an http(s) URL; got {value!r}"
        logger.error(message)
        raise ConfigError(message)
    try:
        parts = urlsplit(stripped)
        parts.port  # raises ValueError on a malformed port
    except ValueError as exc:
        message = f"Config key {key} is not a valid URL; got {value!r}"
        logger.error(message)
        raise ConfigError(message) from exc
    if not parts.hostname:
        message = f"Config key {key} has no host; got {value!r}"
        logger.error(message)
        raise ConfigError(message)
    return stripped


def _optional_url(value: str, *, key: str) -> str:
    return _clean_url(value, key=key) if value else ""


def _clean_path(value: str, *, key: str) -> str:
    if not value.startswith("/"):
        message = f"Config key {key} must start with '/'; got {value!r}"
        logger.error(message)
        raise ConfigError(message)
    return value


@dataclass(slots=True, frozen=True)
class VisitorIdentity:
    campus: str
    name: str
    id_number: str
    phone: str


@dataclass(slots=True, frozen=True)
class EmailSettings:
    user: str
    password: str
    to: str
    smtp_host: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.user and self.password and self.to)


@dataclass(slots=True, frozen=True)
class Config:
    base_url: str
    landing_path: str
    token_path: str
    submit_path: str
    referer_path: str
    timeout_seconds: int
    identity: VisitorIdentity
    email: EmailSettings
    dingtalk_webhook: str = ""
    serverchan_url: str = ""
    releases_url: str = ""
    homepage_url: str = ""
    json_log_file: str = ""

    @property
    def hostname(self) -> str:
        return urlsplit(self.base_url).hostname or self.base_url

    @classmethod
    def from_mapping(cls, env: Mapping[str, str]) -> Config:
        return cls(
            base_url=_clean_url(_get(env, "VISIT_BASE_URL", DEFAULT_BASE_URL), key="VISIT_BASE_URL"),
            landing_path=_clean_path(
                _get(env, "VISIT_LANDING_PATH", DEFAULT_LANDING_PATH), key="VISIT_LANDING_PATH"
            ),
            token_path=_clean_path(_get(env, "VISIT_TOKEN_PATH", DEFAULT_TOKEN_PATH), key="VISIT_TOKEN_PATH"),
            submit_path=_clean_path(
                _get(env, "VISIT_SUBMIT_PATH", DEFAULT_SUBMIT_PATH), key="VISIT_SUBMIT_PATH"
            ),
            referer_path=_clean_path(
                _get(env, "VISIT_REFERER_PATH", DEFAULT_REFERER_PATH), key="VISIT_REFERER_PATH"
            ),
            timeout_seconds=_parse_int(
                _get(env, "VISIT_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_SECONDS)), key="VISIT_TIMEOUT_SECONDS"
            ),
            identity=VisitorIdentity(
                campus=_get(env, "VISIT_CAMPUS", DEFAULT_CAMPUS),
                name=_get(env, "VISIT_NAME", DEFAULT_NAME),
                id_number=_get(env, "VISIT_ID_NUMBER", DEFAULT_ID_NUMBER),
                phone=_get(env, "VISIT_PHONE", DEFAULT_PHONE),
            ),
            email=EmailSettings(
                user=_get(env, "EMAIL_USER"),
                password=_get(env, "EMAIL_PASS"),
                to=_get(env, "EMAIL_TO"),
                smtp_host=_get(env, "EMAIL_SMTP_HOST"),
            ),
            dingtalk_webhook=_optional_url(_get(env, "DINGDING_WEBHOOK"), key="DINGDING_WEBHOOK"),
            serverchan_url=_optional_url(_get(env, "SERVERCHAN_URL"), key="SERVERCHAN_URL"),
            releases_url=_optional_url(_get(env, "RELEASES_URL"), key="RELEASES_URL"),
            homepage_url=_optional_url(_get(env, "HOMEPAGE_URL"), key="HOMEPAGE_URL"),
            json_log_file=_get(env, "JSON_LOG_FILE"),
        )

    @classmethod
    def load_from_env(cls, *, dotenv_path: Path | None = None) -> Config:
        load_dotenv(dotenv_path or PROJECT_ROOT / ".env")
        if os.getenv("DEBUG_CONFIG") == "1":
            print("[CONFIG] Loaded .env from:", dotenv_path or PROJECT_ROOT / ".env")
        return cls.from_mapping(os.environ)
