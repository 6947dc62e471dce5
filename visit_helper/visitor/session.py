from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Sequence

from visit_helper.errors import MissingSessionTokenError, TransportError
from visit_helper.json_logger import JsonLogger
from visit_helper.visitor.cookies import find_embedded_token, format_cookie_header, parse_set_cookie_headers
from visit_helper.visitor.headers import navigation_headers
from visit_helper.visitor.http import ExchangeResult, HttpExchange

PRIMARY_TOKEN = "VISITOR"
EMBEDDED_TOKEN = "ik"
REQUIRED_TOKENS: tuple[str, ...] = (PRIMARY_TOKEN, EMBEDDED_TOKEN)


class SessionState(str, Enum):
    INIT = "init"
    FIRST_FETCHED = "first_fetched"
    SECOND_FETCHED = "second_fetched"
    TOKENS_VALIDATED = "tokens_validated"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class AcquiredSession:
    tokens: Mapping[str, str]
    first_get_status: int
    second_get_status: int | None = None

    @property
    def cookie_header(self) -> str:
        return format_cookie_header(self.tokens)


def missing_tokens(tokens: Mapping[str, str], required: Sequence[str] = REQUIRED_TOKENS) -> list[str]:
    return [name for name in required if not tokens.get(name)]


@dataclass
class SessionAcquirer:
    """Collect the cookies the submit endpoint expects.

    ``VISITOR`` arrives as a regular ``Set-Cookie`` header on the landing page.
    ``ik`` is usually written by an inline ``document.cookie = "ik=..."``
    script, so the related page body is scanned for it after the second GET.
    """

    exchange: HttpExchange
    logger: JsonLogger
    landing_path: str
    token_path: str
    required: Sequence[str] = REQUIRED_TOKENS
    state: SessionState = SessionState.INIT
    tokens: dict[str, str] = field(default_factory=dict)
    history: list[SessionState] = field(default_factory=lambda: [SessionState.INIT])

    def _transition(self, state: SessionState, **fields: object) -> None:
        self.state = state
        self.history.append(state)
        self.logger.info(phase="session", message=f"state -> {state.value}", state=state.value, **fields)

    def _fail(self, exc: Exception) -> None:
        self.state = SessionState.FAILED
        self.history.append(SessionState.FAILED)
        fields: dict[str, object] = {"state": SessionState.FAILED.value, "error": str(exc)}
        if isinstance(exc, TransportError):
            fields.update(method=exc.method, hostname=exc.hostname, path=exc.path)
        self.logger.error(phase="session", message="session acquisition failed", **fields)

    def _absorb_embedded(self, response: ExchangeResult, *, source: str) -> bool:
        value = find_embedded_token(response.text, EMBEDDED_TOKEN)
        if value is None:
            return False
        self.tokens[EMBEDDED_TOKEN] = value
        self.logger.info(phase="session", message=f"{EMBEDDED_TOKEN} lifted from page script", source=source)
        return True

    async def _fetch_landing(self) -> ExchangeResult:
        response = await self.exchange.get(self.landing_path, headers=navigation_headers())
        self.tokens.update(parse_set_cookie_headers(response.header_values("set-cookie")))
        self._absorb_embedded(response, source=self.landing_path)
        self._transition(
            SessionState.FIRST_FETCHED,
            status_code=response.status_code,
            cookies=sorted(self.tokens),
        )
        if not self.tokens.get(PRIMARY_TOKEN):
            # Submission will almost certainly fail; validation below decides.
            self.logger.warn(
                phase="session",
                message=f"{PRIMARY_TOKEN} cookie missing after landing page",
                cookies=sorted(self.tokens),
            )
        return response

    async def _fetch_token_page(self) -> ExchangeResult:
        headers = navigation_headers(cookie=format_cookie_header(self.tokens), same_origin=True)
        response = await self.exchange.get(self.token_path, headers=headers)
        self.tokens.update(parse_set_cookie_headers(response.header_values("set-cookie")))
        found = self._absorb_embedded(response, source=self.token_path)
        self._transition(
            SessionState.SECOND_FETCHED,
            status_code=response.status_code,
            embedded_token_found=found,
        )
        return response

    def _validate(self) -> None:
        missing = missing_tokens(self.tokens, self.required)
        if missing:
            raise MissingSessionTokenError(missing)
        self._transition(SessionState.TOKENS_VALIDATED)

    async def acquire(self) -> AcquiredSession:
        try:
            first = await self._fetch_landing()
            second = await self._fetch_token_page()
            self._validate()
        except (TransportError, MissingSessionTokenError) as exc:
            self._fail(exc)
            raise
        session = AcquiredSession(
            tokens=MappingProxyType(dict(self.tokens)),
            first_get_status=first.status_code,
            second_get_status=second.status_code,
        )
        self._transition(SessionState.READY, cookies=sorted(session.tokens))
        return session
