from __future__ import annotations

import httpx
import pytest

from visit_helper.errors import MissingSessionTokenError, TransportError
from visit_helper.visitor.http import HttpExchange
from visit_helper.visitor.session import SessionAcquirer, SessionState

LANDING = "/visitor/?xq=mh"
TOKEN_PAGE = "/visitor/"


def _acquirer(client: httpx.AsyncClient, config, json_logger) -> SessionAcquirer:
    return SessionAcquirer(
        exchange=HttpExchange(client, base_url=config.base_url),
        logger=json_logger,
        landing_path=config.landing_path,
        token_path=config.token_path,
    )


def _site(landing: httpx.Response, token_page: httpx.Response):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.raw_path == LANDING.encode():
            return landing
        if request.url.raw_path == TOKEN_PAGE.encode():
            return token_page
        return httpx.Response(404)

    return handler


@pytest.mark.asyncio
async def test_acquire_collects_header_cookie_and_embedded_token(make_config, make_transport, json_logger) -> None:
    config = make_config()
    transport = make_transport(
        _site(
            httpx.Response(200, headers=[("Set-Cookie", "VISITOR=abc123; Path=/")], text="<html></html>"),
            httpx.Response(200, text='<script>document.cookie = "ik=def456"; location.reload();</script>'),
        )
    )

    async with httpx.AsyncClient(transport=transport) as client:
        acquirer = _acquirer(client, config, json_logger)
        session = await acquirer.acquire()

    assert dict(session.tokens) == {"VISITOR": "abc123", "ik": "def456"}
    assert session.first_get_status == 200
    assert session.second_get_status == 200
    assert session.cookie_header == "VISITOR=abc123; ik=def456"
    assert acquirer.history == [
        SessionState.INIT,
        SessionState.FIRST_FETCHED,
        SessionState.SECOND_FETCHED,
        SessionState.TOKENS_VALIDATED,
        SessionState.READY,
    ]
    landing_request, token_request = transport.requests
    assert "Cookie" not in landing_request.headers
    assert landing_request.headers["Sec-Fetch-Site"] == "none"
    assert landing_request.headers["Accept-Encoding"] == "identity"
    assert token_request.headers["Cookie"] == "VISITOR=abc123"
    assert token_request.headers["Sec-Fetch-Site"] == "same-origin"


@pytest.mark.asyncio
async def test_embedded_token_overrides_header_value(make_config, make_transport, json_logger) -> None:
    config = make_config()
    transport = make_transport(
        _site(
            httpx.Response(200, headers=[("Set-Cookie", "VISITOR=abc123"), ("Set-Cookie", "ik=stale")]),
            httpx.Response(200, text="<script>document.cookie='ik=fresh'</script>"),
        )
    )

    async with httpx.AsyncClient(transport=transport) as client:
        session = await _acquirer(client, config, json_logger).acquire()

    assert session.tokens["ik"] == "fresh"


@pytest.mark.asyncio
async def test_tokens_are_read_only_after_acquisition(make_config, make_transport, json_logger) -> None:
    config = make_config()
    transport = make_transport(
        _site(
            httpx.Response(200, headers=[("Set-Cookie", "VISITOR=abc123")]),
            httpx.Response(200, text='document.cookie="ik=def456"'),
        )
    )

    async with httpx.AsyncClient(transport=transport) as client:
        session = await _acquirer(client, config, json_logger).acquire()

    with pytest.raises(TypeError):
        session.tokens["ik"] = "other"  # type: ignore[index]


@pytest.mark.asyncio
async def test_missing_visitor_cookie_warns_then_fails_validation(
    make_config, make_transport, json_logger, events
) -> None:
    config = make_config()
    transport = make_transport(
        _site(
            httpx.Response(200, text="<html></html>"),
            httpx.Response(200, text='document.cookie="ik=def456"'),
        )
    )

    async with httpx.AsyncClient(transport=transport) as client:
        acquirer = _acquirer(client, config, json_logger)
        with pytest.raises(MissingSessionTokenError) as excinfo:
            await acquirer.acquire()

    assert excinfo.value.missing == ["VISITOR"]
    assert "VISITOR" in str(excinfo.value)
    assert acquirer.state is SessionState.FAILED
    # Degraded continuation: the second GET is still issued.
    assert len(transport.requests) == 2
    statuses = [event["status"] for event in events()]
    assert "warn" in statuses
    assert statuses[-1] == "error"


@pytest.mark.asyncio
async def test_missing_both_tokens_names_both(make_config, make_transport, json_logger) -> None:
    config = make_config()
    transport = make_transport(_site(httpx.Response(200), httpx.Response(200, text="no script")))

    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(MissingSessionTokenError) as excinfo:
            await _acquirer(client, config, json_logger).acquire()

    assert excinfo.value.missing == ["VISITOR", "ik"]


@pytest.mark.asyncio
async def test_transport_error_on_first_get_aborts_immediately(make_config, make_transport, json_logger) -> None:
    config = make_config()

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    transport = make_transport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        acquirer = _acquirer(client, config, json_logger)
        with pytest.raises(TransportError) as excinfo:
            await acquirer.acquire()

    assert len(transport.requests) == 1
    assert excinfo.value.method == "GET"
    assert excinfo.value.hostname == "visitor.example.edu.cn"
    assert excinfo.value.path == LANDING
    assert acquirer.history == [SessionState.INIT, SessionState.FAILED]


@pytest.mark.asyncio
async def test_transport_error_on_second_get_aborts(make_config, make_transport, json_logger) -> None:
    config = make_config()

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.raw_path == TOKEN_PAGE.encode():
            raise httpx.ReadError("connection reset", request=request)
        return httpx.Response(200, headers=[("Set-Cookie", "VISITOR=abc123")])

    transport = make_transport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        acquirer = _acquirer(client, config, json_logger)
        with pytest.raises(TransportError) as excinfo:
            await acquirer.acquire()

    assert excinfo.value.path == TOKEN_PAGE
    assert acquirer.history[-2:] == [SessionState.FIRST_FETCHED, SessionState.FAILED]


@pytest.mark.asyncio
async def test_undecodable_response_fails_session_with_request_context(
    make_config, make_transport, json_logger
) -> None:
    config = make_config()

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.DecodingError("corrupt gzip body", request=request)

    transport = make_transport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        acquirer = _acquirer(client, config, json_logger)
        with pytest.raises(TransportError) as excinfo:
            await acquirer.acquire()

    assert isinstance(excinfo.value.cause, httpx.DecodingError)
    assert excinfo.value.method == "GET"
    assert excinfo.value.hostname == "visitor.example.edu.cn"
    assert excinfo.value.path == LANDING
    assert acquirer.state is SessionState.FAILED
