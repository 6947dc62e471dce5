"""Session bootstrap and form submission against the visitor check-in site."""

from visit_helper.visitor.cookies import find_embedded_token, format_cookie_header, parse_set_cookie_headers
from visit_helper.visitor.http import ExchangeResult, HttpExchange
from visit_helper.visitor.session import AcquiredSession, SessionAcquirer, SessionState
from visit_helper.visitor.submit import build_payload, compute_time_period, submit_form

__all__ = [
    "AcquiredSession",
    "ExchangeResult",
    "HttpExchange",
    "SessionAcquirer",
    "SessionState",
    "build_payload",
    "compute_time_period",
    "find_embedded_token",
    "format_cookie_header",
    "parse_set_cookie_headers",
    "submit_form",
]
