"""Run the visitor check-in once: acquire session, submit, notify."""
from __future__ import annotations

import traceback
from dataclasses import dataclass

import httpx

from visit_helper.config import Config
from visit_helper.errors import TransportError
from visit_helper.json_logger import JsonLogger, get_logger, timed_event
from visit_helper.notifications import Notifier
from visit_helper.visitor.http import HttpExchange
from visit_helper.visitor.session import SessionAcquirer
from visit_helper.visitor.submit import submit_form

SUCCESS_TITLE = "访客预约脚本执行成功"
FAILURE_TITLE = "访客预约脚本执行失败"
BODY_SNIPPET_CHARS = 500


@dataclass(frozen=True)
class RunResult:
    first_get_status: int
    second_get_status: int | None
    post_status: int
    body_snippet: str
    body: str


def format_success(result: RunResult) -> str:
    lines = [f"GET 状态码：{result.first_get_status}"]
    if result.second_get_status is not None:
        lines.append(f"GET(令牌) 状态码：{result.second_get_status}")
    lines.extend(
        [
            f"POST 状态码：{result.post_status}",
            "",
            "响应片段：",
            result.body_snippet,
        ]
    )
    return "\n".join(lines)


def format_failure(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)).rstrip()


async def run_pipeline(config: Config, *, client: httpx.AsyncClient, logger: JsonLogger) -> RunResult:
    exchange = HttpExchange(client, base_url=config.base_url)
    acquirer = SessionAcquirer(
        exchange=exchange,
        logger=logger.bind(stage="session"),
        landing_path=config.landing_path,
        token_path=config.token_path,
    )
    with timed_event(logger=logger, phase="session", message="session acquisition"):
        session = await acquirer.acquire()

    with timed_event(logger=logger, phase="submit", message="form submission"):
        response = await submit_form(
            exchange,
            session.tokens,
            config.identity,
            submit_path=config.submit_path,
            referer_path=config.referer_path,
            logger=logger.bind(stage="submit"),
        )

    text = response.text
    return RunResult(
        first_get_status=session.first_get_status,
        second_get_status=session.second_get_status,
        post_status=response.status_code,
        body_snippet=text[:BODY_SNIPPET_CHARS],
        body=text,
    )


async def _notify(notifier: Notifier, logger: JsonLogger, title: str, content: str) -> None:
    try:
        results = await notifier.push_message(title, content)
    except Exception as exc:
        logger.error(phase="notify", message="notification dispatch failed", error=repr(exc))
        return
    status = "ok" if any(results.values()) else "warn"
    logger.info(phase="notify", status=status, message=title, channels=results)


async def run_once(
    config: Config,
    *,
    notifier: Notifier | None = None,
    client: httpx.AsyncClient | None = None,
    logger: JsonLogger | None = None,
) -> int:
    """Run the workflow and report the outcome; return the process exit code."""

    owns_logger = logger is None
    logger = logger or get_logger(log_file_path=config.json_log_file or None)
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=config.timeout_seconds)
    notifier = notifier or Notifier(config)
    logger.info(phase="run", message="visitor check-in started", target=config.hostname)
    try:
        try:
            result = await run_pipeline(config, client=client, logger=logger)
        except Exception as exc:
            fields = {"error": str(exc), "error_type": type(exc).__name__}
            if isinstance(exc, TransportError):
                fields.update(method=exc.method, hostname=exc.hostname, path=exc.path, **exc.context)
            logger.error(phase="run", message="visitor check-in failed", **fields)
            await _notify(notifier, logger, FAILURE_TITLE, format_failure(exc))
            return 1

        logger.info(
            phase="run",
            message="visitor check-in finished",
            post_status=result.post_status,
            body_snippet=result.body_snippet,
        )
        await _notify(notifier, logger, SUCCESS_TITLE, format_success(result))
        return 0
    finally:
        if owns_client:
            await client.aclose()
        await notifier.aclose()
        if owns_logger:
            logger.close()
