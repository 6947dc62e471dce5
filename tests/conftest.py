import io
import json
import sys
from pathlib import Path
from typing import Callable

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from visit_helper.config import Config  # noqa: E402
from visit_helper.json_logger import JsonLogger  # noqa: E402

BASE_URL = "https://visitor.example.edu.cn"


@pytest.fixture
def make_config() -> Callable[..., Config]:
    def _make(**overrides: str) -> Config:
        env = {
            "VISIT_BASE_URL": BASE_URL,
            "VISIT_NAME": "张三",
            "VISIT_ID_NUMBER": "110101199001011234",
            "VISIT_PHONE": "13900001111",
        }
        env.update(overrides)
        return Config.from_mapping(env)

    return _make


@pytest.fixture
def log_stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def json_logger(log_stream: io.StringIO) -> JsonLogger:
    return JsonLogger(run_id="test-run", stream=log_stream)


def read_events(stream: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)


@pytest.fixture
def events(log_stream: io.StringIO) -> Callable[[], list[dict]]:
    return lambda: read_events(log_stream)


@pytest.fixture
def make_transport() -> type[RecordingTransport]:
    return RecordingTransport
