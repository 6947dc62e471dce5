"""Daily visitor check-in automation with email and push notifications."""

from typing import Any

__version__ = "1.2.0"

__all__ = ["__version__", "run_once"]


def __getattr__(name: str) -> Any:
    if name == "run_once":
        from visit_helper.pipeline import run_once as _run_once

        return _run_once
    raise AttributeError(name)
