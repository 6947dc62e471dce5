from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Sequence

from visit_helper import __version__
from visit_helper.config import Config, ConfigError
from visit_helper.json_logger import get_logger
from visit_helper.notifications import Notifier
from visit_helper.pipeline import run_once


def _run(args: argparse.Namespace) -> int:
    try:
        config = Config.load_from_env()
    except ConfigError as exc:
        print(f"[visit-helper] configuration error: {exc}", file=sys.stderr)
        return 2
    logger = get_logger(run_id=args.run_id, log_file_path=config.json_log_file or None)
    try:
        return asyncio.run(run_once(config, logger=logger))
    finally:
        logger.close()


async def _check_update(config: Config) -> int:
    notifier = Notifier(config)
    try:
        release = await notifier.check_update()
    finally:
        await notifier.aclose()
    if release is None:
        print(f"[visit-helper] v{__version__}: no release information available", flush=True)
    elif release.newer:
        print(f"[visit-helper] v{__version__}: {release.tag} available at {release.url}", flush=True)
    else:
        print(f"[visit-helper] v{__version__} is up to date", flush=True)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="visit-helper", description="Visitor check-in automation")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Submit today's check-in once and exit")
    run_parser.add_argument("--run-id", dest="run_id", type=str, default=None, help="Override generated run id")

    subparsers.add_parser("check-update", help="Report whether a newer release is published")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] [%(name)s] %(message)s")
    parser = _build_parser()
    parsed = parser.parse_args(list(argv) if argv is not None else sys.argv[1:])

    if parsed.command == "run":
        return _run(parsed)

    if parsed.command == "check-update":
        try:
            config = Config.load_from_env()
        except ConfigError as exc:
            print(f"[visit-helper] configuration error: {exc}", file=sys.stderr)
            return 2
        return asyncio.run(_check_update(config))

    parser.error("Unknown command")
    return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
