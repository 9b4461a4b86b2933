from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import Optional, Sequence

from .app.handlers import build_handler
from .app.server import HttpServer
from .app.sysinfo import python_version
from .config import AppConfig, load_config
from .ports.clock import Clock, RealClock
from .selftest import run_self_test

logger = logging.getLogger("labserver.server")

SELF_TEST_MODE = "test"
SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="labserver",
        description="Serve the welcome, health and info endpoints, or run the built-in self-test.",
    )
    parser.add_argument(
        "mode",
        nargs="?",
        default=None,
        help=f"'{SELF_TEST_MODE}' runs the self-test; anything else (or nothing) starts the server.",
    )
    return parser.parse_args(argv)


def configure_logging(config: AppConfig) -> None:
    logging.basicConfig(level=config.log_level, format="%(message)s", stream=sys.stdout)


def serve(config: AppConfig, clock: Clock) -> int:
    server = HttpServer(build_handler(config, clock), config.host, config.port)

    def _handler(signum, frame):  # noqa: ARG001
        logger.info("Received %s, shutting down gracefully", signal.Signals(signum).name)
        server.shutdown()

    previous = {signum: signal.getsignal(signum) for signum in SHUTDOWN_SIGNALS}
    for signum in SHUTDOWN_SIGNALS:
        signal.signal(signum, _handler)
    try:
        logger.info("Server running at http://localhost:%s/", server.port)
        logger.info("Environment: %s", config.environment)
        logger.info("Python version: %s", python_version())
        server.serve_forever()
    finally:
        server.close()
        for signum, old in previous.items():
            signal.signal(signum, old)
    logger.info("Server closed")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        config = load_config()
    except ValueError as exc:
        print(f"[labserver] fatal error: {exc}", file=sys.stderr)
        return 1

    configure_logging(config)
    clock = RealClock()
    try:
        if args.mode == SELF_TEST_MODE:
            return run_self_test(config, clock)
        return serve(config, clock)
    except OSError as exc:
        print(f"[labserver] fatal error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover - cli entry point
    sys.exit(main())
