"""Self-test mode: boot the server on an ephemeral port and probe it over HTTP."""

from __future__ import annotations

import json
import sys
import threading
import urllib.error
import urllib.request
from typing import Any, Dict, Optional, TextIO, Tuple

from .app.handlers import RequestProcessor, build_handler
from .app.server import HttpServer
from .config import AppConfig
from .ports.clock import Clock, RealClock

SELF_TEST_HOST = "127.0.0.1"
REQUEST_TIMEOUT = 5.0


class SelfTestError(Exception):
    """A self-test stage did not hold."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"{stage} failed: {message}")
        self.stage = stage
        self.message = message


def _check(condition: bool, stage: str, message: str) -> None:
    if not condition:
        raise SelfTestError(stage, message)


def _get_json(url: str, stage: str) -> Tuple[int, Dict[str, Any]]:
    try:
        with urllib.request.urlopen(url, timeout=REQUEST_TIMEOUT) as resp:
            status = resp.getcode()
            raw = resp.read()
    except urllib.error.HTTPError as err:
        status = err.code
        raw = err.read()
    except (urllib.error.URLError, OSError) as exc:
        raise SelfTestError("HTTP request", str(getattr(exc, "reason", exc))) from exc
    try:
        payload = json.loads(raw.decode() or "{}")
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SelfTestError(stage, "response body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise SelfTestError(stage, "response body is not a JSON object")
    return status, payload


def check_arithmetic() -> None:
    _check(2 + 2 == 4, "Math test", "2 + 2 should equal 4")


def check_health(base_url: str) -> None:
    stage = "Health endpoint test"
    status, payload = _get_json(f"{base_url}/health", stage)
    _check(status == 200, stage, f"Health endpoint should return 200, got {status}")
    _check(payload.get("status") == "healthy", stage, "Health status should be healthy")
    _check(bool(payload.get("timestamp")), stage, "Should have timestamp")
    uptime = payload.get("uptime")
    _check(
        isinstance(uptime, (int, float)) and not isinstance(uptime, bool),
        stage,
        "Uptime should be a number",
    )


def check_info(base_url: str) -> None:
    stage = "Info endpoint test"
    status, payload = _get_json(f"{base_url}/info", stage)
    _check(status == 200, stage, f"Info endpoint should return 200, got {status}")
    _check(bool(payload.get("platform")), stage, "Should have platform info")


def run_self_test(
    config: AppConfig,
    clock: Optional[Clock] = None,
    *,
    processor: Optional[RequestProcessor] = None,
    out: Optional[TextIO] = None,
    err: Optional[TextIO] = None,
) -> int:
    """Run every stage in order and return the process exit code."""

    out = out or sys.stdout
    err = err or sys.stderr
    print("[self-test] running tests...", file=out)

    try:
        check_arithmetic()
    except SelfTestError as exc:
        print(f"[self-test] {exc}", file=err)
        return 1
    print("[self-test] Math test passed", file=out)

    processor = processor or build_handler(config, clock or RealClock())
    server = HttpServer(processor, SELF_TEST_HOST, 0)
    thread = threading.Thread(target=server.serve_forever, kwargs={"poll_interval": 0.05}, daemon=True)
    thread.start()
    base_url = f"http://{SELF_TEST_HOST}:{server.port}"

    try:
        check_health(base_url)
        print("[self-test] Health endpoint test passed", file=out)
        check_info(base_url)
        print("[self-test] Info endpoint test passed", file=out)
    except SelfTestError as exc:
        print(f"[self-test] {exc}", file=err)
        return 1
    finally:
        server.shutdown()
        thread.join(timeout=REQUEST_TIMEOUT)

    print("[self-test] All tests passed successfully!", file=out)
    return 0


__all__ = [
    "SelfTestError",
    "check_arithmetic",
    "check_health",
    "check_info",
    "run_self_test",
]
