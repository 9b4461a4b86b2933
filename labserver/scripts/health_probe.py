from __future__ import annotations

import json
import os
import urllib.error
import urllib.request

from labserver.config import load_config


def probe(host: str, port: int, timeout: float) -> bool:
    url = f"http://{host}:{port}/health"
    try:
        with urllib.request.urlopen(url, timeout=timeout) as resp:
            if not 200 <= resp.getcode() < 400:
                return False
            payload = json.loads(resp.read().decode() or "{}")
    except (urllib.error.URLError, OSError, ValueError):
        return False
    return isinstance(payload, dict) and payload.get("status") == "healthy"


def main() -> None:
    host = os.environ.get("HEALTH_HOST", "127.0.0.1")
    try:
        timeout = float(os.environ.get("HEALTH_TIMEOUT", "2"))
        port = load_config().port
    except ValueError as exc:
        raise SystemExit(f"invalid health probe settings: {exc}") from None

    if not probe(host, port, timeout):
        raise SystemExit(f"no healthy instance at {host}:{port}")


if __name__ == "__main__":
    main()
