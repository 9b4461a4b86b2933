from __future__ import annotations

import json
import logging
from http import HTTPStatus

import pytest

from labserver import __version__
from labserver.app.handlers import (
    AbstractHandler,
    ErrorHandler,
    LoggingHandler,
    RequestProcessor,
    build_handler,
)
from labserver.app.http import HttpRequest, HttpResponse, RequestContext
from labserver.config import AppConfig


def _make_request(method: str, target: str, *, headers: dict[str, str] | None = None) -> HttpRequest:
    return HttpRequest(method=method, path=target.partition("?")[0], headers=headers or {})


@pytest.fixture
def processor(config, clock) -> RequestProcessor:
    return build_handler(config, clock)


def _json(response: HttpResponse) -> dict:
    return json.loads(response.body.decode())


def test_root_serves_html_page(processor: RequestProcessor) -> None:
    response = processor.handle(_make_request("GET", "/"))

    assert response.status == 200
    assert response.headers["Content-Type"].startswith("text/html")
    page = response.body.decode()
    assert "<!DOCTYPE html>" in page
    assert "Environment: <strong>testing</strong>" in page
    assert "2025-01-02T03:04:05.678Z" in page


def test_root_escapes_environment_name(clock) -> None:
    cfg = AppConfig(host="127.0.0.1", port=0, environment="<prod>")
    response = build_handler(cfg, clock).handle(_make_request("GET", "/"))

    assert "&lt;prod&gt;" in response.body.decode()


def test_health_payload(processor: RequestProcessor) -> None:
    response = processor.handle(_make_request("GET", "/health"))

    assert response.status == 200
    assert response.headers["Content-Type"] == "application/json"
    payload = _json(response)
    assert set(payload) == {"status", "timestamp", "uptime", "environment", "version", "node_version", "python_version"}
    assert payload["status"] == "healthy"
    assert payload["timestamp"] == "2025-01-02T03:04:05.678Z"
    assert payload["uptime"] == 12.5
    assert payload["environment"] == "testing"
    assert payload["version"] == __version__
    assert payload["python_version"]
    assert payload["python_version"] in payload["node_version"]


def test_health_ignores_query_string(processor: RequestProcessor) -> None:
    response = processor.handle(_make_request("GET", "/health?verbose=1"))

    assert response.status == 200
    assert _json(response)["status"] == "healthy"


def test_info_payload(processor: RequestProcessor) -> None:
    response = processor.handle(_make_request("GET", "/info"))

    assert response.status == 200
    payload = _json(response)
    assert set(payload) == {"platform", "architecture", "node_version", "python_version", "memory_usage", "environment", "pid"}
    assert payload["platform"]
    assert payload["environment"] == "testing"
    assert isinstance(payload["pid"], int)
    assert payload["node_version"]
    assert set(payload["memory_usage"]) == {"rss", "max_rss", "allocated_blocks"}
    assert all(isinstance(value, int) and value >= 0 for value in payload["memory_usage"].values())


def test_info_shape_is_stable_across_calls(processor: RequestProcessor) -> None:
    first = _json(processor.handle(_make_request("GET", "/info")))
    second = _json(processor.handle(_make_request("GET", "/info")))

    assert set(first) == set(second)
    assert set(first["memory_usage"]) == set(second["memory_usage"])


@pytest.mark.parametrize("path", ["/does-not-exist", "/health/", "/INFO", "/info/extra"])
def test_unknown_paths_return_structured_404(processor: RequestProcessor, path: str) -> None:
    response = processor.handle(_make_request("GET", path))

    assert response.status == 404
    payload = _json(response)
    assert payload["error"] == "Not Found"
    assert path in payload["message"]
    assert payload["timestamp"] == "2025-01-02T03:04:05.678Z"


@pytest.mark.parametrize("method", ["GET", "POST", "PUT", "DELETE", "PATCH"])
def test_routes_match_regardless_of_method(processor: RequestProcessor, method: str) -> None:
    assert processor.handle(_make_request(method, "/health")).status == 200
    assert processor.handle(_make_request(method, "/info")).status == 200


@pytest.mark.parametrize("path", ["/", "/health", "/info", "/missing"])
def test_cors_headers_on_every_response(processor: RequestProcessor, path: str) -> None:
    response = processor.handle(_make_request("GET", path))

    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert response.headers["Access-Control-Allow-Methods"] == "GET, POST, PUT, DELETE"
    assert response.headers["Access-Control-Allow-Headers"] == "Content-Type"
    assert response.headers["Content-Length"] == str(len(response.body))


def test_request_is_logged_before_dispatch(clock, caplog: pytest.LogCaptureFixture) -> None:
    seen: list[int] = []

    class Recorder(AbstractHandler):
        def handle(self, ctx: RequestContext) -> HttpResponse:
            seen.append(len(caplog.records))
            ctx.response = HttpResponse(HTTPStatus.OK)
            return ctx.response

    entry = LoggingHandler(clock)
    entry.set_next(Recorder())
    caplog.set_level(logging.INFO, logger="labserver.access")

    RequestProcessor(entry).handle(_make_request("POST", "/anything", headers={"user-agent": "curl/8.0"}))

    assert seen == [1]
    assert caplog.records[0].getMessage() == "2025-01-02T03:04:05.678Z - POST /anything - curl/8.0"


def test_missing_user_agent_is_logged_as_dash(processor: RequestProcessor, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="labserver.access")

    processor.handle(_make_request("GET", "/health"))

    assert caplog.records[-1].getMessage().endswith("GET /health - -")


def test_error_handler_turns_exceptions_into_500(clock, caplog: pytest.LogCaptureFixture) -> None:
    class Exploding(AbstractHandler):
        def handle(self, ctx: RequestContext) -> HttpResponse:
            raise RuntimeError("boom")

    entry = ErrorHandler(clock)
    entry.set_next(Exploding())
    caplog.set_level(logging.ERROR, logger="labserver.handlers")

    response = RequestProcessor(entry).handle(_make_request("GET", "/health"))

    assert response.status == 500
    assert _json(response) == {"error": "Internal Server Error", "timestamp": "2025-01-02T03:04:05.678Z"}
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert "unhandled error" in caplog.records[0].getMessage()
