from __future__ import annotations

import json
import logging
from http import HTTPStatus
from typing import Any, Dict, Iterable, Optional

from .. import __version__
from ..config import AppConfig
from ..ports.clock import Clock, RealClock
from . import sysinfo
from .http import Handler, HttpRequest, HttpResponse, RequestContext, Route
from .pages import render_welcome_page

JsonDict = Dict[str, Any]

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE",
    "Access-Control-Allow-Headers": "Content-Type",
}

access_logger = logging.getLogger("labserver.access")
logger = logging.getLogger("labserver.handlers")


def make_json_response(status: HTTPStatus | int, data: JsonDict) -> HttpResponse:
    body = json.dumps(data, indent=2).encode()
    headers = {
        "Content-Type": "application/json",
        "Content-Length": str(len(body)),
    }
    return HttpResponse(int(status), headers, body)


def make_html_response(status: HTTPStatus | int, markup: str) -> HttpResponse:
    body = markup.encode("utf-8")
    headers = {
        "Content-Type": "text/html; charset=utf-8",
        "Content-Length": str(len(body)),
    }
    return HttpResponse(int(status), headers, body)


def not_found(path: str, timestamp: str) -> HttpResponse:
    return make_json_response(
        HTTPStatus.NOT_FOUND,
        {
            "error": "Not Found",
            "message": f"Route {path} not found",
            "timestamp": timestamp,
        },
    )


class AbstractHandler(Handler):
    def __init__(self) -> None:
        self._next: Optional[Handler] = None

    def set_next(self, handler: Handler) -> Handler:
        self._next = handler
        return handler

    def _handle_next(self, ctx: RequestContext) -> HttpResponse:
        if self._next is None:
            if ctx.response is None:
                ctx.response = make_json_response(HTTPStatus.INTERNAL_SERVER_ERROR, {"error": "Unhandled request"})
            return ctx.response
        return self._next.handle(ctx)


class LoggingHandler(AbstractHandler):
    """Writes one access line per request before it is dispatched."""

    def __init__(self, clock: Clock) -> None:
        super().__init__()
        self._clock = clock

    def handle(self, ctx: RequestContext) -> HttpResponse:  # noqa: D401
        request = ctx.request
        access_logger.info(
            "%s - %s %s - %s",
            self._clock.timestamp(),
            request.method,
            request.path,
            request.user_agent or "-",
        )
        return self._handle_next(ctx)


class ErrorHandler(AbstractHandler):
    def __init__(self, clock: Clock) -> None:
        super().__init__()
        self._clock = clock

    def handle(self, ctx: RequestContext) -> HttpResponse:  # noqa: D401
        try:
            return self._handle_next(ctx)
        except Exception:  # noqa: BLE001
            logger.exception("unhandled error while serving %s %s", ctx.request.method, ctx.request.path)
            ctx.response = make_json_response(
                HTTPStatus.INTERNAL_SERVER_ERROR,
                {"error": "Internal Server Error", "timestamp": self._clock.timestamp()},
            )
            return ctx.response


class RoutingHandler(AbstractHandler):
    """Resolves the route by exact path; the HTTP method is not consulted."""

    def __init__(self, routes: Iterable[Route]) -> None:
        super().__init__()
        self._routes = {route.path: route for route in routes}

    def handle(self, ctx: RequestContext) -> HttpResponse:  # noqa: D401
        ctx.route = self._routes.get(ctx.request.path)
        return self._handle_next(ctx)


class DispatchHandler(AbstractHandler):
    def __init__(self, clock: Clock) -> None:
        super().__init__()
        self._clock = clock

    def handle(self, ctx: RequestContext) -> HttpResponse:  # noqa: D401
        if ctx.route is None:
            ctx.response = not_found(ctx.request.path, self._clock.timestamp())
            return ctx.response
        ctx.response = ctx.route.handler(ctx)
        return ctx.response


class RequestProcessor:
    """Facade executed by the HTTP server."""

    def __init__(self, entry: Handler) -> None:
        self._entry = entry

    def handle(self, request: HttpRequest) -> HttpResponse:
        ctx = RequestContext(request=request)
        response = self._entry.handle(ctx)
        for name, value in CORS_HEADERS.items():
            response.headers.setdefault(name, value)
        response.ensure_content_length()
        return response


def build_handler(config: AppConfig, clock: Optional[Clock] = None) -> RequestProcessor:
    clock = clock or RealClock()

    def handle_root(_: RequestContext) -> HttpResponse:
        return make_html_response(HTTPStatus.OK, render_welcome_page(config.environment, clock.timestamp()))

    def handle_health(_: RequestContext) -> HttpResponse:
        return make_json_response(
            HTTPStatus.OK,
            {
                "status": "healthy",
                "timestamp": clock.timestamp(),
                "uptime": clock.uptime(),
                "environment": config.environment,
                "version": __version__,
                "node_version": sysinfo.runtime_version(),
                "python_version": sysinfo.python_version(),
            },
        )

    def handle_info(_: RequestContext) -> HttpResponse:
        return make_json_response(
            HTTPStatus.OK,
            {
                "platform": sysinfo.platform_name(),
                "architecture": sysinfo.architecture(),
                "node_version": sysinfo.runtime_version(),
                "python_version": sysinfo.python_version(),
                "memory_usage": sysinfo.memory_usage(),
                "environment": config.environment,
                "pid": sysinfo.process_id(),
            },
        )

    routes: list[Route] = [
        Route("root", "/", handle_root),
        Route("health", "/health", handle_health),
        Route("info", "/info", handle_info),
    ]

    logging_handler = LoggingHandler(clock)
    error_handler = ErrorHandler(clock)
    routing_handler = RoutingHandler(routes)
    dispatch_handler = DispatchHandler(clock)

    logging_handler.set_next(error_handler)
    error_handler.set_next(routing_handler)
    routing_handler.set_next(dispatch_handler)

    return RequestProcessor(logging_handler)


__all__ = [
    "CORS_HEADERS",
    "AbstractHandler",
    "DispatchHandler",
    "ErrorHandler",
    "LoggingHandler",
    "RequestProcessor",
    "RoutingHandler",
    "build_handler",
    "make_html_response",
    "make_json_response",
    "not_found",
]
