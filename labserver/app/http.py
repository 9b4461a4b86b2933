"""Request/response values exchanged between the socket layer and the router.

Routing only ever looks at the method, the path and the ``User-Agent``
header, so that is all a parsed request carries. Request bodies are read off
the wire and thrown away by :mod:`labserver.app.server`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, Mapping, Optional


@dataclass(frozen=True, slots=True)
class HttpRequest:
    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def user_agent(self) -> Optional[str]:
        return self.headers.get("user-agent")


@dataclass(slots=True)
class HttpResponse:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def ensure_content_length(self) -> None:
        self.headers.setdefault("Content-Length", str(len(self.body)))


@dataclass(slots=True)
class RequestContext:
    """State threaded through one pass of the handler chain."""

    request: HttpRequest
    route: Optional["Route"] = None
    response: Optional[HttpResponse] = None


@dataclass(frozen=True, slots=True)
class Route:
    """A fixed path answered by ``handler`` whatever the HTTP method."""

    name: str
    path: str
    handler: Callable[[RequestContext], HttpResponse]


class Handler(ABC):
    """One link in the request chain."""

    @abstractmethod
    def set_next(self, handler: "Handler") -> "Handler":
        ...

    @abstractmethod
    def handle(self, ctx: RequestContext) -> HttpResponse:
        ...


__all__ = [
    "Handler",
    "HttpRequest",
    "HttpResponse",
    "RequestContext",
    "Route",
]
