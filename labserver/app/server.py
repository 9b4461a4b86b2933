"""HTTP/1.1 server over plain sockets, one worker thread per connection."""

from __future__ import annotations

import json
import logging
import selectors
import socket
import threading
import time
from http import HTTPStatus
from typing import Protocol, Tuple
from urllib.parse import urlsplit

from .http import HttpRequest, HttpResponse

MAX_HEADER_BYTES = 16 * 1024
MAX_BODY_BYTES = 1024 * 1024
REQUEST_TIMEOUT = 30.0
READ_POLL_INTERVAL = 0.1

logger = logging.getLogger("labserver.server")


class RequestHandler(Protocol):
    def handle(self, request: HttpRequest) -> HttpResponse:
        """Process ``request`` and return an HTTP response."""


class _ConnectionAbandoned(Exception):
    """Shutdown began before the client sent any bytes."""


class HttpServer:
    """Accepts connections on one thread and serves each on its own worker.

    :meth:`shutdown` only raises a flag, so it is safe to call from a signal
    handler or from another thread. Once the accept loop notices it, the
    listening socket is closed, connections that have not sent a byte yet are
    dropped, and :meth:`serve_forever` returns only after every request that
    was already in progress has been answered.
    """

    def __init__(self, handler: RequestHandler, host: str, port: int, *, backlog: int = 128) -> None:
        self._handler = handler
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self._sock.bind((host, port))
            self._sock.listen(backlog)
            self._sock.setblocking(False)
        except OSError:
            self._sock.close()
            raise
        self.port: int = self._sock.getsockname()[1]
        self._shutdown_requested = threading.Event()
        self._workers: set[threading.Thread] = set()
        self._workers_lock = threading.Lock()

    def serve_forever(self, poll_interval: float = 0.5) -> None:
        try:
            with selectors.DefaultSelector() as selector:
                selector.register(self._sock, selectors.EVENT_READ)
                while not self._shutdown_requested.is_set():
                    if not selector.select(poll_interval):
                        continue
                    if self._shutdown_requested.is_set():
                        break
                    try:
                        conn, addr = self._sock.accept()
                    except (BlockingIOError, InterruptedError):
                        continue
                    self._start_worker(conn, addr)
        finally:
            self.close()
            self._join_workers()

    def shutdown(self) -> None:
        self._shutdown_requested.set()

    def close(self) -> None:
        self._sock.close()

    def __enter__(self) -> "HttpServer":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _start_worker(self, conn: socket.socket, addr: Tuple[str, int]) -> None:
        worker = threading.Thread(target=self._serve_connection, args=(conn, addr), daemon=True)
        with self._workers_lock:
            self._workers.add(worker)
        worker.start()

    def _join_workers(self) -> None:
        with self._workers_lock:
            pending = list(self._workers)
        for worker in pending:
            worker.join(REQUEST_TIMEOUT)

    def _serve_connection(self, conn: socket.socket, addr: Tuple[str, int]) -> None:
        try:
            with conn:
                self._exchange(conn, addr)
        finally:
            with self._workers_lock:
                self._workers.discard(threading.current_thread())

    def _exchange(self, conn: socket.socket, addr: Tuple[str, int]) -> None:
        try:
            request = self._read_request(conn)
        except _ConnectionAbandoned:
            logger.debug("dropping idle connection from %s on shutdown", addr[0])
            return
        except ValueError as exc:
            logger.warning("malformed request from %s: %s", addr[0], exc)
            _send_error(conn, HTTPStatus.BAD_REQUEST, str(exc))
            return
        except OSError as exc:
            logger.debug("connection from %s dropped while reading: %s", addr[0], exc)
            return
        if request is None:
            return

        try:
            response = self._handler.handle(request)
        except Exception:  # noqa: BLE001
            logger.exception("request handler failed for %s %s", request.method, request.path)
            _send_error(conn, HTTPStatus.INTERNAL_SERVER_ERROR, "Internal Server Error")
            return

        try:
            conn.sendall(_encode_response(response, include_body=request.method != "HEAD"))
        except OSError as exc:
            logger.debug("connection from %s dropped while writing: %s", addr[0], exc)

    def _read_request(self, conn: socket.socket) -> HttpRequest | None:
        deadline = time.monotonic() + REQUEST_TIMEOUT
        buffer = bytearray()
        while b"\r\n\r\n" not in buffer:
            chunk = self._recv(conn, deadline, idle=not buffer)
            if not chunk:
                return None
            buffer.extend(chunk)
            if len(buffer) > MAX_HEADER_BYTES:
                raise ValueError("header section too large")

        head, leftover = bytes(buffer).split(b"\r\n\r\n", 1)
        request_line, *header_lines = head.decode("iso-8859-1").split("\r\n")
        parts = request_line.split()
        if len(parts) != 3:
            raise ValueError("invalid request line")
        method, target, version = parts
        if version not in {"HTTP/1.1", "HTTP/1.0"}:
            raise ValueError("unsupported HTTP version")

        headers: dict[str, str] = {}
        for line in header_lines:
            name, sep, value = line.partition(":")
            if not sep:
                raise ValueError("invalid header")
            headers[name.strip().lower()] = value.strip()

        self._discard_body(conn, headers.get("content-length", ""), len(leftover), deadline)
        return HttpRequest(method=method.upper(), path=urlsplit(target).path or "/", headers=headers)

    def _discard_body(self, conn: socket.socket, declared: str, already_read: int, deadline: float) -> None:
        # the declared body must be consumed before close() or the kernel resets the connection
        try:
            length = int(declared or 0)
        except ValueError:
            return
        if length > MAX_BODY_BYTES:
            raise ValueError("request body too large")
        remaining = length - already_read
        while remaining > 0:
            chunk = self._recv(conn, deadline, idle=False)
            if not chunk:
                return
            remaining -= len(chunk)

    def _recv(self, conn: socket.socket, deadline: float, *, idle: bool) -> bytes:
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TimeoutError("client did not finish its request in time")
            conn.settimeout(min(READ_POLL_INTERVAL, remaining))
            try:
                return conn.recv(4096)
            except socket.timeout:
                if idle and self._shutdown_requested.is_set():
                    raise _ConnectionAbandoned() from None


def _encode_response(response: HttpResponse, *, include_body: bool = True) -> bytes:
    response.headers.setdefault("Connection", "close")
    response.ensure_content_length()
    try:
        reason = HTTPStatus(response.status).phrase
    except ValueError:
        reason = "OK"
    head = f"HTTP/1.1 {int(response.status)} {reason}\r\n"
    head += "".join(f"{name}: {value}\r\n" for name, value in response.headers.items())
    payload = (head + "\r\n").encode("iso-8859-1")
    if include_body:
        payload += response.body
    return payload


def _send_error(conn: socket.socket, status: HTTPStatus, message: str) -> None:
    response = HttpResponse(
        int(status),
        {"Content-Type": "application/json", "Access-Control-Allow-Origin": "*"},
        json.dumps({"error": message}).encode(),
    )
    try:
        conn.sendall(_encode_response(response))
    except OSError:
        logger.debug("could not deliver %s response", int(status))


__all__ = ["HttpServer", "RequestHandler"]
