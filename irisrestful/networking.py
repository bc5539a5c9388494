"""A small threaded HTTP/1.1 front end that hands GET requests to a callback."""

from __future__ import annotations

import logging
import queue
import socket
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum, auto
from http import HTTPStatus
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

from .serializer import serialize_get_response
from .types import GetResponse, GetTileResponse, ResponseType

logger = logging.getLogger(__name__)

SERVER_NAME = "IrisRESTful"
HEADER_LIMIT = 1024
BODY_LIMIT = 2048
READ_TIMEOUT = 30.0

_RECV_SIZE = 4096
_POLL_INTERVAL = 0.5

Respond = Callable[[GetResponse], None]
RequestHandler = Callable[["Session", str, Respond], None]


class NetworkingError(RuntimeError):
    """Raised when the server cannot start listening."""


@dataclass(eq=False)
class Session:
    """One client connection, with the slide it most recently addressed."""

    connection: socket.socket
    address: Tuple = ()
    slide: Optional[object] = None

    def close(self) -> None:
        """Shut down the sending side and release the socket."""
        try:
            self.connection.shutdown(socket.SHUT_WR)
        except OSError:
            pass
        self.connection.close()

    def _interrupt(self) -> None:
        try:
            self.connection.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass


@dataclass
class HttpResponse:
    """An HTTP response ready to be written to a client."""

    status: int
    body: bytes = b""
    content_type: str = "text/plain"
    keep_alive: bool = False
    version: str = "HTTP/1.1"
    server: str = SERVER_NAME

    def to_bytes(self) -> bytes:
        """Encode the status line, headers and body for the wire."""
        try:
            reason = HTTPStatus(self.status).phrase
        except ValueError:
            reason = ""
        lines = [
            f"{self.version} {self.status} {reason}",
            f"Content-Type: {self.content_type}",
            f"Server: {self.server}",
            f"Content-Length: {len(self.body)}",
        ]
        if not self.keep_alive:
            lines.append("Connection: close")
        head = "\r\n".join(lines) + "\r\n\r\n"
        return head.encode("latin-1") + self.body


@dataclass(frozen=True)
class ServerCallbacks:
    """Handlers for incoming requests.

    Each handler receives the session, the request target and a function to
    call, from any thread, with the response.
    """

    on_get_request: Optional[RequestHandler] = None
    on_post_request: Optional[RequestHandler] = None
    on_put_request: Optional[RequestHandler] = None


_MIME_TYPES = {
    ".htm": "text/html",
    ".html": "text/html",
    ".php": "text/html",
    ".css": "text/css",
    ".txt": "text/plain",
    ".js": "application/javascript",
    ".json": "application/json",
    ".xml": "application/xml",
    ".swf": "application/x-shockwave-flash",
    ".flv": "video/x-flv",
    ".png": "image/png",
    ".jpe": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".jpg": "image/jpeg",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".ico": "image/vnd.microsoft.icon",
    ".tiff": "image/tiff",
    ".tif": "image/tiff",
    ".svg": "image/svg+xml",
    ".svgz": "image/svg+xml",
}


def mime_type(path: str) -> str:
    """Return a MIME type guessed from a path's extension, case-insensitively."""
    pos = path.rfind(".")
    if pos == -1:
        return "application/text"
    return _MIME_TYPES.get(path[pos:].lower(), "application/text")


def build_string_response(response: GetResponse) -> HttpResponse:
    """Build the HTTP response for an error or metadata GET response.

    Raises ValueError for tile responses, which carry binary data.
    """
    kind = response.type
    if kind in (ResponseType.UNDEFINED, ResponseType.MALFORMED_REQ):
        status, content_type = HTTPStatus.BAD_REQUEST, "application/text"
    elif kind == ResponseType.FILE_NOT_FOUND:
        status, content_type = HTTPStatus.NOT_FOUND, "application/text"
    elif kind == ResponseType.METADATA:
        status, content_type = HTTPStatus.OK, "application/json"
    elif kind == ResponseType.TILE:
        raise ValueError(
            "cannot build a text body for a GET tile response; this is a binary response"
        )
    else:
        raise ValueError("cannot build a response for an undefined GET response type")
    return HttpResponse(
        status=int(status),
        body=serialize_get_response(response).encode("utf-8"),
        content_type=content_type,
        keep_alive=response.keep_alive,
    )


def _build_tile_response(response: GetResponse) -> HttpResponse:
    if not isinstance(response, GetTileResponse):
        raise TypeError("a tile response must carry pixel data")
    return HttpResponse(
        status=int(HTTPStatus.OK),
        body=bytes(response.pixel_data),
        content_type="image/jpeg",
        keep_alive=response.keep_alive,
    )


def _build_get_response(response: GetResponse) -> HttpResponse:
    if response.type == ResponseType.TILE:
        return _build_tile_response(response)
    return build_string_response(response)


@dataclass
class _HttpRequest:
    method: str
    target: str
    version: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def keep_alive(self) -> bool:
        tokens = {
            token.strip().lower()
            for token in self.headers.get("connection", "").split(",")
        }
        if self.version == "HTTP/1.0":
            return "keep-alive" in tokens
        return "close" not in tokens


class _Failure(Enum):
    END_OF_STREAM = auto()
    TIMEOUT = auto()
    HEADER_LIMIT = auto()
    BODY_LIMIT = auto()
    MALFORMED = auto()


class _ReadFailure(Exception):
    def __init__(self, kind: _Failure, message: str = "", keep_alive: bool = False):
        super().__init__(message or kind.name)
        self.kind = kind
        self.message = message
        self.keep_alive = keep_alive


def _error_response(failure: _ReadFailure) -> HttpResponse:
    if failure.kind is _Failure.HEADER_LIMIT:
        status = HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE
        body = f"IrisRESTful API HTTP header-length limit ({HEADER_LIMIT}) bytes exceeded"
    elif failure.kind is _Failure.BODY_LIMIT:
        status = HTTPStatus.REQUEST_ENTITY_TOO_LARGE
        body = f"IrisRESTful API payload-length limit ({BODY_LIMIT}) bytes exceeded"
    else:
        status = HTTPStatus.BAD_REQUEST
        body = f"IrisRESTful API encountered undefined error: {failure.message}"
    return HttpResponse(
        status=int(status),
        body=body.encode("utf-8"),
        content_type="text/plain",
        keep_alive=failure.keep_alive,
    )


def _parse_head(head: bytes) -> _HttpRequest:
    lines = head.decode("latin-1").split("\r\n")
    parts = lines[0].split(" ")
    if len(parts) != 3 or not parts[2].startswith("HTTP/") or not parts[0]:
        raise _ReadFailure(_Failure.MALFORMED, "bad request line")
    method, target, version = parts
    headers: Dict[str, str] = {}
    for line in lines[1:]:
        name, sep, value = line.partition(":")
        if not sep or not name or name != name.strip():
            raise _ReadFailure(_Failure.MALFORMED, "bad header field")
        headers[name.lower()] = value.strip()
    return _HttpRequest(method=method, target=target, version=version, headers=headers)


class _RequestReader:
    """Reads successive HTTP requests from one connection."""

    def __init__(self, connection: socket.socket) -> None:
        self._connection = connection
        self._buffer = bytearray()

    def discard(self) -> None:
        self._buffer.clear()

    def read(self) -> _HttpRequest:
        header_end = self._fill_header()
        head = bytes(self._buffer[:header_end])
        del self._buffer[: header_end + 4]
        request = _parse_head(head)
        keep_alive = request.keep_alive
        if "transfer-encoding" in request.headers:
            raise _ReadFailure(_Failure.MALFORMED, "unsupported transfer encoding")
        length_text = request.headers.get("content-length", "0")
        if not length_text.isdigit():
            raise _ReadFailure(_Failure.MALFORMED, "bad Content-Length", keep_alive)
        length = int(length_text)
        if length > BODY_LIMIT:
            raise _ReadFailure(_Failure.BODY_LIMIT, keep_alive=keep_alive)
        while len(self._buffer) < length:
            self._receive(in_message=True)
        request.body = bytes(self._buffer[:length])
        del self._buffer[:length]
        return request

    def _fill_header(self) -> int:
        while True:
            end = self._buffer.find(b"\r\n\r\n")
            if end != -1:
                if end + 4 > HEADER_LIMIT:
                    raise _ReadFailure(_Failure.HEADER_LIMIT)
                return end
            if len(self._buffer) > HEADER_LIMIT:
                raise _ReadFailure(_Failure.HEADER_LIMIT)
            self._receive(in_message=bool(self._buffer))

    def _receive(self, in_message: bool) -> None:
        try:
            chunk = self._connection.recv(_RECV_SIZE)
        except TimeoutError as error:
            raise _ReadFailure(_Failure.TIMEOUT) from error
        except OSError as error:
            raise _ReadFailure(_Failure.END_OF_STREAM, str(error)) from error
        if not chunk:
            if in_message:
                raise _ReadFailure(_Failure.MALFORMED, "partial message")
            raise _ReadFailure(_Failure.END_OF_STREAM)
        self._buffer += chunk


@contextmanager
def _failing_as(acceptor: socket.socket, message: str) -> Iterator[None]:
    try:
        yield
    except OSError as error:
        acceptor.close()
        raise NetworkingError(f"{message}: {error}") from error


class Networking:
    """Accepts connections and routes HTTP requests to the server callbacks."""

    def __init__(self, callbacks: ServerCallbacks, read_timeout: float = READ_TIMEOUT):
        self._callbacks = callbacks
        self._read_timeout = read_timeout
        self._acceptor: Optional[socket.socket] = None
        self._accept_thread: Optional[threading.Thread] = None
        self._sessions: Set[Session] = set()
        self._threads: List[threading.Thread] = []
        self._lock = threading.Lock()
        self._active = True

    @property
    def port(self) -> Optional[int]:
        """The port being listened on, or None before listening."""
        if self._acceptor is None:
            return None
        return self._acceptor.getsockname()[1]

    def __enter__(self) -> "Networking":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def listen(self, port: int) -> None:
        """Bind to ``port`` on every IPv4 interface and begin accepting.

        Raises NetworkingError if already listening, closed, or if the socket
        cannot be opened, bound or put into the listening state.
        """
        with self._lock:
            if self._acceptor is not None:
                raise NetworkingError("networking acceptor already active")
            if not self._active:
                raise NetworkingError("networking has been closed")
            try:
                acceptor = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            except OSError as error:
                raise NetworkingError(f"Failed to open acceptor: {error}") from error
            with _failing_as(acceptor, "Failed to set acceptor to reuse address option"):
                acceptor.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            with _failing_as(acceptor, "Failed to bind endpoint to acceptor"):
                acceptor.bind(("", port))
            with _failing_as(acceptor, "Failed to listen with acceptor"):
                acceptor.listen(socket.SOMAXCONN)
            acceptor.settimeout(_POLL_INTERVAL)
            self._acceptor = acceptor
            self._accept_thread = threading.Thread(
                target=self._accept_connections, args=(acceptor,), daemon=True
            )
            self._accept_thread.start()

    def close(self) -> None:
        """Stop accepting, interrupt open sessions and wait for their threads."""
        with self._lock:
            if not self._active:
                return
            self._active = False
            sessions = list(self._sessions)
            threads = list(self._threads)
            accept_thread = self._accept_thread
        current = threading.current_thread()
        if accept_thread is not None and accept_thread is not current:
            accept_thread.join()
        if self._acceptor is not None:
            self._acceptor.close()
        for session in sessions:
            session._interrupt()
        for thread in threads:
            if thread is not current:
                thread.join()

    def _accept_connections(self, acceptor: socket.socket) -> None:
        while self._active:
            try:
                connection, address = acceptor.accept()
            except TimeoutError:
                continue
            except OSError as error:
                if self._active:
                    logger.error("Failed to accept an incoming connection: %s", error)
                return
            connection.settimeout(self._read_timeout)
            session = Session(connection, address)
            thread = threading.Thread(
                target=self._serve_session, args=(session,), daemon=True
            )
            with self._lock:
                if not self._active:
                    session.close()
                    return
                self._threads = [t for t in self._threads if t.is_alive()]
                self._threads.append(thread)
                self._sessions.add(session)
            thread.start()

    def _serve_session(self, session: Session) -> None:
        logger.debug("new session %s", session.address)
        reader = _RequestReader(session.connection)
        try:
            while self._active:
                try:
                    request = reader.read()
                except _ReadFailure as failure:
                    if failure.kind in (_Failure.END_OF_STREAM, _Failure.TIMEOUT):
                        return
                    response = _error_response(failure)
                    reader.discard()
                    if not self._send(session, response) or not response.keep_alive:
                        return
                    continue
                response = self._interpret_request(session, request)
                if response is None or not self._send(session, response):
                    return
                if not response.keep_alive:
                    return
        except Exception:
            logger.exception("Network socket error")
        finally:
            with self._lock:
                self._sessions.discard(session)
            session.close()
            logger.debug("session expired %s", session.address)

    def _interpret_request(
        self, session: Session, request: _HttpRequest
    ) -> Optional[HttpResponse]:
        if request.method not in ("GET", "HEAD"):
            return None
        handler = self._callbacks.on_get_request
        if handler is None:
            return None
        keep_alive = request.keep_alive
        answers: "queue.Queue[GetResponse]" = queue.Queue()

        def respond(response: GetResponse) -> None:
            response.keep_alive = keep_alive
            answers.put(response)

        handler(session, request.target, respond)
        deadline = time.monotonic() + self._read_timeout
        while self._active:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                answer = answers.get(timeout=min(_POLL_INTERVAL, remaining))
            except queue.Empty:
                continue
            return _build_get_response(answer)
        logger.error("No response produced for request target %s", request.target)
        return None

    @staticmethod
    def _send(session: Session, response: HttpResponse) -> bool:
        try:
            session.connection.sendall(response.to_bytes())
        except OSError as error:
            logger.error("Error writing response to stream: %s", error)
            return False
        return True