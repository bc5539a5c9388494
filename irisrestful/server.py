"""The slide server: routes GET requests to slides opened from a root directory."""

from __future__ import annotations

import logging
import threading
import weakref
from functools import partial
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from .async_pool import ThreadPool, create_thread_pool
from .networking import Networking, NetworkingError, ServerCallbacks
from .parser import parse_get_request
from .serializer import DEFAULT_ERROR_MESSAGE
from .slide import Slide
from .types import (
    GetMetadataRequest,
    GetMetadataResponse,
    GetRequest,
    GetResponse,
    GetTileRequest,
    GetTileResponse,
    Protocol,
    RequestType,
    ResponseType,
)

logger = logging.getLogger(__name__)

SlideOpener = Callable[[Path], Slide]
Respond = Callable[[GetResponse], None]

SLIDE_SUFFIX = ".iris"
_SLIDE_ERRORS = (LookupError, ValueError, OSError)


class ServerError(RuntimeError):
    """Raised when a server cannot be created or cannot listen."""


def _process_tile_request(request: GetTileRequest, slide: Slide) -> GetResponse:
    try:
        return GetTileResponse(
            type=ResponseType.TILE,
            pixel_data=slide.get_tile_entry(request.layer, request.tile),
        )
    except _SLIDE_ERRORS as error:
        return GetTileResponse(type=ResponseType.FILE_NOT_FOUND, error_msg=str(error))


def _process_metadata_request(slide: Slide) -> GetResponse:
    try:
        return GetMetadataResponse(
            type=ResponseType.METADATA, slide_info=slide.get_slide_info()
        )
    except _SLIDE_ERRORS as error:
        return GetMetadataResponse(type=ResponseType.FILE_NOT_FOUND, error_msg=str(error))


def _invalid_slide_identifier(identifier: str) -> GetResponse:
    return GetResponse(
        type=ResponseType.FILE_NOT_FOUND,
        error_msg=f"Slide file with identifier '{identifier}' not found.",
    )


class Server:
    """Serves tiles and metadata of the slides found under a root directory.

    ``open_slide`` is given the path ``<root>/<identifier>.iris`` and returns
    the opened slide, raising OSError or ValueError when it cannot.
    """

    def __init__(
        self,
        root: Union[str, Path],
        open_slide: SlideOpener,
        pool_size: Optional[int] = None,
    ) -> None:
        self._root = Path(root)
        self._open_slide = open_slide
        self._directory: Dict[str, "weakref.ref[Slide]"] = {}
        self._lock = threading.RLock()
        self._pool: ThreadPool = create_thread_pool(pool_size)
        self._networking = Networking(
            ServerCallbacks(on_get_request=self.on_get_request)
        )

    @property
    def root(self) -> Path:
        return self._root

    @property
    def port(self) -> Optional[int]:
        """The port being listened on, or None before listening."""
        return self._networking.port

    @property
    def cached_ids(self) -> List[str]:
        """Identifiers of the slides currently held in the open-slide directory."""
        with self._lock:
            return sorted(self._directory)

    def __enter__(self) -> "Server":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def listen(self, port: int) -> None:
        """Begin accepting connections on ``port``; raises NetworkingError on failure."""
        self._networking.listen(port)

    def close(self) -> None:
        """Stop networking and finish the queued request tasks."""
        self._networking.close()
        self._pool.wait_until_complete()

    def get_slide(self, identifier: str) -> Optional[Slide]:
        """Return the open slide with this identifier, opening it if needed.

        Returns None when the slide file cannot be opened.
        """
        with self._lock:
            ref = self._directory.get(identifier)
            slide = ref() if ref is not None else None
            if slide is not None:
                return slide

        path = self._root / f"{identifier}{SLIDE_SUFFIX}"
        try:
            slide = self._open_slide(path)
        except (OSError, ValueError) as error:
            logger.error("Failed to open slide id (%s): %s", identifier, error)
            return None

        with self._lock:
            ref = self._directory.get(identifier)
            just_made = ref() if ref is not None else None
            if just_made is not None:
                return just_made
            slide_ref = weakref.ref(slide)
            self._directory[identifier] = slide_ref
            slide.set_on_destroyed_callback(partial(self._forget, identifier, slide_ref))
        return slide

    def _forget(self, identifier: str, slide_ref: "weakref.ref[Slide]") -> None:
        with self._lock:
            if self._directory.get(identifier) is slide_ref:
                del self._directory[identifier]

    def on_get_request(self, session, target: str, on_response: Respond) -> None:
        """Answer a GET request target on a worker thread through ``on_response``."""
        self._pool.issue_task(lambda: on_response(self._answer(session, target)))

    def _answer(self, session, target: str) -> GetResponse:
        try:
            request: GetRequest = parse_get_request(target)
        except ValueError as error:
            return GetResponse(type=ResponseType.MALFORMED_REQ, error_msg=str(error))

        if (
            request.protocol not in (Protocol.IRIS, Protocol.DICOM)
            or request.type is RequestType.UNDEFINED
        ):
            return GetResponse(type=ResponseType.MALFORMED_REQ, error_msg=request.error_msg)

        if isinstance(request, (GetTileRequest, GetMetadataRequest)):
            slide = session.slide
            if slide is None or slide.id != request.id:
                slide = self.get_slide(request.id)
                session.slide = slide
                if slide is None:
                    return _invalid_slide_identifier(request.id)
            if isinstance(request, GetTileRequest):
                return _process_tile_request(request, slide)
            return _process_metadata_request(slide)

        return GetResponse(
            type=ResponseType.UNDEFINED,
            error_msg=request.error_msg or DEFAULT_ERROR_MESSAGE,
        )


def create_server(root: Union[str, Path], open_slide: SlideOpener) -> Server:
    """Create a server for the slides under ``root``.

    Raises ServerError if ``root`` is not a directory.
    """
    path = Path(root)
    if not path.is_dir():
        raise ServerError(
            f"file system reports the provided slide root directory ({path}) does not exist"
        )
    return Server(path, open_slide)


def server_listen(server: Optional[Server], port: int) -> None:
    """Make ``server`` listen on ``port``; raises ServerError on any failure."""
    try:
        if server is None:
            raise ServerError("Invalid server object provided")
        server.listen(port)
    except (ServerError, NetworkingError) as error:
        raise ServerError(
            f"Iris RESTful Server failed to listen at {port}.{error}"
        ) from error