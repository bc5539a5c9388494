"""Request, response and slide description types shared across the server."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List


class Protocol(IntEnum):
    """The web API that a GET request target follows."""

    MALFORMED = 0
    IRIS = 1
    DICOM = 2


class RequestType(IntEnum):
    """What a GET request asks for."""

    UNDEFINED = 0
    TILE = 1
    METADATA = 2


class ResponseType(IntEnum):
    """The kind of answer a GET response carries."""

    UNDEFINED = 0
    MALFORMED_REQ = 1
    FILE_NOT_FOUND = 2
    TILE = 3
    METADATA = 4


class Format(IntEnum):
    """Pixel layout of decoded slide tiles."""

    UNDEFINED = 0
    B8G8R8 = 1
    R8G8B8 = 2
    B8G8R8A8 = 3
    R8G8B8A8 = 4


class Encoding(IntEnum):
    """Compression used for the stored slide tiles."""

    UNDEFINED = 0
    IRIS = 1
    JPEG = 2
    AVIF = 3


@dataclass
class LayerExtent:
    """Size of one resolution layer, in tiles, with its scale factor."""

    x_tiles: int = 0
    y_tiles: int = 0
    scale: float = 1.0


@dataclass
class Extent:
    """Pixel size of the slide's lowest layer and the extents of every layer."""

    width: int = 0
    height: int = 0
    layers: List[LayerExtent] = field(default_factory=list)


@dataclass
class SlideInfo:
    """Description of a slide as reported by a metadata request."""

    format: Format = Format.UNDEFINED
    encoding: Encoding = Encoding.UNDEFINED
    extent: Extent = field(default_factory=Extent)
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class GetRequest:
    """A parsed GET request target."""

    protocol: Protocol = Protocol.MALFORMED
    type: RequestType = RequestType.UNDEFINED
    error_msg: str = ""


@dataclass
class GetTileRequest(GetRequest):
    """A request for one tile of one layer of a slide."""

    id: str = ""
    layer: int = 0
    tile: int = 0


@dataclass
class GetMetadataRequest(GetRequest):
    """A request for a slide's metadata."""

    id: str = ""


@dataclass
class GetResponse:
    """The answer to a GET request."""

    type: ResponseType = ResponseType.UNDEFINED
    keep_alive: bool = False
    error_msg: str = ""


@dataclass
class GetTileResponse(GetResponse):
    """A response carrying the encoded bytes of one tile."""

    pixel_data: bytes = b""


@dataclass
class GetMetadataResponse(GetResponse):
    """A response carrying a slide's description."""

    slide_info: SlideInfo = field(default_factory=SlideInfo)