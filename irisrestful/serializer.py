"""Text serialization of GET responses: error messages and slide metadata JSON."""

from __future__ import annotations

from typing import Iterable

from .types import (
    Encoding,
    Extent,
    Format,
    GetMetadataResponse,
    GetResponse,
    LayerExtent,
    ResponseType,
    SlideInfo,
)

DEFAULT_ERROR_MESSAGE = (
    "Undefined GET request error. IrisRESTful server did elaborate on what happened."
)

_FORMAT_NAMES = {
    Format.UNDEFINED: "FORMAT_UNDEFINED",
    Format.B8G8R8: "FORMAT_B8G8R8",
    Format.R8G8B8: "FORMAT_R8G8B8",
    Format.B8G8R8A8: "FORMAT_B8G8R8A8",
    Format.R8G8B8A8: "FORMAT_R8G8B8A8",
}

_ENCODING_NAMES = {
    Encoding.UNDEFINED: "ENCODING_UNDEFINED",
    Encoding.IRIS: "image/iris",
    Encoding.JPEG: "image/jpeg",
    Encoding.AVIF: "image/avif",
}

_ERROR_TYPES = (
    ResponseType.UNDEFINED,
    ResponseType.MALFORMED_REQ,
    ResponseType.FILE_NOT_FOUND,
)


def serialize_format(fmt: int) -> str:
    """Return the pixel format as a quoted JSON string."""
    try:
        return f'"{_FORMAT_NAMES[Format(fmt)]}"'
    except (ValueError, TypeError):
        return '"UNDEFINED FORMAT"'


def serialize_encoding(encoding: int) -> str:
    """Return the tile encoding as a quoted JSON string (a MIME type where known)."""
    try:
        return f'"{_ENCODING_NAMES[Encoding(encoding)]}"'
    except (ValueError, TypeError):
        return '"UNDEFINED ENCODING"'


def _serialize_layers(layers: Iterable[LayerExtent]) -> str:
    entries = ",".join(
        f'{{"x_tiles": {layer.x_tiles},"y_tiles": {layer.y_tiles},"scale": {layer.scale:g}}}'
        for layer in layers
    )
    return f"[{entries}]"


def _serialize_extent(extent: Extent) -> str:
    return (
        f'{{"width": {extent.width},"height": {extent.height},'
        f'"layers": {_serialize_layers(extent.layers)}}}'
    )


def _serialize_slide_metadata(info: SlideInfo) -> str:
    fields = ['"type": "slide_metadata"']
    if info.format:
        fields.append(f'"format": {serialize_format(info.format)}')
    if info.encoding:
        fields.append(f'"encoding": {serialize_encoding(info.encoding)}')
    fields.append(f'"extent": {_serialize_extent(info.extent)}')
    return "{" + ",".join(fields) + "}"


def serialize_get_response(response: GetResponse) -> str:
    """Return the text body for a non-binary GET response.

    Error responses yield their message; metadata responses yield JSON.
    Raises ValueError for tile responses, which are binary, and for
    responses of undefined type.
    """
    kind = response.type
    if kind in _ERROR_TYPES:
        return response.error_msg or DEFAULT_ERROR_MESSAGE
    if kind == ResponseType.METADATA:
        if not isinstance(response, GetMetadataResponse):
            raise TypeError("a metadata response must carry slide information")
        return _serialize_slide_metadata(response.slide_info)
    if kind == ResponseType.TILE:
        raise ValueError(
            "cannot serialize a GET tile response; this is a binary response"
        )
    raise ValueError("cannot serialize a GET response of undefined type")