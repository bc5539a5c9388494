"""Parsing of GET request targets for the Iris and DICOMweb WADO-RS APIs."""

from __future__ import annotations

import re

from .types import (
    GetMetadataRequest,
    GetRequest,
    GetTileRequest,
    Protocol,
    RequestType,
)

_DELIMITER = "/"
_UINT32_MAX = 0xFFFFFFFF
_LEADING_DIGITS = re.compile(r"[0-9]+")


class _Cursor:
    """Walks the '/'-separated tokens of a target, skipping one character first."""

    def __init__(self, text: str, pos: int = 0) -> None:
        self.text = text
        self.pos = pos

    def copy(self) -> "_Cursor":
        return _Cursor(self.text, self.pos)

    @property
    def exhausted(self) -> bool:
        return self.pos >= len(self.text)

    def front_token(self) -> str:
        start = self.pos + 1
        stop = self.text.find(_DELIMITER, start) if start < len(self.text) else -1
        if stop == -1:
            stop = len(self.text)
        self.pos = max(stop, start)
        return self.text[start:stop]

    def back_token(self) -> str:
        end = len(self.text) - 1
        r = end
        while r != self.pos and r >= 0 and self.text[r] != _DELIMITER:
            r -= 1
        return self.text[r + 1 : end + 1]


def _parse_u32(token: str):
    """Read leading decimal digits; None if there are none.

    A value beyond 32 bits reads as 0.
    """
    match = _LEADING_DIGITS.match(token)
    if match is None:
        return None
    value = int(match.group())
    return value if value <= _UINT32_MAX else 0


def _parse_protocol(cursor: _Cursor) -> Protocol:
    token = cursor.front_token()
    while not token and not cursor.exhausted:
        token = cursor.front_token()
    if token == "slides":
        return Protocol.IRIS
    if token == "studies":
        return Protocol.DICOM
    return Protocol.MALFORMED


def _parse_command(cursor: _Cursor) -> RequestType:
    if cursor.text[-1] in "0123456789":
        return RequestType.TILE
    if cursor.back_token() == "metadata":
        return RequestType.METADATA
    return RequestType.UNDEFINED


def _malformed(message: str) -> GetRequest:
    return GetRequest(protocol=Protocol.MALFORMED, error_msg=message)


def _parse_iris_request(cursor: _Cursor) -> GetRequest:
    if cursor.front_token() != "slides":
        raise ValueError("Iris request target does not begin with the 'slides' token")

    command = _parse_command(cursor)
    if command is RequestType.TILE:
        request = GetTileRequest(protocol=Protocol.IRIS, type=RequestType.TILE)
        request.id = cursor.front_token()
        if cursor.front_token() != "layers":
            return _malformed(
                "Expected 'layers' following slide identifier in IrisRESTful GET tile command target URL"
            )
        layer = _parse_u32(cursor.front_token())
        if layer is None:
            return _malformed(
                "Expected numerical 'layers' value in IrisRESTful GET tile command target URL."
            )
        request.layer = layer
        if cursor.front_token() != "tiles":
            return _malformed(
                "Expected 'tiles' following layer index in IrisRESTful GET tile command target URL"
            )
        tile = _parse_u32(cursor.front_token())
        if tile is None:
            return _malformed(
                "Expected single numerical 'tiles' value in IrisRESTful GET tile command target URL."
            )
        request.tile = tile
        return request
    if command is RequestType.METADATA:
        return GetMetadataRequest(
            protocol=Protocol.IRIS,
            type=RequestType.METADATA,
            id=cursor.front_token(),
        )
    return _malformed(
        "Undefined command sequence (last token) in IrisRESTful target URL. "
        "Please ensure your command conforms to the IrisRestful API."
    )


def _parse_dicom_request(cursor: _Cursor) -> GetRequest:
    command = _parse_command(cursor)
    if command is RequestType.TILE:
        request = GetTileRequest(protocol=Protocol.DICOM, type=RequestType.TILE)
        if cursor.front_token() != "series":
            return _malformed(
                "Expected 'series' following study identifier in DICOM/WADO-RS target URL."
            )
        request.id = cursor.front_token()
        if cursor.front_token() != "instances":
            return _malformed(
                "Expected 'instances' following series in DICOM/WADO-RS target URL."
            )
        layer = _parse_u32(cursor.front_token())
        if layer is None:
            return _malformed(
                "Expected numerical 'instances' value in DICOM/WADO-RS target URL "
                "representing the resolution layer."
            )
        request.layer = layer
        if cursor.front_token() != "frames":
            return _malformed(
                "Expected 'instances' following series in DICOM/WADO-RS target URL."
            )
        tile = _parse_u32(cursor.front_token())
        if tile is None:
            return _malformed(
                "Expected numerical 'instances' value in DICOM/WADO-RS target URL "
                "representing the resolution layer."
            )
        request.tile = tile
        return request
    if command is RequestType.METADATA:
        request = GetMetadataRequest(protocol=Protocol.DICOM, type=RequestType.METADATA)
        if cursor.front_token() != "series":
            return _malformed(
                "Expected 'series' following study in DICOM/WADO-RS target URL. "
                "Please ensure metadata requests conform to IrisRestful API compliant WADO-RS commands."
            )
        request.id = cursor.front_token()
        return request
    return _malformed(
        "Undefined command sequence (last token) in DICOM/WADO-RS target URL. "
        "Please ensure your command conforms to IrisRestful API compliant WADO-RS commands."
    )


def parse_get_request(target: str) -> GetRequest:
    """Parse a GET request target into a tile, metadata or malformed request.

    The target is compared case-insensitively. Raises ValueError when an
    Iris target is preceded by empty path segments.
    """
    text = target.lower()
    if text:
        cursor = _Cursor(text)
        protocol = _parse_protocol(cursor.copy())
        if protocol is Protocol.IRIS:
            return _parse_iris_request(cursor)
        if protocol is Protocol.DICOM:
            return _parse_dicom_request(cursor)
    return _malformed(
        "Undefined GET request protocol. Please follow either IrisRESTful or DICOMweb WADO-RS API"
    )