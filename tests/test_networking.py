import http.client
import io
import json
import socket
import threading
from http import HTTPStatus

import pytest

from irisrestful.networking import (
    HttpResponse,
    Networking,
    NetworkingError,
    ServerCallbacks,
    build_string_response,
    mime_type,
)
from irisrestful.serializer import serialize_get_response
from irisrestful.types import (
    Encoding,
    Extent,
    Format,
    GetMetadataResponse,
    GetResponse,
    GetTileResponse,
    LayerExtent,
    ResponseType,
    SlideInfo,
)


class _FakeSocket:
    def __init__(self, data):
        self._data = data

    def makefile(self, *args, **kwargs):
        return io.BytesIO(self._data)


def _parse(raw):
    response = http.client.HTTPResponse(_FakeSocket(raw))
    response.begin()
    return response


def _exchange(port, payload):
    with socket.create_connection(("127.0.0.1", port), timeout=5) as client:
        client.sendall(payload)
        chunks = []
        while True:
            chunk = client.recv(4096)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


def _info():
    return SlideInfo(
        format=Format.R8G8B8,
        encoding=Encoding.JPEG,
        extent=Extent(width=64, height=32, layers=[LayerExtent(1, 1, 1.0)]),
    )


def _metadata_handler(session, target, respond):
    respond(GetMetadataResponse(type=ResponseType.METADATA, slide_info=_info()))


@pytest.fixture
def serve():
    started = []

    def start(handler):
        networking = Networking(ServerCallbacks(on_get_request=handler), read_timeout=5.0)
        networking.listen(0)
        started.append(networking)
        return networking

    yield start
    for networking in started:
        networking.close()


@pytest.mark.parametrize(
    "path, expected",
    [
        ("index.html", "text/html"),
        ("page.htm", "text/html"),
        ("style.css", "text/css"),
        ("app.js", "application/javascript"),
        ("DATA.JSON", "application/json"),
        ("tile.jpg", "image/jpeg"),
        ("scan.tif", "image/tiff"),
        ("icon.svgz", "image/svg+xml"),
        ("noextension", "application/text"),
        ("archive.zip", "application/text"),
    ],
)
def test_mime_type(path, expected):
    assert mime_type(path) == expected


def test_build_malformed_response():
    response = GetResponse(type=ResponseType.MALFORMED_REQ, error_msg="bad target")
    built = build_string_response(response)
    assert built.status == HTTPStatus.BAD_REQUEST
    assert built.content_type == "application/text"
    assert built.body == serialize_get_response(response).encode()


def test_build_not_found_keeps_connection_flag():
    response = GetResponse(type=ResponseType.FILE_NOT_FOUND, keep_alive=True)
    built = build_string_response(response)
    assert built.status == HTTPStatus.NOT_FOUND
    assert built.keep_alive is True


def test_build_metadata_response_is_json():
    response = GetMetadataResponse(type=ResponseType.METADATA, slide_info=_info())
    built = build_string_response(response)
    assert built.status == HTTPStatus.OK
    assert built.content_type == "application/json"
    assert json.loads(built.body)["extent"]["width"] == 64


def test_build_tile_response_is_rejected():
    with pytest.raises(ValueError):
        build_string_response(GetTileResponse(type=ResponseType.TILE, pixel_data=b"x"))


def test_response_bytes_round_trip():
    body = b"hello body"
    raw = HttpResponse(status=200, body=body, content_type="text/plain").to_bytes()
    parsed = _parse(raw)
    assert parsed.status == 200
    assert parsed.getheader("Content-Type") == "text/plain"
    assert parsed.getheader("Server") == "IrisRESTful"
    assert parsed.getheader("Content-Length") == str(len(body))
    assert parsed.getheader("Connection") == "close"
    assert parsed.read() == body


def test_keep_alive_response_has_no_close_header():
    raw = HttpResponse(status=404, body=b"", keep_alive=True).to_bytes()
    parsed = _parse(raw)
    assert parsed.status == 404
    assert parsed.getheader("Connection") is None


def test_metadata_request_over_http(serve):
    networking = serve(_metadata_handler)
    client = http.client.HTTPConnection("127.0.0.1", networking.port, timeout=5)
    try:
        client.request("GET", "/slides/abc/metadata")
        response = client.getresponse()
        document = json.loads(response.read())
    finally:
        client.close()
    assert response.status == 200
    assert response.getheader("Content-Type") == "application/json"
    assert document["format"] == "FORMAT_R8G8B8"


def test_keep_alive_serves_several_requests(serve):
    targets = []

    def handler(session, target, respond):
        targets.append(target)
        respond(GetResponse(type=ResponseType.FILE_NOT_FOUND, error_msg=target))

    networking = serve(handler)
    client = http.client.HTTPConnection("127.0.0.1", networking.port, timeout=5)
    try:
        bodies = []
        for target in ("/a", "/b"):
            client.request("GET", target)
            reply = client.getresponse()
            bodies.append((reply.status, reply.read()))
    finally:
        client.close()
    assert targets == ["/a", "/b"]
    assert bodies == [(404, b"/a"), (404, b"/b")]


def test_tile_response_from_worker_thread(serve):
    pixels = b"\xff\xd8tile-bytes"

    def handler(session, target, respond):
        response = GetTileResponse(type=ResponseType.TILE, pixel_data=pixels)
        threading.Thread(target=respond, args=(response,)).start()

    networking = serve(handler)
    client = http.client.HTTPConnection("127.0.0.1", networking.port, timeout=5)
    try:
        client.request("GET", "/slides/abc/layers/0/tiles/0")
        reply = client.getresponse()
        body = reply.read()
    finally:
        client.close()
    assert reply.status == 200
    assert reply.getheader("Content-Type") == "image/jpeg"
    assert body == pixels


def test_session_starts_without_slide(serve):
    seen = []

    def handler(session, target, respond):
        seen.append(session.slide)
        respond(GetResponse(type=ResponseType.MALFORMED_REQ))

    networking = serve(handler)
    raw = _exchange(
        networking.port, b"GET /x HTTP/1.1\r\nHost: a\r\nConnection: close\r\n\r\n"
    )
    assert _parse(raw).status == HTTPStatus.BAD_REQUEST
    assert seen == [None]


def test_oversized_header_is_refused(serve):
    networking = serve(_metadata_handler)
    payload = b"GET / HTTP/1.1\r\nX-Pad: " + b"a" * 2000 + b"\r\n\r\n"
    parsed = _parse(_exchange(networking.port, payload))
    assert parsed.status == HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE
    assert b"header-length limit" in parsed.read()


def test_oversized_body_is_refused(serve):
    networking = serve(_metadata_handler)
    payload = (
        b"GET / HTTP/1.1\r\nHost: a\r\nConnection: close\r\nContent-Length: 5000\r\n\r\n"
    )
    parsed = _parse(_exchange(networking.port, payload))
    assert parsed.status == HTTPStatus.REQUEST_ENTITY_TOO_LARGE
    assert b"payload-length limit" in parsed.read()


def test_malformed_request_line(serve):
    networking = serve(_metadata_handler)
    parsed = _parse(_exchange(networking.port, b"garbage\r\n\r\n"))
    assert parsed.status == HTTPStatus.BAD_REQUEST
    assert parsed.read().startswith(b"IrisRESTful API encountered undefined error")


def test_post_gets_no_response(serve):
    calls = []

    def handler(session, target, respond):
        calls.append(target)

    networking = serve(handler)
    raw = _exchange(
        networking.port,
        b"POST /slides/x/metadata HTTP/1.1\r\nHost: a\r\nContent-Length: 0\r\n\r\n",
    )
    assert raw == b""
    assert calls == []


def test_listen_twice_fails(serve):
    networking = serve(_metadata_handler)
    with pytest.raises(NetworkingError, match="already active"):
        networking.listen(0)


def test_listen_on_busy_port_fails(serve):
    first = serve(_metadata_handler)
    second = Networking(ServerCallbacks(on_get_request=_metadata_handler))
    try:
        with pytest.raises(NetworkingError, match="bind"):
            second.listen(first.port)
    finally:
        second.close()


def test_listen_after_close_fails():
    networking = Networking(ServerCallbacks(on_get_request=_metadata_handler))
    networking.close()
    with pytest.raises(NetworkingError):
        networking.listen(0)
    assert networking.port is None