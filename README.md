# irisrestful

A small threaded HTTP/1.1 server that serves tiles and metadata of whole-slide
images to web viewers such as OpenSeaDragon. It answers two request styles:

* the IrisRESTful API, rooted at `/slides/...`
* a DICOMweb WADO-RS compatible subset, rooted at `/studies/...`

The package uses only the standard library.

## Request targets

IrisRESTful:

    GET /slides/<id>/metadata
    GET /slides/<id>/layers/<layer>/tiles/<tile>

WADO-RS:

    GET /studies/<study>/series/<id>/metadata
    GET /studies/<study>/series/<id>/instances/<layer>/frames/<tile>

Targets are matched case-insensitively. `HEAD` is answered like `GET`; any
other method closes the connection without a response.

* Metadata comes back as `application/json` with status 200.
* A tile comes back as its stored encoded bytes, labelled `image/jpeg`.
* A target that follows neither API gets `400 Bad Request` with a plain-text
  explanation.
* An identifier for which no slide can be opened, or a layer or tile index
  outside the slide's tile table, gets `404 Not Found`.

The HTTP layer rejects request headers longer than 1024 bytes (431), bodies
longer than 2048 bytes (413) and chunked transfer encoding (400). An idle
connection is dropped after 30 seconds.

## Running a server

A slide identifier `<id>` maps to the path `<root>/<id>.iris`. The server does
not read slide files itself: `create_server` takes the slide root directory
and a callable that is given that path and returns a `irisrestful.slide.Slide`,
raising `OSError` or `ValueError` when it cannot. The returned slide's `id`
should be the identifier it was opened for (the path's stem).

```python
from pathlib import Path

from irisrestful.server import create_server, server_listen
from irisrestful.slide import Slide, TileEntry
from irisrestful.types import Encoding, Extent, Format, LayerExtent, SlideInfo


def open_slide(path: Path) -> Slide:
    data = path.read_bytes()           # raises OSError if the file is missing
    # Work out the tile table from your slide file here; this example
    # treats the whole file as a single tile on a single layer.
    info = SlideInfo(
        format=Format.R8G8B8,
        encoding=Encoding.JPEG,
        extent=Extent(width=256, height=256, layers=[LayerExtent(1, 1, 1.0)]),
    )
    return Slide(path.stem, data, [[TileEntry(offset=0, size=len(data))]], info)


server = create_server("/data/slides", open_slide)
server_listen(server, 3000)
try:
    ...  # serve until shutdown
finally:
    server.close()
```

`create_server` raises `ServerError` if the root is not a directory;
`server_listen` raises `ServerError` if the server cannot listen (for example
when the port is taken). `Server` can also be built directly as
`Server(root, open_slide, pool_size=None)`, is a context manager, and offers
`listen(port)`, `close()`, `get_slide(identifier)`, `port` (useful after
listening on port 0) and `cached_ids`.

Opened slides are kept in a directory of weak references and shared between
connections; a slide leaves the directory once it is closed or nothing refers
to it any more. Requests are parsed and answered on a worker thread pool.

## Metadata JSON

A metadata response looks like this (the `format` and `encoding` fields are
left out when undefined):

```json
{"type": "slide_metadata","format": "FORMAT_R8G8B8","encoding": "image/jpeg","extent": {"width": 256,"height": 256,"layers": [{"x_tiles": 1,"y_tiles": 1,"scale": 1}]}}
```

The `metadata` mapping of a `SlideInfo` is not included.

## Parsing and serializing on their own

```python
from irisrestful.parser import parse_get_request
from irisrestful.types import Protocol, RequestType

request = parse_get_request("/slides/sample/layers/0/tiles/12")
assert request.protocol is Protocol.IRIS
assert request.type is RequestType.TILE
print(request.id, request.layer, request.tile)   # sample 0 12
```

A target that does not follow either API comes back as a `GetRequest` whose
protocol is `Protocol.MALFORMED` and whose `error_msg` says what was wrong.

`irisrestful.serializer.serialize_get_response` turns a `GetMetadataResponse`
into the JSON above and an error response into its message text; it raises
`ValueError` for tile responses. `serialize_format` and `serialize_encoding`
give the quoted JSON strings used for a pixel format and a tile encoding.

## Building blocks

* `irisrestful.types` — the enums (`Protocol`, `RequestType`, `ResponseType`,
  `Format`, `Encoding`) and dataclasses for requests, responses and
  `SlideInfo`.
* `irisrestful.queues` — `FifoQueue` and `LifoQueue`, thread-safe queues;
  popping an empty queue raises `QueueEmpty`.
* `irisrestful.async_pool` — `ThreadPool` (made with `create_thread_pool`),
  which runs tasks on worker threads, optionally returning a `Fence` to wait
  on a task's completion.
* `irisrestful.networking` — the HTTP layer: `Networking`, `Session`,
  `HttpResponse`, `ServerCallbacks`, `build_string_response` and `mime_type`.
* `irisrestful.slide` — `Slide` and `TileEntry`, giving a slide's `SlideInfo`
  and individual tile bytes by layer and tile index.

## What this package does not do

* It has no command-line program; a server is started from Python as shown
  above.
* It does not read or validate slide files. Opening a `.iris` file and
  building its tile table is left to the `open_slide` callable you supply.
* It does not serve thumbnails, slide labels or rendered images, and does not
  handle `POST`, `PUT` or other write requests.