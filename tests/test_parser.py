import pytest

from irisrestful.parser import parse_get_request
from irisrestful.types import (
    GetMetadataRequest,
    GetTileRequest,
    Protocol,
    RequestType,
)

UNDEFINED_PROTOCOL = (
    "Undefined GET request protocol. Please follow either IrisRESTful or DICOMweb WADO-RS API"
)
IRIS_UNDEFINED = (
    "Undefined command sequence (last token) in IrisRESTful target URL. "
    "Please ensure your command conforms to the IrisRestful API."
)
DICOM_UNDEFINED = (
    "Undefined command sequence (last token) in DICOM/WADO-RS target URL. "
    "Please ensure your command conforms to IrisRestful API compliant WADO-RS commands."
)


def test_iris_tile_request():
    request = parse_get_request("/slides/abc/layers/2/tiles/15")
    assert isinstance(request, GetTileRequest)
    assert request.protocol is Protocol.IRIS
    assert request.type is RequestType.TILE
    assert (request.id, request.layer, request.tile) == ("abc", 2, 15)


def test_target_is_lowercased():
    request = parse_get_request("/SLIDES/MySlide/LAYERS/1/TILES/3")
    assert request.type is RequestType.TILE
    assert request.id == "myslide"
    assert (request.layer, request.tile) == (1, 3)


def test_iris_metadata_request():
    request = parse_get_request("/slides/abc/metadata")
    assert isinstance(request, GetMetadataRequest)
    assert request.protocol is Protocol.IRIS
    assert request.type is RequestType.METADATA
    assert request.id == "abc"


@pytest.mark.parametrize("target", ["/foo/bar", "/", "", "/slide/abc/metadata"])
def test_unknown_protocol(target):
    request = parse_get_request(target)
    assert request.protocol is Protocol.MALFORMED
    assert request.type is RequestType.UNDEFINED
    assert request.error_msg == UNDEFINED_PROTOCOL


@pytest.mark.parametrize(
    "target", ["/slides/abc/info", "/slides/abc/thumbnail", "/slides/abc/metadata/"]
)
def test_undefined_iris_command(target):
    request = parse_get_request(target)
    assert request.protocol is Protocol.MALFORMED
    assert request.error_msg == IRIS_UNDEFINED


@pytest.mark.parametrize(
    "target, message",
    [
        (
            "/slides/abc/levels/1/tiles/2",
            "Expected 'layers' following slide identifier in IrisRESTful GET tile command target URL",
        ),
        (
            "/slides/abc/layers/x/tiles/2",
            "Expected numerical 'layers' value in IrisRESTful GET tile command target URL.",
        ),
        (
            "/slides/abc/layers/1/frames/2",
            "Expected 'tiles' following layer index in IrisRESTful GET tile command target URL",
        ),
        (
            "/slides/abc/layers/1/tiles/x2",
            "Expected single numerical 'tiles' value in IrisRESTful GET tile command target URL.",
        ),
    ],
)
def test_malformed_iris_tile(target, message):
    request = parse_get_request(target)
    assert request.protocol is Protocol.MALFORMED
    assert not isinstance(request, GetTileRequest)
    assert request.error_msg == message


def test_leading_empty_segment_before_slides_raises():
    with pytest.raises(ValueError):
        parse_get_request("//slides/abc/metadata")


def test_dicom_tile_request_reports_missing_series():
    request = parse_get_request("/studies/s1/series/abc/instances/0/frames/1")
    assert request.protocol is Protocol.MALFORMED
    assert request.error_msg == (
        "Expected 'series' following study identifier in DICOM/WADO-RS target URL."
    )


def test_dicom_metadata_request_reports_missing_series():
    request = parse_get_request("/studies/s1/series/abc/metadata")
    assert request.protocol is Protocol.MALFORMED
    assert request.error_msg.startswith(
        "Expected 'series' following study in DICOM/WADO-RS target URL."
    )


def test_dicom_undefined_command():
    request = parse_get_request("/studies/s1/rendered")
    assert request.protocol is Protocol.MALFORMED
    assert request.error_msg == DICOM_UNDEFINED


def test_extra_segments_after_tile_are_ignored():
    request = parse_get_request("/slides/abc/layers/0/tiles/5/more7")
    assert request.type is RequestType.TILE
    assert (request.id, request.layer, request.tile) == ("abc", 0, 5)


def test_number_with_trailing_text_keeps_leading_digits():
    request = parse_get_request("/slides/abc/layers/4kb/tiles/9")
    assert request.type is RequestType.TILE
    assert (request.layer, request.tile) == (4, 9)