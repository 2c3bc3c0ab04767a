import pytest


def _segment(marker, payload):
    return bytes([0xff, marker]) + (len(payload) + 2).to_bytes(2, "big") + payload


def build_jpeg(scan=b"\x12\x34\x56\x78", app_segments=None):
    """SOI, APPn segments, DQT, SOS, entropy data, EOI."""
    if app_segments is None:
        app_segments = [(0xe0, b"JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00")]
    data = b"\xff\xd8"
    for marker, payload in app_segments:
        data += _segment(marker, payload)
    data += _segment(0xdb, b"\x00" + bytes(range(1, 65)))
    data += _segment(0xda, b"\x01\x01\x00\x00\x3f\x00")
    return data + scan + b"\xff\xd9"


@pytest.fixture
def make_jpeg():
    return build_jpeg
