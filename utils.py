
import subprocess
import re
import json
import logging
from collections import namedtuple

logger = logging.getLogger(__name__)

# JPEG markers
SOI = b'\xff\xd8'
APP1_MARKER = b'\xff\xe1'
SOS = 0xda
EOI = 0xd9

XMP_SIGNATURE = b'http://ns.adobe.com/xap/1.0/\x00'
# Largest value the 2-byte segment length field can hold
MAX_SEGMENT_LENGTH = 0xffff


class NotJpegError(ValueError):
    """Input buffer does not start with the JPEG SOI marker."""


class XmpSegmentTooLargeError(ValueError):
    """Packaged XMP does not fit in a single APP1 segment."""


MotionPhotoParams = namedtuple(
    'MotionPhotoParams',
    ['video_length', 'duration_ms', 'micro_video_offset', 'thumbnail_length'],
    defaults=(None, None),
)


def run_command(command, check=True):
    """Run a shell command and return the result."""
    logger.info(f"Running command: {command}")
    result = subprocess.run(command, capture_output=True, text=True)
    if check and result.returncode != 0:
        logger.error(f"Command failed with code {result.returncode}")
        logger.error(f"Stderr: {result.stderr}")
        logger.error(f"Stdout: {result.stdout}")
        raise subprocess.CalledProcessError(result.returncode, command, result.stdout, result.stderr)
    return result


def ensure_jpeg(data):
    if data[:2] != SOI:
        raise NotJpegError("Input is not a JPEG (missing SOI marker)")


def find_xmp_insert_position(data):
    """
    Walk the marker stream after SOI and return the offset right after the
    leading APPn segments, i.e. where a new APP1 segment can go.

    Unknown markers are stepped over one byte at a time. If neither SOS nor
    EOI shows up, the last position past an APPn segment is used.
    """
    ensure_jpeg(data)

    insert_pos = 2
    pos = 2
    while pos < len(data) - 1:
        if data[pos] != 0xff:
            pos += 1
            continue
        marker = data[pos + 1]
        if marker in (SOS, EOI):
            return pos
        if 0xe0 <= marker <= 0xef and pos + 3 < len(data):
            seg_len = (data[pos + 2] << 8) | data[pos + 3]
            pos += 2 + seg_len
            insert_pos = pos
            continue
        pos += 1

    if len(data) > 2:
        logger.warning("No SOS/EOI marker found, inserting XMP at offset %d", insert_pos)
    return insert_pos


def build_motion_xmp_xml(params):
    """
    Render the motion photo XMP packet.

    The namespaces, attribute names and layout are what motion photo aware
    galleries look for; keep them byte for byte.
    """
    offset = params.micro_video_offset
    if offset is None:
        offset = params.video_length
    item_length = params.thumbnail_length
    if item_length is None:
        item_length = params.video_length

    xml = '\n'.join([
        '<x:xmpmeta xmlns:x="adobe:ns:meta/" x:xmptk="Adobe XMP Core 5.1.0-jc003">',
        '  <rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#">',
        '    <rdf:Description rdf:about=""',
        '        xmlns:hdrgm="http://ns.adobe.com/hdr-gain-map/1.0/"',
        '        xmlns:Container="http://ns.google.com/photos/1.0/container/"',
        '        xmlns:Item="http://ns.google.com/photos/1.0/container/item/"',
        '        xmlns:GCamera="http://ns.google.com/photos/1.0/camera/"',
        '      hdrgm:Version="1.0"',
        '      GCamera:MicroVideoVersion="1"',
        '      GCamera:MicroVideo="1"',
        f'      GCamera:MicroVideoOffset="{offset}"',
        '      GCamera:MicroVideoPresentationTimestampUs="0">',
        '      <Container:Directory>',
        '        <rdf:Seq>',
        '          <rdf:li rdf:parseType="Resource">',
        '            <Container:Item',
        '              Item:Semantic="Primary"',
        '              Item:Mime="image/jpeg"/>',
        '          </rdf:li>',
        '          <rdf:li rdf:parseType="Resource">',
        '            <Container:Item',
        '              Item:Semantic="GainMap"',
        '              Item:Mime="image/jpeg"',
        f'              Item:Length="{item_length}"/>',
        '          </rdf:li>',
        '        </rdf:Seq>',
        '      </Container:Directory>',
        '    </rdf:Description>',
        '  </rdf:RDF>',
        '</x:xmpmeta>',
    ])
    return xml.encode('utf-8')


def build_xmp_segment(xmp_xml):
    """Wrap XMP bytes in an APP1 segment (marker, big-endian length, payload)."""
    payload = XMP_SIGNATURE + xmp_xml
    # the length field counts itself
    length = len(payload) + 2
    if length > MAX_SEGMENT_LENGTH:
        raise XmpSegmentTooLargeError(
            f"XMP segment too large: {length} bytes (max {MAX_SEGMENT_LENGTH})"
        )
    return APP1_MARKER + length.to_bytes(2, 'big') + payload


def insert_segment(data, segment):
    pos = find_xmp_insert_position(data)
    return data[:pos] + segment + data[pos:]


def add_motion_photo_xmp(jpeg_bytes, params):
    """Return a copy of jpeg_bytes with the motion photo XMP segment injected."""
    ensure_jpeg(jpeg_bytes)
    segment = build_xmp_segment(build_motion_xmp_xml(params))
    return insert_segment(bytes(jpeg_bytes), segment)


def _iter_app1_payloads(data):
    pos = 2
    while pos + 3 < len(data):
        if data[pos] != 0xff:
            pos += 1
            continue
        marker = data[pos + 1]
        if marker in (SOS, EOI):
            return
        if 0xe0 <= marker <= 0xef:
            seg_len = (data[pos + 2] << 8) | data[pos + 3]
            if marker == 0xe1:
                yield data[pos + 4:pos + 2 + seg_len]
            pos += 2 + seg_len
            continue
        pos += 1


def read_motion_photo_xmp(data):
    """
    Return the text of the first XMP APP1 segment that declares
    GCamera:MicroVideoOffset, or None. Other XMP packets (e.g. the camera's
    own) are skipped.
    """
    ensure_jpeg(data)
    for payload in _iter_app1_payloads(data):
        if not payload.startswith(XMP_SIGNATURE):
            continue
        xmp = payload[len(XMP_SIGNATURE):].decode('utf-8', errors='replace')
        if 'GCamera:MicroVideoOffset=' in xmp:
            return xmp
    return None


def _xmp_int(xmp, pattern):
    match = re.search(pattern, xmp)
    return int(match.group(1)) if match else None


def read_motion_photo_offset(data):
    """
    Read GCamera:MicroVideoOffset from a motion photo.
    Returns int, or None if the image carries no such tag.
    """
    xmp = read_motion_photo_xmp(data)
    if xmp is None:
        return None
    return _xmp_int(xmp, r'GCamera:MicroVideoOffset="(\d+)"')


def split_motion_photo(data):
    """
    Split a motion photo into (still_jpeg, video).

    The video starts MicroVideoOffset bytes before EOF. When the directory
    lists a GainMap item with a length, that many trailing bytes belong to the
    thumbnail and are not part of the video.
    """
    data = bytes(data)
    xmp = read_motion_photo_xmp(data)
    offset = _xmp_int(xmp, r'GCamera:MicroVideoOffset="(\d+)"') if xmp else None
    if offset is None or offset <= 0:
        raise ValueError("Not a motion photo or missing MicroVideoOffset")
    if offset >= len(data):
        raise ValueError(f"Invalid motion photo: offset {offset} >= file size {len(data)}")

    trailer_length = _xmp_int(xmp, r'Item:Semantic="GainMap"[^>]*?Item:Length="(\d+)"') or 0
    if trailer_length >= offset:
        raise ValueError(f"Invalid motion photo: GainMap length {trailer_length} >= offset {offset}")

    video_start = len(data) - offset
    video_end = len(data) - trailer_length
    return data[:video_start], data[video_start:video_end]


def get_video_duration_ms(path):
    """Get the clip duration in milliseconds using ffprobe."""
    cmd = [
        'ffprobe',
        '-v', 'error',
        '-show_entries', 'format=duration',
        '-of', 'json',
        path
    ]
    result = run_command(cmd)
    try:
        duration = json.loads(result.stdout or '{}')['format']['duration']
        return int(round(float(duration) * 1000))
    except (json.JSONDecodeError, KeyError, TypeError, ValueError):
        raise ValueError(f"Could not read video duration: {path}")


def read_bytes(path):
    with open(path, 'rb') as f:
        return f.read()
