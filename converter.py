
import os
import logging
import tempfile
from utils import (
    MotionPhotoParams,
    add_motion_photo_xmp,
    ensure_jpeg,
    get_video_duration_ms,
    read_bytes,
)

logger = logging.getLogger(__name__)

# Upper bound on thumbnail re-packaging rounds when solving MicroVideoOffset
MAX_OFFSET_ITERATIONS = 5


def solve_micro_video_offset(thumbnail_bytes, video_length, duration_ms):
    """
    Find MicroVideoOffset for a file laid out as cover + video + thumbnail.

    The offset counts back from EOF to the start of the video, so it includes
    the thumbnail with its own XMP, whose size depends on the digits of the
    offset it declares. Iterate until the thumbnail size stops changing or
    MAX_OFFSET_ITERATIONS is reached; the last value is used either way.

    Returns (micro_video_offset, thumbnail_with_xmp_length).
    """
    micro_video_offset = video_length
    thumb_size = 0
    prev_thumb_size = 0
    converged = False

    for _ in range(MAX_OFFSET_ITERATIONS):
        thumbnail_with_xmp = add_motion_photo_xmp(
            thumbnail_bytes,
            MotionPhotoParams(video_length, duration_ms, micro_video_offset=micro_video_offset),
        )
        thumb_size = len(thumbnail_with_xmp)
        if thumb_size == prev_thumb_size:
            converged = True
            break
        prev_thumb_size = thumb_size
        micro_video_offset = video_length + thumb_size

    if not converged:
        logger.warning(
            "MicroVideoOffset did not settle after %d iterations, using %d; "
            "the declared GainMap length (%d) may not match the appended thumbnail",
            MAX_OFFSET_ITERATIONS, micro_video_offset, thumb_size,
        )
    return micro_video_offset, thumb_size


def assemble_motion_photo(cover_bytes, video_bytes, thumbnail_bytes, duration_ms):
    """
    Build a Motion Photo JPG in memory:
    1. Solve MicroVideoOffset against the thumbnail.
    2. Inject XMP into the cover (offset + thumbnail length).
    3. Inject XMP into the thumbnail at the final offset.
    4. Concatenate cover, video, thumbnail.
    """
    ensure_jpeg(cover_bytes)
    ensure_jpeg(thumbnail_bytes)
    video_length = len(video_bytes)

    micro_video_offset, thumb_size = solve_micro_video_offset(thumbnail_bytes, video_length, duration_ms)
    logger.info(f"Resolved MicroVideoOffset={micro_video_offset} (video={video_length}, thumbnail={thumb_size})")

    cover_with_xmp = add_motion_photo_xmp(
        cover_bytes,
        MotionPhotoParams(video_length, duration_ms, micro_video_offset, thumbnail_length=thumb_size),
    )
    thumbnail_with_xmp = add_motion_photo_xmp(
        thumbnail_bytes,
        MotionPhotoParams(video_length, duration_ms, micro_video_offset=micro_video_offset),
    )

    return b''.join([cover_with_xmp, bytes(video_bytes), thumbnail_with_xmp])


def create_motion_photo(cover_path, video_path, output_jpg_path, thumbnail_path=None, duration_ms=None):
    """
    File-level wrapper around assemble_motion_photo.
    The thumbnail defaults to the cover image; the duration defaults to the
    value reported by ffprobe.
    """
    temp_path = None
    try:
        logger.info(f"Reading cover: {cover_path}")
        cover_bytes = read_bytes(cover_path)
        logger.info(f"Reading video: {video_path}")
        video_bytes = read_bytes(video_path)
        if thumbnail_path:
            logger.info(f"Reading thumbnail: {thumbnail_path}")
            thumbnail_bytes = read_bytes(thumbnail_path)
        else:
            thumbnail_bytes = cover_bytes

        if duration_ms is None:
            duration_ms = get_video_duration_ms(video_path)
        logger.info(f"Video duration: {duration_ms} ms")

        data = assemble_motion_photo(cover_bytes, video_bytes, thumbnail_bytes, duration_ms)

        out_dir = os.path.dirname(os.path.abspath(output_jpg_path))
        os.makedirs(out_dir, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(prefix=".motion_", suffix=".jpg", dir=out_dir)
        with os.fdopen(fd, "wb") as f_out:
            f_out.write(data)
        os.replace(temp_path, output_jpg_path)
        temp_path = None

        logger.info(f"Successfully created Motion Photo: {output_jpg_path}")
        return output_jpg_path

    except Exception as e:
        logger.error(f"Failed to create motion photo: {e}")
        raise
    finally:
        if temp_path and os.path.exists(temp_path):
            os.remove(temp_path)
