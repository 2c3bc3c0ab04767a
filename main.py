
import os
import sys
import argparse
import logging
import subprocess

from converter import create_motion_photo
from utils import read_bytes, split_motion_photo

logger = logging.getLogger(__name__)


def default_output_path(video_path):
    base = os.path.splitext(video_path)[0]
    return base + "_motion.jpg"


def split_motion_photo_jpg(jpg_path, out_static_jpg_path=None, out_video_path=None):
    """
    Motion Photo JPG → still JPG + MP4.
    Outputs default to <name>_still.jpg and <name>.mp4 next to the input.
    """
    base = os.path.splitext(jpg_path)[0]
    out_static_jpg_path = out_static_jpg_path or base + "_still.jpg"
    out_video_path = out_video_path or base + ".mp4"

    still_data, video_data = split_motion_photo(read_bytes(jpg_path))
    logger.info("Embedded video: %d bytes", len(video_data))

    with open(out_static_jpg_path, 'wb') as f:
        f.write(still_data)
    with open(out_video_path, 'wb') as f:
        f.write(video_data)
    return out_static_jpg_path, out_video_path


def build_parser():
    parser = argparse.ArgumentParser(
        description="Assemble a Motion Photo JPG from a cover image, a video clip and a thumbnail, "
        "or split a Motion Photo JPG back into its still image and video."
    )
    parser.add_argument("--log", "-l", action="store_true", help="Enable logging output")
    sub = parser.add_subparsers(dest="command", required=True)

    assemble = sub.add_parser("assemble", help="cover + video (+ thumbnail) → Motion Photo JPG")
    assemble.add_argument("--cover", "-c", required=True, help="Cover image (.jpg)")
    assemble.add_argument("--video", "-v", required=True, help="Video clip (.mp4)")
    assemble.add_argument("--thumbnail", "-t", help="Thumbnail image (.jpg); default: the cover image")
    assemble.add_argument(
        "--duration-ms", "-d", type=int,
        help="Video duration in milliseconds; default: read with ffprobe",
    )
    assemble.add_argument("--output", "-o", help="Output JPG path; default: <video name>_motion.jpg")

    split = sub.add_parser("split", help="Motion Photo JPG → still JPG + MP4")
    split.add_argument("--input", "-i", required=True, help="Motion Photo JPG")
    split.add_argument("--output", "-o", help="Still JPG path; default: <name>_still.jpg")
    split.add_argument("--video-output", help="MP4 path; default: <name>.mp4")
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.log:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")

    if args.command == "assemble":
        inputs = [args.cover, args.video] + ([args.thumbnail] if args.thumbnail else [])
    else:
        inputs = [args.input]
    for path in inputs:
        if not os.path.exists(path):
            logger.error("Input file not found: %s", path)
            sys.exit(1)

    try:
        if args.command == "assemble":
            output_path = args.output or default_output_path(args.video)
            logger.info("Input cover: %s", args.cover)
            logger.info("Input video: %s", args.video)
            create_motion_photo(
                args.cover,
                args.video,
                output_path,
                thumbnail_path=args.thumbnail,
                duration_ms=args.duration_ms,
            )
            logger.info("Output: %s", output_path)
        else:
            logger.info("Processing Motion Photo JPG: %s", args.input)
            still_path, video_path = split_motion_photo_jpg(args.input, args.output, args.video_output)
            logger.info("Output: %s, %s", still_path, video_path)

    except subprocess.CalledProcessError:
        sys.exit(1)
    except Exception as e:
        logger.error("Conversion failed: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
