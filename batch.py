#!/usr/bin/env python3
"""
Batch script: assemble Motion Photos for every video in a directory.
Each <name>.mp4/.mov needs a same-name .jpg/.jpeg cover; the cover doubles as
the thumbnail and the duration comes from ffprobe.
"""
import os
import sys
import argparse
import logging
import subprocess

from converter import create_motion_photo

logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = (".mp4", ".mov")
COVER_EXTENSIONS = (".jpg", ".jpeg", ".JPG", ".JPEG")


def find_cover(input_dir, base):
    for ext in COVER_EXTENSIONS:
        path = os.path.join(input_dir, base + ext)
        if os.path.isfile(path):
            return path
    return None


def collect_video_pairs(input_dir):
    """Collect (cover, video) pairs in input_dir (non-recursive)."""
    pairs = []
    for name in os.listdir(input_dir):
        if not name.lower().endswith(VIDEO_EXTENSIONS):
            continue
        base = os.path.splitext(name)[0]
        cover_path = find_cover(input_dir, base)
        if cover_path:
            pairs.append((cover_path, os.path.join(input_dir, name)))
    return sorted(pairs, key=lambda x: x[1])


def convert_batch(input_dir, output_dir):
    """Assemble all pairs. Returns (ok_count, [(path, error_msg), ...])."""
    pairs = collect_video_pairs(input_dir)
    if not pairs:
        print("No .jpg + .mp4/.mov pairs found in input directory:", input_dir)
        return 0, []
    total = len(pairs)
    print(f"{total} file(s) to process")
    os.makedirs(output_dir, exist_ok=True)
    ok = 0
    failed = []
    for idx, (cover_path, video_path) in enumerate(pairs, 1):
        print(f"[{idx}/{total}] Processing: {os.path.basename(video_path)}")
        base = os.path.splitext(os.path.basename(video_path))[0]
        out_jpg = os.path.join(output_dir, base + "_motion.jpg")
        try:
            create_motion_photo(cover_path, video_path, out_jpg)
            ok += 1
        except subprocess.CalledProcessError as e:
            failed.append((video_path, str(e)))
        except Exception as e:
            failed.append((video_path, str(e)))
    return ok, failed


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Batch assemble Motion Photo JPGs from .jpg + .mp4/.mov pairs in a directory."
    )
    parser.add_argument(
        "--input", "-i",
        required=True,
        help="Input directory",
    )
    parser.add_argument(
        "--output", "-o",
        default=None,
        help="Output directory; default: a 'motion' subdirectory of the input directory",
    )

    args = parser.parse_args(argv)

    input_dir = os.path.abspath(args.input)
    if not os.path.isdir(input_dir):
        logger.error("Input directory not found: %s", input_dir)
        sys.exit(1)

    output_dir = os.path.abspath(args.output or os.path.join(input_dir, "motion"))

    ok, failed = convert_batch(input_dir, output_dir)

    print(f"Done: {ok} succeeded, {len(failed)} failed, output directory {output_dir}")
    if failed:
        print("\nFailed files:")
        for path, err in failed:
            print(f"  - {path}")
            print(f"    {err}")
    sys.exit(0 if not failed else 1)


if __name__ == "__main__":
    main()
