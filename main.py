"""
ImageTagger - Image Metadata Tagging Tool
=========================================

Main entry point for ImageTagger. Writes tag lists into image metadata
(JPEG, PNG, TIFF) with automatic backup and rollback, and reads them back.

Commands:
- save <image> <tag> [<tag> ...]   Write tags into the image
- read <image>                     Print tags found in the image
- info <image>                     Print file facts and tags
- check <image>                    Report whether the image is writable

Exit codes: 0 success, 1 failure, 2 restore failure (image may be damaged,
backup kept next to it).

Author: ImageTagger Project
"""

import argparse
import logging
import os
import sys

# ============================================================================
# PATH SETUP
# ============================================================================
# Ensure the project root is importable so 'from src.core import ...' works
# regardless of where the script is executed from.
current_dir = os.path.dirname(os.path.abspath(__file__))
if current_dir not in sys.path:
    sys.path.insert(0, current_dir)

from src.core.metadata.errors import RestoreFailedError
from src.core.metadata_service import MetadataService
from src.utils.config_manager import load_settings
from src.utils.logger import setup_logging, shutdown_logging

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_RESTORE_FAILED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="imagetagger", description="Write and read image tags.")
    parser.add_argument("--config", help="Path to a settings JSON file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Echo debug logging to the console")

    sub = parser.add_subparsers(dest="command", required=True)

    save = sub.add_parser("save", help="Write tags into an image")
    save.add_argument("image")
    save.add_argument("tags", nargs="+")

    read = sub.add_parser("read", help="Print tags stored in an image")
    read.add_argument("image")
    read.add_argument("--sidecar", action="store_true", help="Read the .tags sidecar instead")

    info = sub.add_parser("info", help="Print file facts and tags")
    info.add_argument("image")

    check = sub.add_parser("check", help="Report whether an image can be tagged")
    check.add_argument("image")

    return parser


def run(args: argparse.Namespace, service: MetadataService) -> int:
    if args.command == "save":
        try:
            ok = service.save_tags(args.image, args.tags)
        except RestoreFailedError as e:
            print(f"CRITICAL: {e}", file=sys.stderr)
            return EXIT_RESTORE_FAILED
        print("Tags saved" if ok else "Failed to save tags")
        return EXIT_OK if ok else EXIT_FAILED

    if args.command == "read":
        tags = service.read_sidecar_tags(args.image) if args.sidecar else service.read_tags(args.image)
        for tag in tags:
            print(tag)
        return EXIT_OK

    if args.command == "info":
        info = service.get_image_info(args.image)
        if info.created_at is None:
            print(f"Cannot read {args.image}", file=sys.stderr)
            return EXIT_FAILED
        print(f"File:     {info.file_name}")
        print(f"Size:     {info.file_size} bytes")
        print(f"Created:  {info.created_at:%Y-%m-%d %H:%M:%S}")
        print(f"Modified: {info.modified_at:%Y-%m-%d %H:%M:%S}")
        print(f"Tags:     {'; '.join(info.tags) if info.has_tags else '(none)'}")
        return EXIT_OK

    supported = service.is_supported(args.image)
    print("supported" if supported else "not supported")
    return EXIT_OK if supported else EXIT_FAILED


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    settings = load_settings(args.config)
    if args.verbose:
        settings.logging.log_to_console = True
        settings.logging.log_level = "DEBUG"
    setup_logging(settings.logging)

    try:
        with MetadataService(settings.metadata) as service:
            return run(args, service)
    except Exception as e:
        logging.getLogger(__name__).error(f"Unhandled error: {e}", exc_info=True)
        return EXIT_FAILED
    finally:
        shutdown_logging()


if __name__ == "__main__":
    sys.exit(main())
