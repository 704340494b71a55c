"""
Command-line entry point: generate bar codes from movies.
"""

import argparse
import logging
import signal
import sys
import threading

from . import __version__
from .batch import BACKENDS, BatchOptions, enumerate_inputs, run_batch
from .plan import DEFAULT_BAR_WIDTH, DEFAULT_WIDTH, STRIP_MODES


def build_parser():
    parser = argparse.ArgumentParser(
        prog="moviebarcode",
        description="Generate bar codes from movies (concatenate movie frames in one image). "
                    "You can provide one input file, a directory or a wildcard pattern, "
                    "along with an output file or directory."
    )

    parser.add_argument(
        "input",
        help="Input file, directory or wildcard pattern"
    )

    parser.add_argument(
        "--output", "-o",
        help="Output file or directory (default: current directory)"
    )

    parser.add_argument(
        "--overwrite", "-x",
        action="store_true",
        help="Overwrite existing files instead of skipping them"
    )

    parser.add_argument(
        "--recursive", "-r",
        action="store_true",
        help="Browse the input directory recursively"
    )

    parser.add_argument(
        "--width", "-w",
        default=DEFAULT_WIDTH,
        help=f"Width of the output image (default: {DEFAULT_WIDTH})"
    )

    parser.add_argument(
        "--height", "-H",
        help="Height of the output image (default: height of the input video)"
    )

    parser.add_argument(
        "--barwidth", "--barWidth", "-b",
        dest="barwidth",
        default=DEFAULT_BAR_WIDTH,
        help=f"Width of each bar in the output image (default: {DEFAULT_BAR_WIDTH})"
    )

    parser.add_argument(
        "--smooth", "-s",
        action="store_true",
        help="Also generate a smooth version of the output, suffixed with '_smoothed'"
    )

    parser.add_argument(
        "--mode",
        choices=STRIP_MODES,
        default="resize",
        help="How each frame becomes a bar: squeeze the whole frame, or average each row (default: resize)"
    )

    parser.add_argument(
        "--backend",
        choices=BACKENDS,
        default="ffmpeg",
        help="Video decoding backend (default: ffmpeg)"
    )

    parser.add_argument(
        "--ffmpeg",
        help="Path to the ffmpeg binary (default: $MOVIEBARCODE_FFMPEG or ffmpeg on PATH)"
    )

    parser.add_argument(
        "--ffprobe",
        help="Path to the ffprobe binary (default: $MOVIEBARCODE_FFPROBE or ffprobe on PATH)"
    )

    parser.add_argument(
        "--workers",
        type=int,
        help="Number of worker processes for batch processing (default: sequential)"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Also save a graph of the color change between consecutive bars"
    )

    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable progress bars"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose logging"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    return parser


def main(argv=None):
    """Main entry point for the movie barcode generator."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )

    if args.workers is not None and args.workers <= 0:
        print("Error: --workers must be positive")
        return 1

    inputs = enumerate_inputs(args.input, args.recursive)
    if not inputs:
        print("Input does not exist.")
        return 1

    options = BatchOptions(
        raw_output=args.output,
        overwrite=args.overwrite,
        raw_width=args.width,
        raw_height=args.height,
        raw_bar_width=args.barwidth,
        smooth=args.smooth,
        strip_mode=args.mode,
        backend=args.backend,
        ffmpeg=args.ffmpeg,
        ffprobe=args.ffprobe,
        debug=args.debug,
        show_progress=not args.no_progress,
    )

    # Ctrl+C stops after the current frame instead of tearing down mid-read
    cancellation = threading.Event()
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: cancellation.set())
    try:
        results = run_batch(inputs, options, workers=args.workers, cancellation=cancellation)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    failed = [r for r in results if not r.ok]
    saved = sum(1 for r in results if r.status == "saved")
    print(f"{saved} of {len(results)} files generated, {len(failed)} failed.")
    print("Exiting...")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
