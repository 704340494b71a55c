#!/usr/bin/env python3
"""
Movie Barcode Generator

Generate bar codes from movies: sample frames evenly across a video and
concatenate a thin strip from each one into a single image.
"""

import sys

from moviebarcode.cli import main


if __name__ == "__main__":
    sys.exit(main())
