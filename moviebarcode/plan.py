"""
Parameter validation: raw, user-supplied strings in, a GenerationPlan out.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import cv2

from .errors import InputNotFound, InvalidChoiceParameter, InvalidNumericParameter, InvalidOutputPath

logger = logging.getLogger(__name__)

DEFAULT_WIDTH = "1000"
DEFAULT_BAR_WIDTH = "1"
DEFAULT_EXTENSION = ".png"
SMOOTHED_SUFFIX = "_smoothed"
STRIP_MODES = ("resize", "average")


@dataclass(frozen=True)
class GenerationPlan:
    """Validated parameters for one barcode generation request."""
    input_path: Path
    output_path: Path
    bar_width: int
    output_width: int
    output_height: int
    generate_smoothed: bool = False
    smoothed_output_path: Path = None
    strip_mode: str = "resize"

    @property
    def frame_count(self):
        return self.output_width // self.bar_width


def _clean_raw_path(raw):
    if raw is None:
        return ""
    return str(raw).strip().strip('"').strip("'").strip()


def _parse_positive_int(field, raw):
    text = "" if raw is None else str(raw).strip()
    try:
        value = int(text)
    except ValueError:
        raise InvalidNumericParameter(field, raw) from None
    if value <= 0:
        raise InvalidNumericParameter(field, raw)
    return value


def resolve_output_path(input_path, raw_output_path):
    """
    Work out where the barcode image for `input_path` should be written.

    Args:
        input_path: Validated input file path
        raw_output_path: User-supplied output file or directory, or None

    Returns:
        Path of the output image
    """
    default_name = input_path.stem + DEFAULT_EXTENSION
    cleaned = _clean_raw_path(raw_output_path)
    if not cleaned:
        output_path = Path.cwd() / default_name
    elif Path(cleaned).is_dir():
        output_path = Path(cleaned) / default_name
    else:
        output_path = Path(cleaned)

    if not output_path.parent.is_dir():
        raise InvalidOutputPath(output_path)
    if not cv2.haveImageWriter(str(output_path)):
        raise InvalidOutputPath(output_path, f"no image writer for extension {output_path.suffix!r}")
    return output_path


def smoothed_path_for(output_path):
    """Insert the smoothed suffix before the extension of `output_path`."""
    return output_path.with_name(f"{output_path.stem}{SMOOTHED_SUFFIX}{output_path.suffix}")


def validate(raw_input_path, raw_output_path=None, raw_bar_width=DEFAULT_BAR_WIDTH,
             raw_image_width=DEFAULT_WIDTH, raw_image_height=None, use_input_height=False,
             generate_smoothed=False, overwrite_policy=None, frame_source=None,
             strip_mode="resize"):
    """
    Turn raw parameters into a GenerationPlan.

    Textual checks all run before the input is probed, so an invalid
    request never starts a decoder.

    Args:
        raw_input_path: Path of the video file
        raw_output_path: Output file or directory (None = current directory)
        raw_bar_width: Width of each strip, as text
        raw_image_width: Width of the output image, as text
        raw_image_height: Height of the output image, as text (ignored if use_input_height)
        use_input_height: Take the output height from the video's native height
        generate_smoothed: Also produce a smoothed copy
        overwrite_policy: Accepted for symmetry with the caller; it decides
            overwriting itself against the filesystem
        frame_source: FrameSource used to probe the input when use_input_height is set
        strip_mode: How each frame is reduced to a strip ("resize" or "average")

    Returns:
        GenerationPlan
    """
    input_path = Path(_clean_raw_path(raw_input_path))
    if not str(raw_input_path or "").strip() or not input_path.is_file() or not os.access(input_path, os.R_OK):
        raise InputNotFound(raw_input_path)

    output_path = resolve_output_path(input_path, raw_output_path)

    bar_width = _parse_positive_int("bar_width", raw_bar_width)
    output_width = _parse_positive_int("image_width", raw_image_width)
    output_height = None
    if not use_input_height:
        output_height = _parse_positive_int("image_height", raw_image_height)

    if bar_width > output_width:
        raise InvalidNumericParameter("bar_width", raw_bar_width,
                                      f"must not exceed the image width ({output_width})")
    if output_width % bar_width:
        trimmed = (output_width // bar_width) * bar_width
        logger.warning("Image width %d is not a multiple of bar width %d, using %d",
                       output_width, bar_width, trimmed)
        output_width = trimmed

    if strip_mode not in STRIP_MODES:
        raise InvalidChoiceParameter("strip_mode", strip_mode, STRIP_MODES)

    if use_input_height:
        if frame_source is None:
            raise ValueError("a frame source is required to use the input height")
        output_height = frame_source.probe(input_path).native_height

    return GenerationPlan(
        input_path=input_path,
        output_path=output_path,
        bar_width=bar_width,
        output_width=output_width,
        output_height=output_height,
        generate_smoothed=bool(generate_smoothed),
        smoothed_output_path=smoothed_path_for(output_path),
        strip_mode=strip_mode,
    )
