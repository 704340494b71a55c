"""
Barcode compositing: reduce each sampled frame to a thin strip and lay the
strips side by side, left to right in sample order.
"""

import logging

import cv2
import numpy as np

from .errors import CompositionError
from .frames import check_cancelled

logger = logging.getLogger(__name__)


def new_canvas(plan):
    return np.zeros((plan.output_height, plan.output_width, 3), dtype=np.uint8)


def extract_strip(pixels, bar_width, height, mode="resize"):
    """
    Reduce a frame to a strip of bar_width x height pixels.

    Args:
        pixels: BGR frame array
        bar_width: Strip width in pixels
        height: Strip height in pixels
        mode: "resize" squeezes the whole frame into the strip with area
            interpolation; "average" scales the height first, then collapses
            every row to its mean color

    Returns:
        uint8 array of shape (height, bar_width, 3)
    """
    if pixels.ndim == 2:
        pixels = cv2.cvtColor(pixels, cv2.COLOR_GRAY2BGR)

    if mode == "average":
        if pixels.shape[0] != height:
            pixels = cv2.resize(pixels, (pixels.shape[1], height), interpolation=cv2.INTER_AREA)
        row_means = pixels.astype(np.float32).mean(axis=1, keepdims=True)
        strip = np.repeat(np.rint(row_means), bar_width, axis=1)
        return strip.astype(np.uint8)

    return cv2.resize(pixels, (bar_width, height), interpolation=cv2.INTER_AREA)


def _close(frames):
    close = getattr(frames, "close", None)
    if close is not None:
        close()


def compose(plan, frames, progress=None, cancellation=None):
    """
    Build the barcode canvas from a stream of frames.

    Frames are consumed as they arrive, so only the canvas and the current
    frame are held in memory. The first bad frame aborts the whole
    composition.

    Args:
        plan: GenerationPlan describing the output
        frames: Iterator of Frame, in increasing sample index order
        progress: Optional callback(index, total) invoked after each strip
        cancellation: Optional token with is_set(), checked between frames

    Returns:
        uint8 array of shape (output_height, output_width, 3)
    """
    total = plan.frame_count
    bar_width = plan.bar_width
    canvas = new_canvas(plan)
    expected = 0

    try:
        for frame in frames:
            check_cancelled(cancellation)

            index = frame.index
            if index != expected or index >= total:
                raise CompositionError(index, f"expected sample {expected} of {total}")
            if frame.width == 0 or frame.height == 0:
                raise CompositionError(index, "frame has zero size")

            try:
                strip = extract_strip(frame.pixels, bar_width, plan.output_height, plan.strip_mode)
            except cv2.error as e:
                raise CompositionError(index, e) from e

            x = index * bar_width
            canvas[:, x:x + bar_width] = strip
            expected += 1

            if progress is not None:
                progress(index, total)

        check_cancelled(cancellation)
    finally:
        _close(frames)

    if expected < total:
        raise CompositionError(expected, f"frame stream ended after {expected} of {total} frames")

    logger.debug("Composited %d strips into a %dx%d canvas", total, plan.output_width, plan.output_height)
    return canvas

