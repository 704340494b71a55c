"""
Smoothed barcode: every column collapsed to its average color, then
softened horizontally so neighbouring strips blend into each other.
"""

import cv2
import numpy as np


def blur_kernel_width(canvas_width):
    """Odd horizontal box-blur width used for a canvas of the given width."""
    kernel = max(1, canvas_width // 200)
    return kernel if kernel % 2 else kernel + 1


def smooth(canvas):
    """
    Produce a smoothed copy of a finished barcode.

    Args:
        canvas: uint8 array of shape (height, width, 3)

    Returns:
        New uint8 array with the same shape as `canvas`
    """
    height, width = canvas.shape[:2]
    column_colors = cv2.resize(canvas, (width, 1), interpolation=cv2.INTER_AREA)
    kernel = blur_kernel_width(width)
    if kernel > 1:
        column_colors = cv2.blur(column_colors, (kernel, 1), borderType=cv2.BORDER_REPLICATE)
    smoothed = cv2.resize(column_colors, (width, height), interpolation=cv2.INTER_NEAREST)
    return np.ascontiguousarray(smoothed, dtype=np.uint8)
