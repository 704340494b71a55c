"""
Frame sources: the boundary between the barcode pipeline and whatever
actually decodes the video.

A frame source answers two questions about an input file: what its
dimensions and duration are (probe), and what it looks like at N evenly
spaced moments (sample). Sampling is lazy so that only one decoded frame is
alive at a time.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import numpy as np

from .errors import CancelledByCaller


@dataclass(frozen=True)
class VideoMetadata:
    native_width: int
    native_height: int
    duration: float


@dataclass(frozen=True)
class Frame:
    """
    One decoded sample of the video.

    Attributes:
        index: 0-based sample index
        position: Fraction of the total duration this sample represents
        timestamp: Seek target in seconds
        pixels: BGR uint8 array of shape (height, width, 3), read-only
    """
    index: int
    position: float
    timestamp: float
    pixels: np.ndarray = field(repr=False)

    def __post_init__(self):
        # Read-only view; the array passed in stays writable
        pixels = self.pixels.view()
        pixels.setflags(write=False)
        object.__setattr__(self, "pixels", pixels)

    @property
    def width(self):
        return self.pixels.shape[1] if self.pixels.ndim >= 2 else 0

    @property
    def height(self):
        return self.pixels.shape[0] if self.pixels.ndim >= 1 else 0


def sample_timestamps(duration, count):
    """
    Compute the seek targets for `count` evenly spaced samples.

    Sample i lands on i / count * duration, clamped into [0, duration).

    Args:
        duration: Video duration in seconds
        count: Number of samples

    Returns:
        List of timestamps in seconds, one per sample index
    """
    if count <= 0:
        return []
    duration = max(0.0, float(duration))
    timestamps = []
    for i in range(count):
        t = i * duration / count
        if duration > 0 and t >= duration:
            t = np.nextafter(duration, 0.0)
        timestamps.append(max(0.0, t))
    return timestamps


def check_cancelled(cancellation):
    """Raise CancelledByCaller if the cancellation token has been set."""
    if cancellation is not None and cancellation.is_set():
        raise CancelledByCaller("Cancelled by caller")


class FrameSource(ABC):
    """Decoding backend interface."""

    name = "abstract"

    @abstractmethod
    def probe(self, path):
        """Return VideoMetadata for `path` without decoding frames."""

    @abstractmethod
    def sample(self, path, count, cancellation=None):
        """
        Yield exactly `count` Frames spaced evenly across the video.

        The returned iterator is single-use. Closing it early releases any
        decoder resources.
        """
