"""
Movie barcode generator.

Samples frames evenly across a video and concatenates a thin strip from
each one into a single still image.
"""

__version__ = "0.1.0"

from .compositor import compose, extract_strip
from .errors import (
    BarcodeError,
    CancelledByCaller,
    CompositionError,
    DecoderError,
    DecoderFailure,
    DecoderUnavailable,
    InputNotFound,
    InvalidChoiceParameter,
    InvalidNumericParameter,
    InvalidOutputPath,
    ValidationError,
)
from .ffmpeg_source import FfmpegFrameSource
from .frames import Frame, FrameSource, VideoMetadata, sample_timestamps
from .opencv_source import OpenCVFrameSource
from .plan import GenerationPlan, validate
from .smoother import smooth
