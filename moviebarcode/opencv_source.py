"""
Frame source backed by OpenCV's native video capture.

No subprocess is involved: frames are decoded in-process by seeking the
capture to the frame nearest each sample timestamp.
"""

import logging

import cv2

from .errors import DecoderFailure, DecoderUnavailable
from .frames import Frame, FrameSource, VideoMetadata, check_cancelled, sample_timestamps

logger = logging.getLogger(__name__)


def _open_capture(path):
    if not cv2.videoio_registry.getStreamBackends():
        raise DecoderUnavailable("This OpenCV build has no video decoding backend")
    cap = cv2.VideoCapture(str(path))
    if not cap.isOpened():
        cap.release()
        raise DecoderFailure(f"Could not open video file: {path}")
    return cap


class OpenCVFrameSource(FrameSource):
    name = "opencv"

    def probe(self, path):
        cap = _open_capture(path)
        try:
            total_frames = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
            fps = cap.get(cv2.CAP_PROP_FPS)
            frame_width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
            frame_height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        finally:
            cap.release()

        if frame_width <= 0 or frame_height <= 0:
            raise DecoderFailure(f"Invalid video resolution {frame_width}x{frame_height}")
        if total_frames <= 0 or fps <= 0:
            raise DecoderFailure("Could not determine video duration")

        return VideoMetadata(
            native_width=frame_width,
            native_height=frame_height,
            duration=total_frames / fps,
        )

    def sample(self, path, count, cancellation=None):
        metadata = self.probe(path)
        return self._iter_frames(path, count, metadata, cancellation)

    def _iter_frames(self, path, count, metadata, cancellation):
        timestamps = sample_timestamps(metadata.duration, count)
        check_cancelled(cancellation)
        cap = _open_capture(path)
        try:
            fps = cap.get(cv2.CAP_PROP_FPS)
            total_frames = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
            for index, timestamp in enumerate(timestamps):
                check_cancelled(cancellation)
                frame_pos = min(int(round(timestamp * fps)), total_frames - 1)
                cap.set(cv2.CAP_PROP_POS_FRAMES, frame_pos)
                ret, frame = cap.read()
                if not ret or frame is None:
                    raise DecoderFailure(
                        f"Could not read frame {frame_pos} of {path}",
                        frames_received=index,
                    )
                if frame.shape[:2] != (metadata.native_height, metadata.native_width):
                    frame = cv2.resize(frame, (metadata.native_width, metadata.native_height),
                                       interpolation=cv2.INTER_AREA)
                yield Frame(index=index, position=index / count, timestamp=timestamp, pixels=frame)
        finally:
            cap.release()
