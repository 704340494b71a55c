import numpy as np
import pytest

from moviebarcode.errors import DecoderFailure
from moviebarcode.frames import Frame, FrameSource, VideoMetadata, check_cancelled, sample_timestamps


def frame_color(index):
    return (index * 7 % 256, index * 13 % 256, index * 29 % 256)


def solid_frame(index, count, width=32, height=18, duration=10.0):
    pixels = np.empty((height, width, 3), dtype=np.uint8)
    pixels[:] = frame_color(index)
    return Frame(index=index, position=index / count, timestamp=index * duration / count, pixels=pixels)


class FakeFrameSource(FrameSource):
    """In-memory source producing one solid-colored frame per sample."""

    name = "fake"

    def __init__(self, width=32, height=18, duration=10.0, fail_after=None):
        self.metadata = VideoMetadata(native_width=width, native_height=height, duration=duration)
        self.fail_after = fail_after
        self.probed = []
        self.sampled = []
        self.closed = False

    def probe(self, path):
        self.probed.append(path)
        return self.metadata

    def sample(self, path, count, cancellation=None):
        self.sampled.append((path, count))
        return self._iter_frames(count, cancellation)

    def _iter_frames(self, count, cancellation):
        try:
            for index, _ in enumerate(sample_timestamps(self.metadata.duration, count)):
                check_cancelled(cancellation)
                if self.fail_after is not None and index >= self.fail_after:
                    raise DecoderFailure("Decoder exited with an error", exit_code=1, frames_received=index)
                yield solid_frame(index, count, self.metadata.native_width,
                                  self.metadata.native_height, self.metadata.duration)
        finally:
            self.closed = True


@pytest.fixture
def video_file(tmp_path):
    path = tmp_path / "movie.mkv"
    path.write_bytes(b"not really a video")
    return path


@pytest.fixture
def fake_source():
    return FakeFrameSource()
