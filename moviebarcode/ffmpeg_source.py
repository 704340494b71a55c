"""
Frame source backed by ffmpeg/ffprobe subprocesses.

One ffmpeg process is spawned per input file. It is asked for exactly
`count` frames at a fixed rate of count / duration, scaled to the probed
native size and written to stdout as raw bgr24 pixels, which are picked
up one frame at a time as they arrive.
"""

import json
import logging
import os
import subprocess
import tempfile
from fractions import Fraction

import numpy as np

from .errors import DecoderFailure, DecoderUnavailable
from .frames import Frame, FrameSource, VideoMetadata, check_cancelled, sample_timestamps

logger = logging.getLogger(__name__)

FFMPEG_ENV = "MOVIEBARCODE_FFMPEG"
FFPROBE_ENV = "MOVIEBARCODE_FFPROBE"
SHUTDOWN_TIMEOUT = 5.0


def _read_exactly(stream, size):
    """Read `size` bytes from a pipe, returning fewer only at end of stream."""
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def _read_stderr(stderr_file):
    stderr_file.seek(0)
    return stderr_file.read().decode("utf-8", errors="replace")


def _shutdown(process):
    """Stop the decoder if it is still running and release its pipes."""
    if process.poll() is None:
        process.terminate()
        try:
            process.wait(timeout=SHUTDOWN_TIMEOUT)
        except subprocess.TimeoutExpired:
            logger.warning("Decoder did not exit after terminate, killing it")
            process.kill()
            process.wait()
    if process.stdout is not None:
        process.stdout.close()


class FfmpegFrameSource(FrameSource):
    name = "ffmpeg"

    def __init__(self, ffmpeg=None, ffprobe=None):
        self.ffmpeg = ffmpeg or os.environ.get(FFMPEG_ENV) or "ffmpeg"
        self.ffprobe = ffprobe or os.environ.get(FFPROBE_ENV) or "ffprobe"

    def probe(self, path):
        """
        Probe video stream dimensions and container duration using ffprobe.

        Args:
            path: Media file path

        Returns:
            VideoMetadata
        """
        cmd = [
            self.ffprobe, "-v", "error",
            "-select_streams", "v:0",
            "-show_entries", "stream=width,height,duration:format=duration",
            "-of", "json",
            str(path),
        ]
        logger.debug("Probing %s: %s", path, " ".join(cmd))
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except OSError as e:
            raise DecoderUnavailable(f"Could not launch {self.ffprobe}: {e}") from e
        if proc.returncode != 0:
            raise DecoderFailure("ffprobe failed", exit_code=proc.returncode, stderr=proc.stderr)

        try:
            data = json.loads(proc.stdout)
        except json.JSONDecodeError as e:
            raise DecoderFailure(f"ffprobe returned malformed output: {e}") from e

        streams = data.get("streams") or []
        if not streams:
            raise DecoderFailure(f"No video stream found in {path}")
        stream = streams[0]
        try:
            width = int(stream.get("width", 0))
            height = int(stream.get("height", 0))
            duration = float(data.get("format", {}).get("duration") or stream.get("duration") or 0)
        except (TypeError, ValueError) as e:
            raise DecoderFailure(f"ffprobe returned unusable metadata: {e}") from e
        if width <= 0 or height <= 0:
            raise DecoderFailure(f"Invalid video resolution {width}x{height} from ffprobe")
        if duration <= 0:
            raise DecoderFailure("ffprobe did not return a positive duration")

        return VideoMetadata(native_width=width, native_height=height, duration=duration)

    def build_command(self, path, count, metadata):
        """Build the ffmpeg invocation that emits `count` evenly spaced raw frames."""
        rate = (Fraction(count) / Fraction(metadata.duration)).limit_denominator(1000000)
        filters = [
            f"fps={rate.numerator}/{rate.denominator}",
            f"scale={metadata.native_width}:{metadata.native_height}",
            # Clone the last frame if the stream ends a frame short of the rate grid
            "tpad=stop=-1:stop_mode=clone",
        ]
        return [
            self.ffmpeg, "-hide_banner", "-loglevel", "error", "-nostdin",
            "-i", str(path),
            "-an", "-sn",
            "-vf", ",".join(filters),
            "-frames:v", str(count),
            "-f", "rawvideo",
            "-pix_fmt", "bgr24",
            "-",
        ]

    def sample(self, path, count, cancellation=None):
        metadata = self.probe(path)
        return self._iter_frames(path, count, metadata, cancellation)

    def _launch(self, cmd, stderr_file):
        logger.debug("Launching decoder: %s", " ".join(cmd))
        try:
            return subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=stderr_file,
                # Terminal Ctrl+C must not reach the decoder, cancellation stops it
                start_new_session=True,
            )
        except OSError as e:
            raise DecoderUnavailable(f"Could not launch {self.ffmpeg}: {e}") from e

    def _iter_frames(self, path, count, metadata, cancellation):
        width, height = metadata.native_width, metadata.native_height
        frame_size = width * height * 3
        timestamps = sample_timestamps(metadata.duration, count)

        check_cancelled(cancellation)
        cmd = self.build_command(path, count, metadata)

        with tempfile.TemporaryFile() as stderr_file:
            process = self._launch(cmd, stderr_file)
            received = 0
            try:
                for index in range(count):
                    check_cancelled(cancellation)
                    data = _read_exactly(process.stdout, frame_size)
                    if len(data) < frame_size:
                        exit_code = process.wait()
                        check_cancelled(cancellation)
                        message = "Decoder output ended early" if exit_code == 0 else "Decoder exited with an error"
                        raise DecoderFailure(
                            message,
                            exit_code=exit_code,
                            frames_received=received,
                            stderr=_read_stderr(stderr_file),
                        )
                    pixels = np.frombuffer(data, dtype=np.uint8).reshape((height, width, 3))
                    received += 1
                    yield Frame(index=index, position=index / count, timestamp=timestamps[index], pixels=pixels)

                process.stdout.close()
                exit_code = process.wait()
                if exit_code != 0:
                    raise DecoderFailure(
                        "Decoder exited with an error",
                        exit_code=exit_code,
                        frames_received=received,
                        stderr=_read_stderr(stderr_file),
                    )
                logger.debug("Decoder delivered %d frames from %s", received, path)
            finally:
                _shutdown(process)
