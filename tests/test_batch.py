import dataclasses
import threading

import cv2
import pytest

from conftest import FakeFrameSource
from moviebarcode import batch
from moviebarcode.batch import BatchOptions, enumerate_inputs, process_file, run_batch
from moviebarcode.ffmpeg_source import FfmpegFrameSource
from moviebarcode.opencv_source import OpenCVFrameSource


@pytest.fixture
def options(tmp_path):
    out_dir = tmp_path / "out"
    out_dir.mkdir()
    return BatchOptions(raw_output=str(out_dir), raw_width="20", raw_bar_width="2", show_progress=False)


def test_saves_barcode_with_input_height(video_file, options, fake_source, tmp_path):
    result = process_file(video_file, options, frame_source=fake_source)

    assert result.status == "saved"
    assert result.output_path == tmp_path / "out" / "movie.png"
    image = cv2.imread(str(result.output_path))
    assert image.shape == (18, 20, 3)
    assert fake_source.sampled == [(video_file, 10)]


def test_explicit_height(video_file, options, fake_source):
    options = dataclasses.replace(options, raw_height="6")

    result = process_file(video_file, options, frame_source=fake_source)

    assert cv2.imread(str(result.output_path)).shape == (6, 20, 3)


def test_smoothed_output(video_file, options, fake_source, tmp_path):
    options = dataclasses.replace(options, smooth=True)

    result = process_file(video_file, options, frame_source=fake_source)

    assert result.smoothed_status == "saved"
    smoothed = cv2.imread(str(tmp_path / "out" / "movie_smoothed.png"))
    assert smoothed.shape == (18, 20, 3)


def test_smoothing_failure_keeps_primary_output(video_file, options, fake_source, monkeypatch):
    def broken(canvas):
        raise MemoryError("no room")

    monkeypatch.setattr(batch, "smooth", broken)
    options = dataclasses.replace(options, smooth=True)

    result = process_file(video_file, options, frame_source=fake_source)

    assert result.status == "saved"
    assert result.smoothed_status == "failed"
    assert result.output_path.exists()
    assert not result.output_path.with_name("movie_smoothed.png").exists()


def test_existing_output_skipped_before_decoding(video_file, options, fake_source, tmp_path):
    existing = tmp_path / "out" / "movie.png"
    existing.write_bytes(b"old")

    result = process_file(video_file, options, frame_source=fake_source)

    assert result.status == "skipped"
    assert fake_source.sampled == []
    assert existing.read_bytes() == b"old"


def test_existing_output_overwritten(video_file, options, fake_source, tmp_path):
    existing = tmp_path / "out" / "movie.png"
    existing.write_bytes(b"old")

    result = process_file(video_file, dataclasses.replace(options, overwrite=True), frame_source=fake_source)

    assert result.status == "saved"
    assert cv2.imread(str(existing)) is not None


def test_output_created_during_generation_is_kept(video_file, options, tmp_path):
    target = tmp_path / "out" / "movie.png"

    class RacingSource(FakeFrameSource):
        def sample(self, path, count, cancellation=None):
            target.write_bytes(b"someone else")
            return super().sample(path, count, cancellation)

    result = process_file(video_file, options, frame_source=RacingSource())

    assert result.status == "skipped"
    assert target.read_bytes() == b"someone else"


def test_invalid_parameters_reported(video_file, options, fake_source):
    result = process_file(video_file, dataclasses.replace(options, raw_bar_width="0"), frame_source=fake_source)

    assert result.status == "invalid"
    assert not result.ok
    assert fake_source.probed == []


def test_decoder_failure_produces_no_file(video_file, options, tmp_path):
    result = process_file(video_file, options, frame_source=FakeFrameSource(fail_after=4))

    assert result.status == "failed"
    assert "exit code 1" in result.message
    assert not (tmp_path / "out" / "movie.png").exists()


def test_cancelled_produces_no_file(video_file, options, fake_source, tmp_path):
    cancellation = threading.Event()
    cancellation.set()

    result = process_file(video_file, options, frame_source=fake_source, cancellation=cancellation)

    assert result.status == "cancelled"
    assert result.ok
    assert not (tmp_path / "out" / "movie.png").exists()


def test_save_failure_reported(video_file, options, fake_source, monkeypatch):
    monkeypatch.setattr(batch.cv2, "imwrite", lambda path, image: False)

    result = process_file(video_file, options, frame_source=fake_source)

    assert result.status == "failed"


def test_debug_writes_change_graph(video_file, options, fake_source, tmp_path):
    result = process_file(video_file, dataclasses.replace(options, debug=True), frame_source=fake_source)

    assert result.status == "saved"
    assert (tmp_path / "out" / "movie_changes.png").exists()


def test_run_batch_continues_after_failure(tmp_path, options):
    good = tmp_path / "a.mkv"
    missing = tmp_path / "b.mkv"
    good.write_bytes(b"x")

    results = run_batch([missing, good], options, frame_source=FakeFrameSource())

    assert [r.status for r in results] == ["invalid", "saved"]


def test_run_batch_stops_when_cancelled(tmp_path, options):
    paths = [tmp_path / "a.mkv", tmp_path / "b.mkv"]
    for path in paths:
        path.write_bytes(b"x")
    cancellation = threading.Event()
    cancellation.set()

    results = run_batch(paths, options, frame_source=FakeFrameSource(), cancellation=cancellation)

    assert [r.status for r in results] == ["cancelled", "cancelled"]


def test_enumerate_inputs(tmp_path):
    (tmp_path / "sub").mkdir()
    for name in ("b.mp4", "a.mkv", "sub/c.mp4"):
        (tmp_path / name).write_bytes(b"x")

    assert enumerate_inputs(tmp_path) == [tmp_path / "a.mkv", tmp_path / "b.mp4"]
    assert enumerate_inputs(tmp_path, recursive=True) == [
        tmp_path / "a.mkv", tmp_path / "b.mp4", tmp_path / "sub" / "c.mp4"]
    assert enumerate_inputs(tmp_path / "*.mp4") == [tmp_path / "b.mp4"]
    assert enumerate_inputs(tmp_path / "*.mp4", recursive=True) == [
        tmp_path / "b.mp4", tmp_path / "sub" / "c.mp4"]
    assert enumerate_inputs(tmp_path / "a.mkv") == [tmp_path / "a.mkv"]
    assert enumerate_inputs(tmp_path / "nope.mkv") == []


def test_make_frame_source():
    assert isinstance(batch.make_frame_source(BatchOptions(backend="opencv")), OpenCVFrameSource)
    source = batch.make_frame_source(BatchOptions(ffmpeg="/bin/ff"))
    assert isinstance(source, FfmpegFrameSource)
    assert source.ffmpeg == "/bin/ff"
    with pytest.raises(ValueError):
        batch.make_frame_source(BatchOptions(backend="gstreamer"))


def test_imwrite_error_reported_as_failure(video_file, options, fake_source, monkeypatch):
    def no_writer(path, image):
        raise cv2.error("could not find a writer for the specified extension")

    monkeypatch.setattr(batch.cv2, "imwrite", no_writer)

    result = process_file(video_file, options, frame_source=fake_source)

    assert result.status == "failed"
    assert "could not find a writer" in result.message


def test_output_without_extension_does_not_stop_batch(tmp_path, options):
    paths = [tmp_path / "a.mkv", tmp_path / "b.mkv"]
    for path in paths:
        path.write_bytes(b"x")
    source = FakeFrameSource()

    results = run_batch(paths, dataclasses.replace(options, raw_output=str(tmp_path / "barcode")),
                        frame_source=source)

    assert [r.status for r in results] == ["invalid", "invalid"]
    assert source.sampled == []


def test_change_graph_failure_keeps_result(video_file, options, fake_source, monkeypatch):
    def disk_full(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(batch, "generate_change_graph", disk_full)

    result = process_file(video_file, dataclasses.replace(options, debug=True), frame_source=fake_source)

    assert result.status == "saved"
    assert result.output_path.exists()


def test_worker_turns_unexpected_errors_into_failures(video_file, options, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(batch, "process_file", explode)

    result = batch._process_in_worker(video_file, options)

    assert result.status == "failed"
    assert "RuntimeError: boom" in result.message


def test_parallel_batch_returns_every_result(tmp_path, options):
    paths = [tmp_path / "a.mkv", tmp_path / "b.mkv", tmp_path / "c.mkv"]
    for path in paths[:2]:
        path.write_bytes(b"x")
    parallel_options = dataclasses.replace(options, raw_height="5", ffmpeg="/nonexistent/ffmpeg",
                                           ffprobe="/nonexistent/ffprobe")

    results = run_batch(paths, parallel_options, workers=2)

    assert [r.input_path for r in results] == paths
    assert [r.status for r in results] == ["failed", "failed", "invalid"]
    assert "Could not launch" in results[0].message


def test_parallel_batch_cancelled(tmp_path, options):
    paths = [tmp_path / "a.mkv", tmp_path / "b.mkv"]
    for path in paths:
        path.write_bytes(b"x")
    cancellation = threading.Event()
    cancellation.set()

    results = run_batch(paths, dataclasses.replace(options, raw_height="5"), workers=2,
                        cancellation=cancellation)

    assert [r.status for r in results] == ["cancelled", "cancelled"]
    assert not (tmp_path / "out" / "a.png").exists()
