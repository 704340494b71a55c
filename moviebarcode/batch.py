"""
Batch processing: enumerate input videos, generate a barcode for each one
and save the results, reporting per-file problems without stopping the
rest of the batch.
"""

import logging
import multiprocessing as mp
import signal
import sys
from concurrent.futures import FIRST_COMPLETED, ProcessPoolExecutor, wait
from dataclasses import dataclass, replace
from pathlib import Path

import cv2
from tqdm import tqdm

from .analysis import change_graph_path, generate_change_graph, strip_changes, summarize_changes
from .compositor import compose
from .errors import CancelledByCaller, CompositionError, DecoderError, ValidationError
from .ffmpeg_source import FfmpegFrameSource
from .opencv_source import OpenCVFrameSource
from .plan import DEFAULT_BAR_WIDTH, DEFAULT_WIDTH, validate
from .smoother import smooth

logger = logging.getLogger(__name__)

BACKENDS = ("ffmpeg", "opencv")
POLL_INTERVAL = 0.2


@dataclass(frozen=True)
class BatchOptions:
    """Per-run settings shared by every file of a batch."""
    raw_output: str = None
    overwrite: bool = False
    raw_width: str = DEFAULT_WIDTH
    raw_height: str = None
    raw_bar_width: str = DEFAULT_BAR_WIDTH
    smooth: bool = False
    strip_mode: str = "resize"
    backend: str = "ffmpeg"
    ffmpeg: str = None
    ffprobe: str = None
    debug: bool = False
    show_progress: bool = True


@dataclass
class FileResult:
    input_path: Path
    status: str
    message: str = ""
    output_path: Path = None
    smoothed_status: str = None

    @property
    def ok(self):
        return self.status in ("saved", "skipped", "cancelled")


def make_frame_source(options):
    if options.backend == "opencv":
        return OpenCVFrameSource()
    if options.backend == "ffmpeg":
        return FfmpegFrameSource(ffmpeg=options.ffmpeg, ffprobe=options.ffprobe)
    raise ValueError(f"Unknown decoding backend: {options.backend}")


def enumerate_inputs(raw_input, recursive=False):
    """
    Expand the input argument into a sorted list of files.

    Args:
        raw_input: A file, a directory, or a wildcard pattern such as videos/*.mp4
        recursive: Also descend into subdirectories

    Returns:
        List of file paths (empty if nothing matches)
    """
    raw_input = str(raw_input)
    pattern = "*"
    base = raw_input
    if "*" in raw_input or "?" in raw_input:
        base = str(Path(raw_input).parent)
        pattern = Path(raw_input).name

    base_path = Path(base)
    if base_path.is_dir():
        matches = base_path.rglob(pattern) if recursive else base_path.glob(pattern)
        return sorted(p for p in matches if p.is_file())
    if base_path.is_file():
        return [base_path]
    return []


def save_image(path, image):
    try:
        written = cv2.imwrite(str(path), image)
    except cv2.error as e:
        raise OSError(f"cv2.imwrite could not write {path}: {e}") from e
    if not written:
        raise OSError(f"cv2.imwrite could not write {path}")


def _should_skip(path, overwrite):
    if path.exists() and not overwrite:
        print(f"WARNING: skipped file {path} because it already exists.")
        return True
    return False


def _save_smoothed(plan, canvas, overwrite):
    try:
        smoothed = smooth(canvas)
    except Exception as e:
        logger.exception("Smoothing failed for %s", plan.input_path)
        print(f"An error occurred while creating the smoothed version of the barcode. Error: {e}",
              file=sys.stderr)
        return "failed"

    if _should_skip(plan.smoothed_output_path, overwrite):
        return "skipped"
    try:
        save_image(plan.smoothed_output_path, smoothed)
    except OSError as e:
        print(f"Unable to save the smoothed image: {e}", file=sys.stderr)
        return "failed"
    print(f"File {plan.smoothed_output_path} saved successfully!")
    return "saved"


def _report_changes(plan, canvas):
    changes = strip_changes(canvas, plan.bar_width)
    generate_change_graph(changes, change_graph_path(plan.output_path), barcode=canvas)
    stats = summarize_changes(changes)
    if not stats:
        return
    print(f"\nChange Analysis Statistics:")
    print(f"Total strips analyzed: {stats['count'] + 1}")
    print(f"Mean change: {stats['mean']:.4f}")
    print(f"Max change: {stats['max']:.4f}")
    print(f"Min change: {stats['min']:.4f}")
    print(f"Std deviation: {stats['std']:.4f}")
    for p, value in stats["percentiles"].items():
        print(f"  {p}th percentile: {value:.4f}")


def process_file(input_path, options, frame_source=None, cancellation=None):
    """
    Generate, and save, the barcode for a single video.

    The output is checked for existence once before generation and once
    just before saving. Both checks are plain existence tests, so a file
    created in between by someone else can still be overwritten.

    Args:
        input_path: Video file
        options: BatchOptions
        frame_source: FrameSource to use (default: built from options.backend)
        cancellation: Optional token with is_set()

    Returns:
        FileResult
    """
    input_path = Path(input_path)
    if cancellation is not None and cancellation.is_set():
        return FileResult(input_path, "cancelled", "cancelled by caller")
    source = frame_source or make_frame_source(options)
    print(f"Processing file '{input_path}':")

    try:
        plan = validate(
            raw_input_path=str(input_path),
            raw_output_path=options.raw_output,
            raw_bar_width=options.raw_bar_width,
            raw_image_width=options.raw_width,
            raw_image_height=options.raw_height,
            use_input_height=options.raw_height is None,
            generate_smoothed=options.smooth,
            overwrite_policy=options.overwrite,
            frame_source=source,
            strip_mode=options.strip_mode,
        )
    except ValidationError as e:
        print(f"Invalid parameters: {e}", file=sys.stderr)
        return FileResult(input_path, "invalid", str(e))
    except DecoderError as e:
        print(f"Unable to read the input: {e}", file=sys.stderr)
        return FileResult(input_path, "failed", str(e))

    if _should_skip(plan.output_path, options.overwrite):
        return FileResult(input_path, "skipped", "output exists", plan.output_path)

    logger.info("Sampling %d frames from %s (%dx%d output, bar width %d)",
                plan.frame_count, plan.input_path, plan.output_width, plan.output_height, plan.bar_width)

    with tqdm(total=plan.frame_count, desc=input_path.name, unit="frame",
              disable=not options.show_progress, leave=False) as bar:
        try:
            frames = source.sample(plan.input_path, plan.frame_count, cancellation)
            canvas = compose(plan, frames, progress=lambda index, total: bar.update(1),
                             cancellation=cancellation)
        except CancelledByCaller:
            print(f"Cancelled while processing {input_path}.")
            return FileResult(input_path, "cancelled", "cancelled by caller", plan.output_path)
        except (DecoderError, CompositionError) as e:
            print(f"Unable to generate the barcode: {e}", file=sys.stderr)
            return FileResult(input_path, "failed", str(e), plan.output_path)

    if _should_skip(plan.output_path, options.overwrite):
        result = FileResult(input_path, "skipped", "output appeared during generation", plan.output_path)
    else:
        try:
            save_image(plan.output_path, canvas)
        except OSError as e:
            print(f"Unable to save the image: {e}", file=sys.stderr)
            result = FileResult(input_path, "failed", str(e), plan.output_path)
        else:
            print(f"File {plan.output_path} saved successfully!")
            result = FileResult(input_path, "saved", "", plan.output_path)

    if plan.generate_smoothed:
        result.smoothed_status = _save_smoothed(plan, canvas, options.overwrite)

    if options.debug:
        try:
            _report_changes(plan, canvas)
        except Exception as e:
            logger.exception("Change analysis failed for %s", plan.input_path)
            print(f"Unable to create the change graph: {e}", file=sys.stderr)

    return result


def run_batch(inputs, options, workers=None, frame_source=None, cancellation=None):
    """
    Process every input file, sequentially or across worker processes.

    Each worker owns its own decoder and canvas. A custom frame source only
    applies to sequential runs.

    Returns:
        List of FileResult in input order
    """
    inputs = list(inputs)
    if workers is None or workers <= 1 or len(inputs) < 2:
        return [process_file(path, options, frame_source, cancellation) for path in inputs]
    return _run_parallel(inputs, options, workers, cancellation)


_worker_cancellation = None


def _init_worker(cancellation):
    """Pool initializer: Ctrl+C is handled by the parent, which relays it through `cancellation`."""
    global _worker_cancellation
    signal.signal(signal.SIGINT, signal.SIG_IGN)
    _worker_cancellation = cancellation


def _process_in_worker(input_path, options):
    try:
        return process_file(input_path, options, cancellation=_worker_cancellation)
    except Exception as e:
        logger.exception("Unexpected error while processing %s", input_path)
        return FileResult(Path(input_path), "failed", f"{type(e).__name__}: {e}")


def _collect(future, input_path):
    if future.cancelled():
        return FileResult(Path(input_path), "cancelled", "cancelled by caller")
    try:
        return future.result()
    except Exception as e:
        return FileResult(Path(input_path), "failed", f"{type(e).__name__}: {e}")


def _run_parallel(inputs, options, workers, cancellation):
    workers = min(workers, mp.cpu_count(), len(inputs))
    print(f"Using parallel processing with {workers} workers")
    worker_options = replace(options, show_progress=False)
    worker_cancellation = mp.Event()
    if cancellation is not None and cancellation.is_set():
        worker_cancellation.set()
    results = [None] * len(inputs)

    with ProcessPoolExecutor(max_workers=workers, initializer=_init_worker,
                             initargs=(worker_cancellation,)) as executor, \
            tqdm(total=len(inputs), desc="Processing videos", unit="file",
                 disable=not options.show_progress) as bar:
        futures = {executor.submit(_process_in_worker, path, worker_options): index
                   for index, path in enumerate(inputs)}
        pending = set(futures)
        while pending:
            if cancellation is not None and cancellation.is_set() and not worker_cancellation.is_set():
                print("Cancelling remaining files...")
                worker_cancellation.set()
                for future in pending:
                    future.cancel()
            done, pending = wait(pending, timeout=POLL_INTERVAL, return_when=FIRST_COMPLETED)
            for future in done:
                index = futures[future]
                results[index] = _collect(future, inputs[index])
                bar.update(1)

    return results
