"""
Debug analysis of a finished barcode: how much the color changes from one
strip to the next, plotted over the length of the video.
"""

import logging

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np

logger = logging.getLogger(__name__)

PERCENTILES = (50, 75, 90, 95, 99)


def calculate_strip_difference(strip1, strip2):
    """
    Calculate the difference between two strips.

    Args:
        strip1, strip2: numpy arrays of the same shape

    Returns:
        float: normalized difference value between 0 and 1
    """
    diff = np.abs(strip1.astype(np.float32) - strip2.astype(np.float32))
    return float(np.mean(diff)) / 255.0


def strip_changes(canvas, bar_width):
    """
    Change value between every pair of consecutive strips in a barcode.

    Args:
        canvas: Composite barcode array
        bar_width: Width of each strip in pixels

    Returns:
        List of len(strips) - 1 change values
    """
    strip_count = canvas.shape[1] // bar_width
    strips = [canvas[:, i * bar_width:(i + 1) * bar_width] for i in range(strip_count)]
    return [calculate_strip_difference(strips[i], strips[i - 1]) for i in range(1, strip_count)]


def summarize_changes(changes):
    """Mean/max/min/std of the change values plus a few percentiles."""
    if not changes:
        return {}
    values = np.asarray(changes, dtype=np.float64)
    return {
        "count": int(values.size),
        "mean": float(np.mean(values)),
        "max": float(np.max(values)),
        "min": float(np.min(values)),
        "std": float(np.std(values)),
        "percentiles": {p: float(np.percentile(values, p)) for p in PERCENTILES},
    }


def likely_cuts(changes, threshold):
    """Indices of strip boundaries whose change reaches `threshold`."""
    return [i for i, change in enumerate(changes) if change >= threshold]


def generate_change_graph(changes, output_path, barcode=None, cut_percentile=95):
    """
    Plot the strip-to-strip change against the position in the video.

    Boundaries at or above the `cut_percentile` percentile are marked as
    likely scene cuts. When the barcode itself is given it is drawn above
    the curve on the same horizontal scale.

    Args:
        changes: List of change values
        output_path: Path for output graph image
        barcode: Optional BGR barcode canvas
        cut_percentile: Percentile used as the cut threshold
    """
    stats = summarize_changes(changes)
    positions = np.linspace(0, 100, len(changes) + 2)[1:-1]

    if barcode is not None:
        fig, (top, ax) = plt.subplots(2, 1, figsize=(12, 7), sharex=True,
                                      gridspec_kw={'height_ratios': [1, 2]})
        top.imshow(barcode[:, :, ::-1], extent=(0, 100, 0, 1), aspect='auto')
        top.set_yticks([])
        top.set_title('Barcode')
    else:
        fig, ax = plt.subplots(figsize=(12, 5))

    ax.plot(positions, changes, linewidth=1, color='tab:blue')
    ax.set_xlim(0, 100)
    ax.set_xlabel('Position in video (%)')
    ax.set_ylabel('Change between strips (0-1)')
    ax.grid(True, alpha=0.3)

    if stats:
        threshold = float(np.percentile(changes, cut_percentile))
        cuts = likely_cuts(changes, threshold)
        ax.axhline(y=threshold, color='tab:red', linestyle=':', linewidth=1,
                   label=f'{cut_percentile}th percentile: {threshold:.3f}')
        ax.scatter(positions[cuts], [changes[i] for i in cuts], color='tab:red', s=12,
                   label=f'Likely cuts: {len(cuts)}')
        ax.set_title(f"{stats['count'] + 1} strips, mean change {stats['mean']:.3f}, "
                     f"std {stats['std']:.3f}")
        ax.legend(loc='upper right')

    fig.tight_layout()
    fig.savefig(output_path, dpi=150)
    plt.close(fig)
    logger.info("Change graph saved to: %s", output_path)


def change_graph_path(output_path):
    return output_path.parent / f"{output_path.stem}_changes.png"
