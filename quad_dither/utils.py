# quad_dither/utils.py
from __future__ import annotations

"""
Shared utilities for quad_dither.

Includes row partitioning for threaded stages, small array helpers,
progress / time formatting, a colour usage report, and tidy logging.
"""

import os
import sys
from typing import Any, Iterable, List, Optional, TextIO, Tuple

import numpy as np

from .core_types import HexStr, U8Image, U8Mask, U8Rows, rgb_to_hex


#  Time / size formatting


def format_seconds_compact(seconds: float) -> str:
    """Human-friendly seconds: '<ms>ms', '<s>s', or 'Mm Ss'."""
    if seconds < 1.0:
        return f"{seconds * 1000.0:.1f}ms"
    if seconds < 60.0:
        return f"{seconds:.3f}s"
    minutes = int(seconds // 60)
    return f"{minutes}m {seconds - 60 * minutes:.1f}s"


def format_total_duration_compact(seconds: float) -> str:
    """Compact total duration: 'Mm Ss', 'Ss.s', or 'ms'."""
    if seconds >= 60.0:
        minutes = int(seconds // 60)
        rem = int(round(seconds - 60 * minutes))
        return f"{minutes}m {rem}s"
    if seconds >= 1.0:
        return f"{seconds:.1f}s"
    return f"{seconds * 1000.0:.1f}ms"


# Workers / partitioning


def default_workers() -> int:
    """Leave a few cores free for the system; returns a sensible worker count."""
    n = os.cpu_count() or 4
    reserve = 1 if n <= 6 else 2 if n <= 12 else 3 if n <= 18 else 4
    return max(1, n - reserve)


def split_rows_into_parts(height: int, parts: int) -> List[Tuple[int, int]]:
    """Partition range [0, height) into ~parts contiguous [start, end) row spans."""
    parts = max(1, int(parts))
    step = max(1, (height + parts - 1) // parts)
    return [(start, min(start + step, height)) for start in range(0, height, step)]


def split_rows_with_halo(
    height: int, parts: int, halo: int
) -> List[Tuple[int, int, int, int]]:
    """
    Split rows into chunks with a halo so windowed filters stay exact across seams.
    Returns (start, end, start_pad, end_pad) per chunk.
    """
    out: List[Tuple[int, int, int, int]] = []
    for start, end in split_rows_into_parts(height, parts):
        out.append((start, end, max(0, start - halo), min(height, end + halo)))
    return out


# Small array helpers


def unique_rows_first_seen(rows: np.ndarray) -> np.ndarray:
    """Unique rows of a 2-D array, kept in order of first appearance."""
    if rows.shape[0] == 0:
        return rows
    _uniq, first_idx = np.unique(rows, axis=0, return_index=True)
    return rows[np.sort(first_idx)]


def colour_usage_report(
    mapped_rgb: U8Image, alpha_mask: U8Mask, palette_rgb: U8Rows
) -> List[Tuple[HexStr, int, int]]:
    """
    Compute a colour usage report for visible pixels.

    Returns a list of (hex, palette_index, count) sorted by count descending.
    Colours missing from the palette are reported with index -1.
    """
    visible_mask = alpha_mask > 0
    if not np.any(visible_mask):
        return []
    index_of = {tuple(int(c) for c in row): i for i, row in enumerate(palette_rgb)}
    flat = mapped_rgb[visible_mask].reshape(-1, 3)
    uniques, counts = np.unique(flat, axis=0, return_counts=True)
    report: List[Tuple[HexStr, int, int]] = []
    for rgb_row, count in sorted(zip(uniques, counts), key=lambda x: -int(x[1])):
        key = (int(rgb_row[0]), int(rgb_row[1]), int(rgb_row[2]))
        hex_str = rgb_to_hex(key)
        report.append((hex_str, index_of.get(key, -1), int(count)))
    return report


#  CLI / stdout


def enable_line_buffered_stdout() -> None:
    """
    Enable line-buffered stdout when supported.
    Helps live progress printing in terminals that expose .reconfigure().
    """
    reconfig = getattr(sys.stdout, "reconfigure", None)
    if callable(reconfig):
        try:
            reconfig(line_buffering=True, write_through=True)
        except (OSError, ValueError):
            pass


# Pretty logging


def format_bool_on_off(value: Any) -> str:
    """Pretty boolean: 'on'/'off' for bools; str(value) otherwise."""
    if isinstance(value, bool):
        return "on" if value else "off"
    return str(value)


def format_number_compact(value: Any) -> str:
    """Pretty number: 1,234 style for ints; compact for floats; passthrough otherwise."""
    if isinstance(value, int):
        return f"{value:,}"
    if isinstance(value, float):
        text = f"{value:.3f}".rstrip("0").rstrip(".")
        return text
    return str(value)


def key_value_pairs_to_string(
    pairs: Iterable[Tuple[str, Any]], sep: str = "  ", eq: str = ": "
) -> str:
    """
    Format (name, value) pairs as 'Name: value' blocks separated by sep.
    Uses format_bool_on_off / format_number_compact for readability.
    """
    out: List[str] = []
    for name, value in pairs:
        display = (
            format_bool_on_off(value)
            if isinstance(value, bool)
            else format_number_compact(value)
        )
        out.append(f"{name}{eq}{display}")
    return sep.join(out)


def print_config_line(
    section: str, pairs: Iterable[Tuple[str, Any]], debug: bool
) -> None:
    """
    Emit a single human-readable config line, e.g.:
      [dither] Factor: 4  Multi-pass: on  Bilateral: on  LUT: 128
    Routes to debug_log() when debug=True, else to log().
    """
    line = f"[{section}] {key_value_pairs_to_string(pairs)}"
    (debug_log if debug else log)(line)


def print_banner(title: str, file: Optional[TextIO] = None) -> None:
    """Section banner."""
    print(f"\n=== {title} ===", file=file, flush=True)


def log(message: str, file: Optional[TextIO] = None) -> None:
    """Plain log line (stdout unless a stream is given)."""
    print(message, file=file, flush=True)


def debug_log(message: str, file: Optional[TextIO] = None) -> None:
    """Debug log line."""
    print(f"[debug] {message}", file=file, flush=True)


def warn(message: str, file: Optional[TextIO] = None) -> None:
    """Warning log line."""
    print(f"[warn] {message}", file=file, flush=True)


def error(message: str) -> None:
    """Error log line to stderr."""
    print(f"[error] {message}", file=sys.stderr, flush=True)


__all__ = [
    # formatting
    "format_seconds_compact",
    "format_total_duration_compact",
    "format_bool_on_off",
    "format_number_compact",
    # workers / partitioning
    "default_workers",
    "split_rows_into_parts",
    "split_rows_with_halo",
    # array helpers
    "unique_rows_first_seen",
    "colour_usage_report",
    # logging / stdout
    "enable_line_buffered_stdout",
    "key_value_pairs_to_string",
    "print_config_line",
    "print_banner",
    "log",
    "debug_log",
    "warn",
    "error",
]
