#!/usr/bin/env python3
"""
dither_image.py
Reduce RGBA images to a small palette drawn as 2x2 quad tiles.

Usage:
  python dither_image.py SRC [--outdir DIR] [--palette SPEC | --generate N] [--refine N]
                             [--factor F] [--center-weight W] [--bias B] [--neighborhood R]
                             [--multi-pass] [--dark-threshold T] [--blend-range R]
                             [--no-bilateral] [--bilateral-radius R] [--spatial-sigma S]
                             [--color-sigma S] [--warmth S] [--grayscale S] [--lut-size R]
                             [--format png|webp] [--seed N] [--jobs N] [--workers N] [--debug]

Palette:
  --palette wplace          built-in palette (default)
  --palette "#f00,#000"     comma-separated hex list
  --palette colours.txt     one hex per line (';' starts a comment)
  --generate N              cluster N colours from each image instead

Output:
  Twice the downscaled size. Writes <stem>_quad.png (or .webp) next to SRC,
  or into --outdir. Alpha is 0 or 255.

Notes:
  Heavy steps (LUT build, k-means, bilateral filter) use --workers threads.
  Folder mode processes --jobs files at once and prints their logs in order.
"""

from __future__ import annotations

import argparse
import io
import os
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional, TextIO

import numpy as np

from quad_dither.config import (
    BilateralFilterConfig,
    DitheringConfig,
    GeneratedPalette,
    PresetPalette,
)
from quad_dither.core_types import EmptyPaletteError
from quad_dither.dither import dither_image
from quad_dither.image_io import SAVE_FORMATS, load_image_rgba, save_image_rgba
from quad_dither.palette_data import palette_names, parse_palette_spec
from quad_dither.utils import (
    # formatting
    format_total_duration_compact,
    format_seconds_compact,
    # workers / reports
    default_workers,
    colour_usage_report,
    # pretty logging
    print_banner,
    log,
    debug_log,
    error,
    warn,
    print_config_line,
    key_value_pairs_to_string,
    enable_line_buffered_stdout,
)

OUTPUT_SUFFIX = "_quad"
IMAGE_EXTS = {".png", ".jpg", ".jpeg", ".webp"}


# CLI args


def parse_cli_args(argv: Optional[list] = None) -> argparse.Namespace:
    """
    Parse CLI arguments for quad dithering.

    Returns:
      argparse.Namespace with:
        src: Path to image or folder
        outdir: optional Path for outputs
        palette / generate / refine: palette source
        factor, center_weight, bias, neighborhood: main pass options
        multi_pass, dark_threshold, blend_range: dark pass options
        no_bilateral, bilateral_radius, spatial_sigma, color_sigma: pre-filter
        warmth, grayscale, lut_size: LUT scoring
        format: "png" | "webp"
        seed, jobs, workers, debug
    """
    defaults = DitheringConfig()
    bf_defaults = BilateralFilterConfig()
    gen_defaults = GeneratedPalette()

    parser = argparse.ArgumentParser(
        prog="dither_image",
        description="Quad-dither image(s) to a small palette with tidy, readable output.",
    )
    parser.add_argument("src", type=Path, help="Input image or folder")
    parser.add_argument(
        "--outdir", type=Path, default=None, help="Output directory (optional)"
    )

    pal = parser.add_mutually_exclusive_group()
    pal.add_argument(
        "--palette",
        default="wplace",
        help='"wplace", a comma-separated hex list, or a file with one hex per line',
    )
    pal.add_argument(
        "--generate",
        type=int,
        default=None,
        metavar="N",
        help="Generate an N-colour palette from each image",
    )
    parser.add_argument(
        "--refine",
        type=int,
        default=gen_defaults.refinement_iterations,
        metavar="N",
        help="Refinement iterations for generated palettes (0 = off)",
    )

    parser.add_argument(
        "--factor", type=int, default=defaults.downscale_factor, help="Downscale factor"
    )
    parser.add_argument(
        "--center-weight",
        type=float,
        default=defaults.center_weight,
        help="1.0 = centre pixel only, 0.0 = neighbourhood mean only",
    )
    parser.add_argument(
        "--bias",
        type=float,
        default=defaults.luminance_bias,
        help="Luminance bias, negative darkens (about -0.5..0.5)",
    )
    parser.add_argument(
        "--neighborhood",
        type=int,
        default=defaults.neighborhood_size,
        help="Neighbourhood radius on the downscaled image",
    )
    parser.add_argument(
        "--multi-pass", action="store_true", help="Blend a darker pass into shadows"
    )
    parser.add_argument(
        "--dark-threshold",
        type=float,
        default=defaults.darkness_threshold,
        help="Lab L at or below which the dark pass fully applies",
    )
    parser.add_argument(
        "--blend-range",
        type=float,
        default=defaults.blend_range,
        help="L units over which the dark pass fades out",
    )

    parser.add_argument(
        "--no-bilateral", action="store_true", help="Disable the bilateral pre-filter"
    )
    parser.add_argument(
        "--bilateral-radius", type=int, default=bf_defaults.radius, help="Filter radius"
    )
    parser.add_argument(
        "--spatial-sigma",
        type=float,
        default=bf_defaults.spatial_sigma,
        help="Filter spatial sigma",
    )
    parser.add_argument(
        "--color-sigma",
        type=float,
        default=bf_defaults.color_sigma,
        help="Filter colour sigma (Lab units)",
    )

    parser.add_argument(
        "--warmth",
        type=float,
        default=defaults.warmth_penalty,
        help="Warmth penalty strength for near-neutral targets",
    )
    parser.add_argument(
        "--grayscale",
        type=float,
        default=defaults.grayscale_penalty,
        help="Grayscale penalty strength for grey targets",
    )
    parser.add_argument(
        "--lut-size",
        type=int,
        default=defaults.lut_resolution,
        help="Cells per axis of the Lab lookup tables",
    )
    parser.add_argument(
        "--format", choices=sorted(SAVE_FORMATS), default="png", help="Output format"
    )
    parser.add_argument(
        "--seed", type=int, default=None, help="Seed for palette generation"
    )
    parser.add_argument(
        "--jobs", type=int, default=2, help="Files processed in parallel"
    )
    parser.add_argument(
        "--workers", type=int, default=default_workers(), help="Internal workers"
    )
    parser.add_argument("--debug", action="store_true", help="Verbose stage details")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> DitheringConfig:
    """DitheringConfig from parsed args. Raises ValueError on bad values."""
    if args.generate is not None:
        source = GeneratedPalette(
            size=args.generate, refinement_iterations=args.refine
        )
    else:
        source = PresetPalette(parse_palette_spec(args.palette))

    return DitheringConfig(
        palette=source,
        downscale_factor=args.factor,
        center_weight=args.center_weight,
        luminance_bias=args.bias,
        neighborhood_size=args.neighborhood,
        use_multi_pass=args.multi_pass,
        darkness_threshold=args.dark_threshold,
        blend_range=args.blend_range,
        bilateral_filter=BilateralFilterConfig(
            enabled=not args.no_bilateral,
            radius=args.bilateral_radius,
            spatial_sigma=args.spatial_sigma,
            color_sigma=args.color_sigma,
        ),
        warmth_penalty=args.warmth,
        grayscale_penalty=args.grayscale,
        lut_resolution=args.lut_size,
    ).validate()


def output_path_for(src_path: Path, outdir: Optional[Path], fmt: str) -> Path:
    name = f"{src_path.stem}{OUTPUT_SUFFIX}{SAVE_FORMATS[fmt]}"
    return (outdir / name) if outdir else src_path.with_name(name)


# Per-file processing


def _process_single_image(
    src_path: Path,
    out_path: Path,
    config: DitheringConfig,
    fmt: str,
    seed: Optional[int],
    workers: int,
    debug: bool,
    stream: Optional[TextIO] = None,
) -> bool:
    """
    Process a single image path end-to-end:
      load -> dither -> save -> report.
    Returns False when the file failed; nothing is written in that case.
    """
    t_start = time.perf_counter()
    print_banner(src_path.name, stream)

    try:
        rgb_in, alpha = load_image_rgba(src_path)
    except OSError as e:
        error(f"{src_path.name}: cannot read image ({e})")
        return False
    height0, width0 = rgb_in.shape[0], rgb_in.shape[1]
    if debug:
        debug_log(
            key_value_pairs_to_string(
                [
                    ("Loaded", f"{width0}x{height0}"),
                    ("Alpha=255", int(np.count_nonzero(alpha == 255))),
                    ("Alpha=0", int(np.count_nonzero(alpha == 0))),
                ]
            ),
            stream,
        )
    t_loaded = time.perf_counter()

    try:
        result = dither_image(
            rgb_in,
            alpha,
            config,
            workers=workers,
            seed=seed,
            debug=debug,
            log_file=stream,
        )
    except (EmptyPaletteError, ValueError) as e:
        error(f"{src_path.name}: {e}")
        return False
    t_dithered = time.perf_counter()

    out_path.parent.mkdir(parents=True, exist_ok=True)
    written = save_image_rgba(out_path, result.rgb, result.alpha, fmt=fmt)
    t_saved = time.perf_counter()

    height, width = result.alpha.shape
    log(
        f"Wrote {written.name} | size={width}x{height} | palette_size={len(result.palette)}",
        stream,
    )
    log("Colours used:", stream)
    names = palette_names(result.palette.colors())
    for hex_code, _index, count in colour_usage_report(
        result.rgb, result.alpha, result.palette.rgb
    ):
        log(f"  {hex_code}  {names.get(hex_code, hex_code)}: {count:,}", stream)
    log(f"Total pixels: {int((result.alpha > 0).sum()):,}", stream)

    if debug:
        debug_log(
            f"Total {format_total_duration_compact(t_saved - t_start)}  "
            f"(load={format_seconds_compact(t_loaded - t_start)}, "
            f"dither={format_seconds_compact(t_dithered - t_loaded)}, "
            f"save={format_seconds_compact(t_saved - t_dithered)})",
            stream,
        )
    else:
        log(f"Total time {format_total_duration_compact(t_saved - t_start)}", stream)
    return True


def _process_one_captured(
    path: Path,
    outdir: Optional[Path],
    config: DitheringConfig,
    fmt: str,
    seed: Optional[int],
    workers: int,
    debug: bool,
) -> tuple:
    """
    Process a single file, logging into a private buffer.

    Useful for concurrent execution where output should be printed in order.
    Returns (ok, captured_text).
    """
    buf = io.StringIO()
    ok = _process_single_image(
        path,
        output_path_for(path, outdir, fmt),
        config,
        fmt,
        seed,
        workers,
        debug,
        stream=buf,
    )
    return ok, buf.getvalue()


# Entry point


def main(argv: Optional[list] = None) -> int:
    """
    CLI entry point.

    Handles single file or folder. In folder mode supports --jobs parallelism
    while preserving readable output ordering. Returns the exit status.
    """
    enable_line_buffered_stdout()
    args = parse_cli_args(argv)

    cpu_cores = os.cpu_count() or 1
    print_config_line(
        "run",
        [("CPU cores", cpu_cores), ("Workers", args.workers), ("Jobs", args.jobs)],
        debug=False,
    )

    src = args.src
    if not src.exists():
        error(f"not found: {src}")
        return 2

    try:
        config = build_config(args)
    except (OSError, ValueError) as e:
        error(str(e))
        return 2

    print_config_line(
        "dither",
        [
            ("Factor", config.downscale_factor),
            (
                "Palette",
                f"generate {args.generate}"
                if args.generate is not None
                else f"{len(config.palette.palette)} colours",
            ),
            ("Multi-pass", config.use_multi_pass),
            ("Bilateral", config.bilateral_filter.enabled),
            ("LUT", config.lut_resolution),
        ],
        debug=args.debug,
    )

    if src.is_dir():
        all_entries = list(src.iterdir())
        files = [
            p
            for p in all_entries
            if p.is_file()
            and p.suffix.lower() in IMAGE_EXTS
            and not p.stem.endswith(OUTPUT_SUFFIX)
        ]
        files.sort(key=lambda p: p.name.lower())
        if not files:
            warn(f"no images found in {src}")
        if args.debug:
            debug_log(
                key_value_pairs_to_string(
                    [
                        ("Folder entries", len(all_entries)),
                        ("Images", len(files)),
                        ("Jobs", args.jobs),
                        ("Workers", args.workers),
                    ]
                )
            )

        if args.jobs <= 1:
            results = [
                _process_single_image(
                    p,
                    output_path_for(p, args.outdir, args.format),
                    config,
                    args.format,
                    args.seed,
                    args.workers,
                    args.debug,
                )
                for p in files
            ]
        else:
            with ThreadPoolExecutor(max_workers=args.jobs) as ex:
                futures = [
                    ex.submit(
                        _process_one_captured,
                        p,
                        args.outdir,
                        config,
                        args.format,
                        args.seed,
                        args.workers,
                        args.debug,
                    )
                    for p in files
                ]
                blocks = [f.result() for f in futures]
            print("".join(text for _ok, text in blocks), end="", flush=True)
            results = [ok for ok, _text in blocks]
    else:
        results = [
            _process_single_image(
                src,
                output_path_for(src, args.outdir, args.format),
                config,
                args.format,
                args.seed,
                args.workers,
                args.debug,
            )
        ]

    return 0 if all(results) else 2


if __name__ == "__main__":
    sys.exit(main())
