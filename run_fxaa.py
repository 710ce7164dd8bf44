# run_fxaa.py

"""
Command line entry point: load an image, apply the FXAA filter, save it.

    python run_fxaa.py input.png output.png --passes 3 --policy sigmoid_center_blend
"""

import argparse
import dataclasses
import os
import sys
from typing import List, Optional

from config import FilterConfig, BlendPolicy, InvalidConfigError, WEIGHT_PRESETS
from fxaa_engine import FxaaPassOrchestrator
from image_io import load_image, save_image, ImageIOError
from logger import Logger
from pixel_buffer import InvalidDimensionsError
import run_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='FXAA-style anti-aliasing post-process filter')
    parser.add_argument('input', nargs='?', default='input.png', help='Input image (default: input.png)')
    parser.add_argument('output', nargs='?', default='output.png', help='Output image (default: output.png)')
    parser.add_argument('--config', help='JSON filter config; created with defaults if missing')
    parser.add_argument('--passes', type=int, help='Number of filter passes')
    parser.add_argument('--threshold', type=float, help='Edge strength threshold')
    parser.add_argument('--weights', choices=sorted(WEIGHT_PRESETS), help='Luminance weight preset')
    parser.add_argument('--policy', choices=[p.value for p in BlendPolicy], help='Blend policy')
    parser.add_argument('--recompute-luminance', action='store_true', default=None,
                        help='Recompute the luminance map at the start of every pass')
    parser.add_argument('--clamp-negative-weights', action='store_true', default=None,
                        help='Floor weighted-average sample weights at zero')
    parser.add_argument('--no-numba', dest='use_numba_jit', action='store_false', default=None,
                        help='Use the vectorized NumPy kernels instead of Numba')
    parser.add_argument('--threads', type=int, help='Worker threads per pass')
    parser.add_argument('--log-dir', default='logs', help='Directory for per-run log files')
    parser.add_argument('--run-log', default=os.path.join('logs', 'fxaa_runs.jsonl'),
                        help='JSON Lines run history file')
    return parser


def config_from_args(args: argparse.Namespace) -> FilterConfig:
    """Starts from the config file (or defaults) and applies any flags given."""
    config = FilterConfig.load(args.config) if args.config else FilterConfig()

    overrides = {
        "pass_count": args.passes,
        "edge_threshold": args.threshold,
        "luminance_weights": WEIGHT_PRESETS[args.weights] if args.weights else None,
        "blend_policy": args.policy,
        "recompute_luminance_per_pass": args.recompute_luminance,
        "clamp_negative_weights": args.clamp_negative_weights,
        "use_numba_jit": args.use_numba_jit,
        "thread_count": args.threads,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    return dataclasses.replace(config, **overrides)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
    except InvalidConfigError as e:
        print(f"Error: Invalid configuration: {e}")
        return 1

    logger = Logger(args.log_dir)
    logger.log(f"Input: {args.input}")
    logger.log_config(config)

    try:
        image = load_image(args.input)
        print(f"Loaded {args.input}: {image.shape[1]}x{image.shape[0]}, {image.shape[2]} channel(s)")
        logger.log_image(f"Loaded {args.input}", image)

        orchestrator = FxaaPassOrchestrator(
            config, logger,
            progress_callback=lambda done, total: print(f"Pass {done}/{total} complete")
        )
        result = orchestrator.run(image)
        save_image(args.output, result)
    except (ImageIOError, InvalidDimensionsError) as e:
        print(f"Error: {e}")
        logger.log(f"Run failed: {e}")
        return 1

    logger.log(f"Output: {args.output}")
    logger.log_total_time()

    run_index = run_logger.get_last_run_index(args.run_log) + 1
    run_logger.log_run(args.run_log, run_index, args.input, args.output, config.to_dict())
    print(f"Successfully wrote output file: {args.output}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
