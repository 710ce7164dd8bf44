"""
Copyright (c) 2025 Aaron Baca

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU Affero General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU Affero General Public License for more details.

You should have received a copy of the GNU Affero General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

# fxaa_engine.py

import concurrent.futures
import time
from enum import Enum
from typing import Callable, List, Optional

import numpy as np
import numba
from numba.core.errors import NumbaError

from config import FilterConfig
from pixel_buffer import PingPongBuffers, has_interior, is_border_pixel, validate_buffer
from luminance import compute_luminance_map
from edge_detector import _edge_strength, compute_edge_map
from adaptive_blender import _blend_pixel_into, blend_image
from logger import Logger


class OrchestratorState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    DONE = "done"


@numba.jit(nopython=True, cache=True, nogil=True)
def _fxaa_rows(source, luminance_map, target, y_start, y_stop, edge_threshold, policy_code, clamp_negative_weights):
    """
    Runs one FXAA pass over rows [y_start, y_stop).

    Reads only `source` and `luminance_map` and writes only those rows of
    `target`, so disjoint row bands can run on separate threads.

    Returns:
        The number of pixels that were blended.
    """
    height, width, channels = source.shape
    blended = 0

    for y in range(y_start, y_stop):
        for x in range(width):
            if is_border_pixel(x, y, width, height):
                for c in range(channels):
                    target[y, x, c] = source[y, x, c]
                continue

            edge_strength = _edge_strength(luminance_map, x, y)
            if edge_strength > edge_threshold:
                _blend_pixel_into(policy_code, source, luminance_map, x, y, edge_strength,
                                  clamp_negative_weights, target[y, x])
                blended += 1
            else:
                for c in range(channels):
                    target[y, x, c] = source[y, x, c]

    return blended


def _fxaa_pass_numba(source, luminance_map, target, config: FilterConfig) -> int:
    height = source.shape[0]
    workers = max(1, min(config.thread_count, height))
    kernel_args = (config.edge_threshold, config.blend_policy.code, config.clamp_negative_weights)

    if workers == 1:
        return int(_fxaa_rows(source, luminance_map, target, 0, height, *kernel_args))

    bounds = np.linspace(0, height, workers + 1).astype(np.int64)
    blended = 0
    # Leaving the executor block is the barrier: every band is written
    # before the caller may swap buffers.
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [
            executor.submit(_fxaa_rows, source, luminance_map, target, int(start), int(stop), *kernel_args)
            for start, stop in zip(bounds[:-1], bounds[1:]) if stop > start
        ]
        for future in concurrent.futures.as_completed(futures):
            blended += int(future.result())
    return blended


def _fxaa_pass_numpy(source, luminance_map, target, config: FilterConfig) -> int:
    edge_map = compute_edge_map(luminance_map, dtype=np.float64)

    edge_mask = np.zeros(edge_map.shape, dtype=bool)
    edge_mask[1:-1, 1:-1] = edge_map[1:-1, 1:-1] > config.edge_threshold

    target[...] = source
    if edge_mask.any():
        blended = blend_image(config.blend_policy, source, luminance_map, edge_map, config.clamp_negative_weights)
        target[edge_mask] = blended[edge_mask]
    return int(np.count_nonzero(edge_mask))


def run_fxaa_pass(source: np.ndarray, luminance_map: np.ndarray, target: np.ndarray,
                  config: FilterConfig, logger: Optional[Logger] = None) -> int:
    """
    Writes one filtered pass of `source` into `target`.

    Interior pixels whose edge strength exceeds the threshold are blended,
    everything else (borders included) is copied through.

    Returns:
        The number of blended pixels.
    """
    if target is source:
        raise ValueError("A pass cannot write into the buffer it reads from.")

    if config.use_numba_jit:
        try:
            return _fxaa_pass_numba(source, luminance_map, target, config)
        except NumbaError as e:
            message = f"Numba JIT execution failed: {e}. Falling back to NumPy implementation."
            print(message)
            if logger is not None:
                logger.log(message)
    return _fxaa_pass_numpy(source, luminance_map, target, config)


class FxaaPassOrchestrator:
    """
    Drives the configured number of passes over a pixel buffer.

    State goes IDLE -> RUNNING -> DONE. Each pass reads the active buffer of
    a PingPongBuffers pair, writes the other one and then swaps roles, so
    the result is whatever holds the source role after the last swap.
    """

    def __init__(self, config: Optional[FilterConfig] = None, logger: Optional[Logger] = None,
                 progress_callback: Optional[Callable[[int, int], None]] = None):
        self.config = config if config is not None else FilterConfig()
        self.logger = logger
        self.progress_callback = progress_callback
        self.state = OrchestratorState.IDLE
        self.current_pass = 0
        self.blended_counts: List[int] = []

    def _log(self, message: str):
        if self.logger is not None:
            self.logger.log(message)

    def _compute_luminance(self, buffer: np.ndarray, out: Optional[np.ndarray]) -> np.ndarray:
        weights = self.config.luminance_weights
        if self.config.use_numba_jit:
            try:
                return compute_luminance_map(buffer, weights, out=out, use_numba_jit=True)
            except NumbaError as e:
                message = f"Numba JIT luminance failed: {e}. Falling back to NumPy implementation."
                print(message)
                self._log(message)
        return compute_luminance_map(buffer, weights, out=out, use_numba_jit=False)

    def run(self, buffer: np.ndarray) -> np.ndarray:
        """
        Filters `buffer` and returns a new buffer; the input is left untouched.
        """
        if self.state is OrchestratorState.RUNNING:
            raise RuntimeError("FXAA orchestrator is already running.")

        source = validate_buffer(buffer)
        height, width = source.shape[:2]
        self.current_pass = 0
        self.blended_counts = []

        if not has_interior(width, height):
            self._log(f"Image is {width}x{height}, no interior pixels. Returning input unchanged.")
            self.state = OrchestratorState.DONE
            return source.copy()

        pass_count = self.config.pass_count
        if pass_count == 0:
            self._log("Pass count is 0. Returning input unchanged.")
            self.state = OrchestratorState.DONE
            return source.copy()

        self.state = OrchestratorState.RUNNING
        if self.logger is not None:
            self.logger.log_image("FXAA run started on", source)
        self._log(f"{pass_count} pass(es), policy={self.config.blend_policy.value}, "
                  f"luminance {'recomputed per pass' if self.config.recompute_luminance_per_pass else 'computed once'}.")
        try:
            buffers = PingPongBuffers(source)
            luminance_map = self._compute_luminance(buffers.source, None)

            for pass_index in range(1, pass_count + 1):
                self.current_pass = pass_index
                if pass_index > 1 and self.config.recompute_luminance_per_pass:
                    self._compute_luminance(buffers.source, luminance_map)

                start_time = time.perf_counter()
                blended = run_fxaa_pass(buffers.source, luminance_map, buffers.target, self.config, self.logger)
                buffers.swap()

                self.blended_counts.append(blended)
                if self.logger is not None:
                    self.logger.log_pass(pass_index, pass_count, blended, width * height,
                                         time.perf_counter() - start_time)
                if self.progress_callback is not None:
                    self.progress_callback(pass_index, pass_count)
        except Exception:
            self.state = OrchestratorState.IDLE
            raise

        self.state = OrchestratorState.DONE
        return buffers.source


def apply_fxaa(buffer: np.ndarray, config: Optional[FilterConfig] = None,
               logger: Optional[Logger] = None) -> np.ndarray:
    """
    Applies the FXAA-style edge smoothing filter to an RGB(A) pixel buffer.

    Args:
        buffer: (height, width, 3|4) uint8 array in R, G, B[, A] order.
        config: Filter parameters; defaults to FilterConfig().
        logger: Optional run Logger.

    Returns:
        A new uint8 buffer of the same shape.
    """
    return FxaaPassOrchestrator(config, logger).run(buffer)
