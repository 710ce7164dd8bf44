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

# edge_detector.py

import numpy as np
import numba

from pixel_buffer import is_border_pixel

# Moore neighbourhood, x offset outer, y offset inner
NEIGHBOR_OFFSETS = tuple((i, j) for i in (-1, 0, 1) for j in (-1, 0, 1) if i != 0 or j != 0)


@numba.jit(nopython=True, cache=True, nogil=True)
def _edge_strength(luminance_map, x, y):
    """
    Average absolute luminance deviation of (x, y) from its 8 neighbours.
    Only valid for interior coordinates; there is no bounds handling here.
    """
    center = np.float64(luminance_map[y, x])
    total = 0.0
    for i in range(-1, 2):
        for j in range(-1, 2):
            if i != 0 or j != 0:
                total += abs(np.float64(luminance_map[y + j, x + i]) - center)
    return total / 8.0


def compute_edge_strength(luminance_map: np.ndarray, x: int, y: int) -> float:
    """
    Edge strength of a single interior pixel.

    Border pixels have an incomplete neighbourhood and are passed through by
    the caller instead, so asking for one here is an error.
    """
    height, width = luminance_map.shape
    if not (0 <= x < width and 0 <= y < height) or is_border_pixel(x, y, width, height):
        raise IndexError(f"({x}, {y}) is not an interior pixel of a {width}x{height} map.")
    return float(_edge_strength(luminance_map, x, y))


def compute_edge_map(luminance_map: np.ndarray, dtype=np.float32) -> np.ndarray:
    """
    Vectorized edge strength for every interior pixel.

    Returns:
        A map of the same shape, 0 on the border. The blending kernels ask
        for float64 so threshold gating matches the compiled path.
    """
    height, width = luminance_map.shape
    edge_map = np.zeros((height, width), dtype=dtype)
    if height < 3 or width < 3:
        return edge_map

    lum = luminance_map.astype(np.float64)
    center = lum[1:-1, 1:-1]
    total = np.zeros_like(center)
    for i, j in NEIGHBOR_OFFSETS:
        neighbor = lum[1 + j:height - 1 + j, 1 + i:width - 1 + i]
        total += np.abs(neighbor - center)
    edge_map[1:-1, 1:-1] = total / 8.0
    return edge_map
