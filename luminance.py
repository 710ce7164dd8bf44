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

# luminance.py

import numpy as np
import numba
from typing import Optional, Sequence

from pixel_buffer import InvalidDimensionsError


@numba.jit(nopython=True, cache=True)
def _compute_luminance_numba(buffer, weights, out):
    height, width = out.shape
    w_r = weights[0]
    w_g = weights[1]
    w_b = weights[2]
    for y in range(height):
        for x in range(width):
            out[y, x] = (w_r * buffer[y, x, 0] + w_g * buffer[y, x, 1] + w_b * buffer[y, x, 2]) / 255.0
    return out


def _compute_luminance_numpy(buffer, weights, out):
    rgb = buffer[:, :, :3].astype(np.float64)
    # Same accumulation order as the numba loop
    weighted = weights[0] * rgb[:, :, 0] + weights[1] * rgb[:, :, 1] + weights[2] * rgb[:, :, 2]
    out[...] = weighted / 255.0
    return out


def compute_luminance_map(
    buffer: np.ndarray,
    weights: Sequence[float],
    out: Optional[np.ndarray] = None,
    use_numba_jit: bool = True
) -> np.ndarray:
    """
    Converts an RGB(A) pixel buffer into a per-pixel luminance map.

    Each entry is (w_r*R + w_g*G + w_b*B) / 255. Alpha is ignored.

    Args:
        buffer: (height, width, 3|4) uint8 pixel buffer.
        weights: Three non-negative channel weights.
        out: Optional float32 map to fill in place, so one allocation can be
             reused across passes.
        use_numba_jit: Use the compiled loop instead of the vectorized path.

    Returns:
        A (height, width) float32 luminance map.
    """
    height, width = buffer.shape[:2]
    if height == 0 or width == 0:
        raise InvalidDimensionsError(f"Cannot compute luminance of an empty buffer {buffer.shape}.")

    if out is None:
        out = np.empty((height, width), dtype=np.float32)
    elif out.shape != (height, width):
        raise InvalidDimensionsError(
            f"Luminance map shape {out.shape} does not match buffer shape {(height, width)}."
        )

    weights_arr = np.asarray(weights, dtype=np.float64)
    if use_numba_jit:
        return _compute_luminance_numba(buffer, weights_arr, out)
    return _compute_luminance_numpy(buffer, weights_arr, out)
