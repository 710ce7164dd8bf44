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

# pixel_buffer.py

"""
Pixel buffer helpers shared by every stage of the filter.

A pixel buffer is a (height, width, channels) uint8 array in R, G, B[, A]
order. The two sampling helpers are JIT-compiled so the kernels can call
them, and stay callable from plain Python.
"""

import numpy as np
import numba

VALID_CHANNEL_COUNTS = (3, 4)


class InvalidDimensionsError(ValueError):
    """Raised for buffers or maps whose shape the filter cannot work with."""


def validate_buffer(buffer: np.ndarray) -> np.ndarray:
    """
    Checks that `buffer` is an 8-bit RGB(A) image.

    Returns:
        A C-contiguous view of the buffer (a copy only if the input was not
        contiguous).
    """
    if not isinstance(buffer, np.ndarray):
        raise TypeError(f"Pixel buffer must be a numpy array, got {type(buffer).__name__}.")
    if buffer.dtype != np.uint8:
        raise TypeError(f"Pixel buffer must be uint8, got {buffer.dtype}.")
    if buffer.ndim != 3 or buffer.shape[2] not in VALID_CHANNEL_COUNTS:
        raise InvalidDimensionsError(
            f"Pixel buffer must have shape (height, width, 3|4), got {buffer.shape}."
        )
    return np.ascontiguousarray(buffer)


def has_interior(width: int, height: int) -> bool:
    """True when at least one pixel has a complete 8-neighbourhood."""
    return width >= 3 and height >= 3


@numba.jit(nopython=True, cache=True)
def is_border_pixel(x, y, width, height):
    return x == 0 or y == 0 or x == width - 1 or y == height - 1


@numba.jit(nopython=True, cache=True)
def clamp_to_edge(value, low, high):
    if value < low:
        return low
    if value > high:
        return high
    return value


class PingPongBuffers:
    """
    Owns the two buffers a multi-pass run alternates between.

    `source` is read by the current pass and `target` is written by it.
    swap() flips the roles once the pass is complete, so the buffer just
    written becomes the next pass's input. The caller's array is copied on
    construction and never written.
    """

    def __init__(self, initial: np.ndarray):
        self._buffers = (initial.copy(), np.empty_like(initial))
        self._active = 0

    @property
    def source(self) -> np.ndarray:
        return self._buffers[self._active]

    @property
    def target(self) -> np.ndarray:
        return self._buffers[1 - self._active]

    @property
    def active_index(self) -> int:
        return self._active

    def swap(self):
        self._active = 1 - self._active
