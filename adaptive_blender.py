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

# adaptive_blender.py

"""
Blend policies for pixels flagged as edges.

Every policy exists twice: a numba kernel that blends one pixel into a
caller-supplied slot, and a numpy version that blends a whole image at once.
Neighbour coordinates are clamped to the image bounds in both, so the 3x3
kernel keeps its shape next to the border.
"""

import math
import numpy as np
import numba

from config import BlendPolicy
from pixel_buffer import clamp_to_edge, InvalidDimensionsError

# Integer tags for the kernels, which cannot take enums
POLICY_WEIGHTED_NEIGHBOR_AVERAGE = BlendPolicy.WEIGHTED_NEIGHBOR_AVERAGE.code
POLICY_SIGMOID_CENTER_BLEND = BlendPolicy.SIGMOID_CENTER_BLEND.code

SIGMOID_CENTER = 0.2
SIGMOID_STEEPNESS = 100.0
SIGMOID_MAX_WEIGHT = 0.33


@numba.jit(nopython=True, cache=True, nogil=True)
def logistic_sigmoid(x):
    return 1.0 / (1.0 + math.exp(-SIGMOID_STEEPNESS * (x - SIGMOID_CENTER)))


@numba.jit(nopython=True, cache=True, nogil=True)
def _safe_quotient(numerator, denominator):
    # IEEE result of a float division, without numba's ZeroDivisionError
    if denominator != 0.0:
        return numerator / denominator
    if numerator > 0.0:
        return np.inf
    if numerator < 0.0:
        return -np.inf
    return np.nan


@numba.jit(nopython=True, cache=True, nogil=True)
def _truncate_to_channel(value):
    # NaN -> 0, +inf -> 255, -inf -> 0, same as an int cast followed by a clamp
    if value != value:
        return 0
    if value >= 255.0:
        return 255
    if value <= 0.0:
        return 0
    return int(value)


@numba.jit(nopython=True, cache=True, nogil=True)
def _round_to_channel(value):
    if value != value:
        return 0
    return _truncate_to_channel(value + 0.5)


@numba.jit(nopython=True, cache=True, nogil=True)
def _weighted_neighbor_average_into(buffer, luminance_map, x, y, edge_strength, clamp_negative_weights, out):
    height, width, channels = buffer.shape
    center_lum = np.float64(luminance_map[y, x])

    sum_0 = 0.0
    sum_1 = 0.0
    sum_2 = 0.0
    sum_3 = 0.0
    weight_sum = 0.0

    for i in range(-1, 2):
        for j in range(-1, 2):
            sample_x = clamp_to_edge(x + i, 0, width - 1)
            sample_y = clamp_to_edge(y + j, 0, height - 1)

            sample_lum = np.float64(luminance_map[sample_y, sample_x])
            # Can go negative for strongly divergent samples; kept unless strict
            weight = 1.0 - abs(sample_lum - center_lum) * edge_strength
            if clamp_negative_weights and weight < 0.0:
                weight = 0.0

            sum_0 += buffer[sample_y, sample_x, 0] * weight
            sum_1 += buffer[sample_y, sample_x, 1] * weight
            sum_2 += buffer[sample_y, sample_x, 2] * weight
            if channels == 4:
                sum_3 += buffer[sample_y, sample_x, 3] * weight
            weight_sum += weight

    out[0] = _truncate_to_channel(_safe_quotient(sum_0, weight_sum))
    out[1] = _truncate_to_channel(_safe_quotient(sum_1, weight_sum))
    out[2] = _truncate_to_channel(_safe_quotient(sum_2, weight_sum))
    if channels == 4:
        out[3] = _truncate_to_channel(_safe_quotient(sum_3, weight_sum))


@numba.jit(nopython=True, cache=True, nogil=True)
def _sigmoid_center_blend_into(buffer, luminance_map, x, y, out):
    height, width, channels = buffer.shape
    center_lum = np.float64(luminance_map[y, x])

    acc_0 = 0.0
    acc_1 = 0.0
    acc_2 = 0.0
    acc_3 = 0.0

    for i in range(-1, 2):
        for j in range(-1, 2):
            if i == 0 and j == 0:
                continue
            sample_x = clamp_to_edge(x + i, 0, width - 1)
            sample_y = clamp_to_edge(y + j, 0, height - 1)

            lum_diff = abs(np.float64(luminance_map[sample_y, sample_x]) - center_lum)
            weight = SIGMOID_MAX_WEIGHT * logistic_sigmoid(lum_diff)
            keep = 1.0 - weight

            acc_0 += buffer[sample_y, sample_x, 0] * weight + buffer[y, x, 0] * keep
            acc_1 += buffer[sample_y, sample_x, 1] * weight + buffer[y, x, 1] * keep
            acc_2 += buffer[sample_y, sample_x, 2] * weight + buffer[y, x, 2] * keep
            if channels == 4:
                acc_3 += buffer[sample_y, sample_x, 3] * weight + buffer[y, x, 3] * keep

    # Divided by the neighbour count, not by the weight sum
    out[0] = _round_to_channel(acc_0 / 8.0)
    out[1] = _round_to_channel(acc_1 / 8.0)
    out[2] = _round_to_channel(acc_2 / 8.0)
    if channels == 4:
        out[3] = _round_to_channel(acc_3 / 8.0)


@numba.jit(nopython=True, cache=True, nogil=True)
def _blend_pixel_into(policy_code, buffer, luminance_map, x, y, edge_strength, clamp_negative_weights, out):
    if policy_code == POLICY_SIGMOID_CENTER_BLEND:
        _sigmoid_center_blend_into(buffer, luminance_map, x, y, out)
    else:
        _weighted_neighbor_average_into(buffer, luminance_map, x, y, edge_strength, clamp_negative_weights, out)


def _check_pixel_in_bounds(buffer, luminance_map, x, y):
    height, width = buffer.shape[:2]
    if luminance_map.shape != (height, width):
        raise InvalidDimensionsError(f"Luminance map {luminance_map.shape} does not match a {width}x{height} image.")
    if not (0 <= x < width and 0 <= y < height):
        raise IndexError(f"({x}, {y}) is outside a {width}x{height} image.")


def weighted_neighbor_average(buffer, luminance_map, x, y, edge_strength, clamp_negative_weights=False):
    """
    Blends (x, y) with its 3x3 neighbourhood, weighting each sample by
    1 - |L(sample) - L(center)| * edge_strength.

    Returns:
        A uint8 array with one value per channel (alpha included).
    """
    _check_pixel_in_bounds(buffer, luminance_map, x, y)
    out = np.empty(buffer.shape[2], dtype=np.uint8)
    _weighted_neighbor_average_into(buffer, luminance_map, x, y, float(edge_strength), bool(clamp_negative_weights), out)
    return out


def sigmoid_center_blend(buffer, luminance_map, x, y):
    """
    Mixes (x, y) with each of its 8 neighbours using a sigmoid of the
    luminance difference, so near-identical neighbours leave the centre
    almost untouched.
    """
    _check_pixel_in_bounds(buffer, luminance_map, x, y)
    out = np.empty(buffer.shape[2], dtype=np.uint8)
    _sigmoid_center_blend_into(buffer, luminance_map, x, y, out)
    return out


def blend_pixel(policy, buffer, luminance_map, x, y, edge_strength, clamp_negative_weights=False):
    policy = BlendPolicy(policy)
    if policy is BlendPolicy.SIGMOID_CENTER_BLEND:
        return sigmoid_center_blend(buffer, luminance_map, x, y)
    return weighted_neighbor_average(buffer, luminance_map, x, y, edge_strength, clamp_negative_weights)


# --- Vectorized numpy versions ---

def _neighborhood(padded, height, width, i, j):
    """Window of a 1-pixel edge-padded array shifted by (i, j)."""
    return padded[1 + j:height + 1 + j, 1 + i:width + 1 + i]


def _truncate_to_channels(values: np.ndarray) -> np.ndarray:
    values = np.nan_to_num(values, nan=0.0, posinf=255.0, neginf=0.0)
    return np.trunc(np.clip(values, 0.0, 255.0)).astype(np.uint8)


def _weighted_neighbor_average_numpy(buffer, luminance_map, edge_map, clamp_negative_weights):
    height, width, channels = buffer.shape
    # Edge padding is the vectorized form of clamp_to_edge
    padded = np.pad(buffer.astype(np.float64), ((1, 1), (1, 1), (0, 0)), mode='edge')
    padded_lum = np.pad(luminance_map.astype(np.float64), 1, mode='edge')
    center_lum = padded_lum[1:-1, 1:-1]

    sums = np.zeros((height, width, channels), dtype=np.float64)
    weight_sum = np.zeros((height, width), dtype=np.float64)

    for i in (-1, 0, 1):
        for j in (-1, 0, 1):
            sample = _neighborhood(padded, height, width, i, j)
            sample_lum = _neighborhood(padded_lum, height, width, i, j)
            weight = 1.0 - np.abs(sample_lum - center_lum) * edge_map
            if clamp_negative_weights:
                weight = np.maximum(weight, 0.0)
            sums += sample * weight[:, :, np.newaxis]
            weight_sum += weight

    with np.errstate(divide='ignore', invalid='ignore'):
        quotient = sums / weight_sum[:, :, np.newaxis]
    return _truncate_to_channels(quotient)


def _sigmoid_center_blend_numpy(buffer, luminance_map):
    height, width, channels = buffer.shape
    center = buffer.astype(np.float64)
    padded = np.pad(center, ((1, 1), (1, 1), (0, 0)), mode='edge')
    padded_lum = np.pad(luminance_map.astype(np.float64), 1, mode='edge')
    center_lum = padded_lum[1:-1, 1:-1]

    acc = np.zeros((height, width, channels), dtype=np.float64)
    for i in (-1, 0, 1):
        for j in (-1, 0, 1):
            if i == 0 and j == 0:
                continue
            sample = _neighborhood(padded, height, width, i, j)
            lum_diff = np.abs(_neighborhood(padded_lum, height, width, i, j) - center_lum)
            weight = SIGMOID_MAX_WEIGHT * (1.0 / (1.0 + np.exp(-SIGMOID_STEEPNESS * (lum_diff - SIGMOID_CENTER))))
            weight = weight[:, :, np.newaxis]
            acc += sample * weight + center * (1.0 - weight)

    return _truncate_to_channels(np.floor(acc / 8.0 + 0.5))


def blend_image(policy, buffer, luminance_map, edge_map, clamp_negative_weights=False) -> np.ndarray:
    """
    Applies a blend policy to every pixel of `buffer` at once.

    The caller decides which of the results to keep (edge pixels only).

    Args:
        policy: A BlendPolicy (or its value).
        buffer: (height, width, channels) uint8 pixel buffer.
        luminance_map: (height, width) luminance of `buffer`.
        edge_map: (height, width) edge strength per pixel.
        clamp_negative_weights: Strict mode for the weighted average.

    Returns:
        A uint8 array shaped like `buffer`.
    """
    policy = BlendPolicy(policy)
    if policy is BlendPolicy.SIGMOID_CENTER_BLEND:
        return _sigmoid_center_blend_numpy(buffer, luminance_map)
    return _weighted_neighbor_average_numpy(buffer, luminance_map, edge_map.astype(np.float64), clamp_negative_weights)
