"""
Loads and saves pixel buffers with OpenCV.

OpenCV works in BGR(A) order; the filter works in RGB(A), so every buffer is
converted on the way in and out.
"""

import os
import cv2
import numpy as np

from pixel_buffer import validate_buffer


class ImageIOError(OSError):
    """Raised when an image cannot be read or written."""


def load_image(filepath: str) -> np.ndarray:
    """
    Loads an 8-bit image as an RGB or RGBA pixel buffer.

    Grayscale images are expanded to RGB. Images with more than 8 bits per
    channel are rejected rather than silently truncated.

    Args:
        filepath (str): The path to the image file.

    Returns:
        numpy.ndarray: A (height, width, 3|4) uint8 buffer.
    """
    if not os.path.exists(filepath):
        raise ImageIOError(f"Image not found: {filepath}")

    img = cv2.imread(filepath, cv2.IMREAD_UNCHANGED)
    if img is None:
        raise ImageIOError(f"Could not decode image at {filepath}")
    if img.dtype != np.uint8:
        raise ImageIOError(f"Only 8-bit images are supported, {filepath} is {img.dtype}.")

    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2RGB)
    if img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA)
    return cv2.cvtColor(img, cv2.COLOR_BGR2RGB)


def save_image(filepath: str, buffer: np.ndarray) -> str:
    """Writes an RGB(A) pixel buffer; the format follows the file extension."""
    buffer = validate_buffer(buffer)
    if buffer.shape[2] == 4:
        bgr = cv2.cvtColor(buffer, cv2.COLOR_RGBA2BGRA)
    else:
        bgr = cv2.cvtColor(buffer, cv2.COLOR_RGB2BGR)

    output_dir = os.path.dirname(filepath)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)

    try:
        written = cv2.imwrite(filepath, bgr)
    except cv2.error as e:
        raise ImageIOError(f"Could not write image to {filepath}: {e}") from e
    if not written:
        raise ImageIOError(f"Could not write image to {filepath}")
    return filepath
