"""
Pytest Configuration and Shared Fixtures

This file contains pytest configuration and fixtures that are available
to all test modules.
"""

import io

import numpy as np
import pytest
from PIL import Image

from scanner.types import RasterImage


@pytest.fixture
def sample_quadrilateral_points():
    """Fixture providing a perspective-skewed page outline (TL, TR, BR, BL)."""
    return [(102.0, 88.0), (530.0, 61.0), (575.0, 410.0), (80.0, 440.0)]


@pytest.fixture
def gradient_image():
    """Opaque 40x30 image where every pixel has a distinct colour."""
    height, width = 30, 40
    ys, xs = np.mgrid[0:height, 0:width]
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[..., 0] = xs * 6
    pixels[..., 1] = ys * 8
    pixels[..., 2] = (xs + ys) % 256
    pixels[..., 3] = 255
    return RasterImage(width, height, pixels)


@pytest.fixture
def page_image():
    """Opaque 500x500 grey photo."""
    pixels = np.full((500, 500, 4), 128, dtype=np.uint8)
    pixels[..., 3] = 255
    return RasterImage(500, 500, pixels)


@pytest.fixture
def png_bytes():
    """Encoded 60x40 RGB PNG with a dark page on a light background."""
    image = Image.new("RGB", (60, 40), (230, 230, 230))
    image.paste((20, 20, 20), (10, 8, 50, 32))
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()
