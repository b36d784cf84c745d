"""
Shared frame fixtures for the motion detection tests.
"""
import numpy as np
import pytest

from motion import BoundingBox


def make_frame(width, height, level=100):
    return np.full((height, width, 3), level, dtype=np.uint8)


def paint(frame, box: BoundingBox, level):
    frame[box.y:box.bottom, box.x:box.right] = level
    return frame


def matrix_from_active(active):
    """(current, previous) intensity pair whose delta is exactly `active`."""
    previous = np.zeros(active.shape, dtype=np.uint8)
    current = np.where(active, 100, 0).astype(np.uint8)
    return current, previous


@pytest.fixture
def working_pair():
    """Identical 256x144 intensity matrices (the 16:9 working resolution)."""
    previous = np.full((144, 256), 100, dtype=np.uint8)
    return previous.copy(), previous


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
