"""Shared fixtures for the registration tests."""

import numpy as np
import pytest


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def unit_cube_points(rng):
    """30 random points in the unit cube."""
    return rng.random((30, 3))
