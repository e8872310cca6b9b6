"""
ICP Registration Package

Per-iteration engine of rigid point-cloud registration (Iterative Closest
Point): robust nearest-neighbor correspondences, closed-form Kabsch/Umeyama
rigid fitting with reflection correction, and accumulation of transform
increments. A point-to-point ICP loop is built from these primitives.
"""

__version__ = "0.1.0"

from .exceptions import InvalidInputError
from .alignment import *
from .acceleration import *
from .utils import *

__all__ = [
    "InvalidInputError",
    "alignment",
    "acceleration",
    "utils",
]
