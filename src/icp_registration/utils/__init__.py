"""
Utility Functions Module

- Logging setup
- Typed configuration loading
- Point array validation
"""

from .logging import setup_logger, configure_logging
from .config import AppConfig, load_config
from .point_arrays import as_point_array, as_paired_arrays

__all__ = [
    "setup_logger",
    "configure_logging",
    "AppConfig",
    "load_config",
    "as_point_array",
    "as_paired_arrays",
]
