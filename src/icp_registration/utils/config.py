"""
Configuration management for icp-registration.

Provides a typed pydantic model and YAML loader with sensible defaults.
Every numeric threshold used by the registration primitives lives here so
deployments can retune them per point-cloud scale and density.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Literal, Any, Dict

from pydantic import BaseModel, Field, ValidationError
import yaml


# -----------------------
# Typed config structures
# -----------------------


class CorrespondenceConfig(BaseModel):
    outlier_sigma: float = Field(
        default=3.0,
        gt=0.0,
        description="Correspondences farther than median + outlier_sigma * sigma are rejected",
    )
    mad_scale: float = Field(
        default=1.4826,
        gt=0.0,
        description="Factor turning the median absolute deviation into a Gaussian-consistent sigma",
    )
    n_workers: int = Field(
        default=1,
        ge=1,
        description="Threads used for nearest-neighbor queries (1 = sequential)",
    )
    parallel_min_points: int = Field(
        default=50_000,
        ge=1,
        description="Minimum number of source points before queries are split across threads",
    )


class SolverConfig(BaseModel):
    residual_tolerance: float = Field(
        default=1e-5,
        gt=0.0,
        description="Per-axis residual below which a fitted transform is accepted as exact",
    )
    small_displacement_threshold: float = Field(
        default=0.35,
        gt=0.0,
        description="Per-axis displacement below which pairs count as a near-zero motion",
    )
    small_displacement_fallback: bool = Field(
        default=True,
        description="Replace inexact near-zero-motion fits with identity rotation + mean translation",
    )


class ICPConfig(BaseModel):
    max_iterations: int = Field(default=50, ge=1)
    tolerance: float = Field(default=1e-6, description="Convergence tolerance on change in MSE")
    max_correspondence_distance: Optional[float] = Field(
        default=None,
        description="Optional hard gate (Euclidean) applied after the robust gate; None disables it",
    )
    min_correspondences: int = Field(default=3, ge=1)
    convergence_translation_epsilon: float = Field(
        default=1e-6,
        description="Translation step below which ICP is considered converged",
    )
    convergence_rotation_epsilon_deg: float = Field(
        default=1e-4,
        description="Rotation step (degrees) below which ICP is considered converged",
    )
    orthonormalize_every: int = Field(
        default=10,
        ge=0,
        description="Re-orthonormalize the accumulated rotation every N iterations (0 = never)",
    )
    small_displacement_fallback: bool = Field(
        default=False,
        description=(
            "Let the solver inside the ICP loop replace small-motion fits by a pure "
            "translation; enabling it stops rotation refinement once clouds are close"
        ),
    )


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    file: Optional[str] = Field(default=None)


class AppConfig(BaseModel):
    correspondence: CorrespondenceConfig = Field(default_factory=CorrespondenceConfig)
    solver: SolverConfig = Field(default_factory=SolverConfig)
    icp: ICPConfig = Field(default_factory=ICPConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# -----------------------
# Loader
# -----------------------


def _project_root() -> Path:
    """
    Resolve the repository root directory.

    File is at: repo_root/src/icp_registration/utils/config.py
    parents sequence:
      0 -> .../src/icp_registration/utils
      1 -> .../src/icp_registration
      2 -> .../src
      3 -> repo_root
    """
    return Path(__file__).resolve().parents[3]


def load_config(path: Optional[str | Path] = None, *, allow_missing: bool = True) -> AppConfig:
    """
    Load configuration from YAML into a typed AppConfig.

    Search order when path is None:
    1) repo_root/config/default.yaml
    2) if missing and allow_missing=True: return default AppConfig()

    Args:
        path: Explicit YAML file path.
        allow_missing: If True, returns defaults when file missing; otherwise raises.

    Returns:
        AppConfig instance
    """
    cfg_path: Path
    if path is None:
        cfg_path = _project_root() / "config" / "default.yaml"
    else:
        cfg_path = Path(path)

    if not cfg_path.exists():
        if allow_missing:
            return AppConfig()
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    with cfg_path.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as e:
        # Re-raise with context to help users fix the YAML
        raise ValueError(f"Invalid configuration in {cfg_path}: {e}") from e
