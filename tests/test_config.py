"""Tests for configuration loading and logging setup."""

import logging
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from icp_registration.utils.config import load_config, AppConfig
from icp_registration.utils.logging import configure_logging, setup_logger

CONFIG_DIR = Path(__file__).parent.parent / "config"


def test_default_yaml_matches_model_defaults():
    """The shipped default.yaml mirrors the typed defaults."""
    cfg = load_config(CONFIG_DIR / "default.yaml")

    assert cfg.model_dump() == AppConfig().model_dump()
    assert cfg.correspondence.outlier_sigma == 3.0
    assert cfg.correspondence.mad_scale == pytest.approx(1.4826)
    assert cfg.solver.residual_tolerance == pytest.approx(1e-5)
    assert cfg.solver.small_displacement_threshold == pytest.approx(0.35)
    assert cfg.solver.small_displacement_fallback is True
    assert cfg.icp.max_correspondence_distance is None
    assert cfg.icp.small_displacement_fallback is False


def test_load_config_without_path_uses_repo_default():
    cfg = load_config(None)
    assert isinstance(cfg, AppConfig)
    assert cfg.icp.min_correspondences == 3


def test_precise_profile_overrides():
    cfg = load_config(CONFIG_DIR / "profiles" / "precise.yaml")

    assert cfg.solver.small_displacement_fallback is False
    assert cfg.correspondence.n_workers == 4
    assert cfg.icp.tolerance == pytest.approx(1e-9)
    assert cfg.logging.level == "DEBUG"
    # Unspecified fields keep defaults
    assert cfg.correspondence.mad_scale == pytest.approx(1.4826)
    assert cfg.solver.residual_tolerance == pytest.approx(1e-5)


def test_missing_file(tmp_path):
    missing = tmp_path / "nope.yaml"
    assert load_config(missing).model_dump() == AppConfig().model_dump()
    with pytest.raises(FileNotFoundError):
        load_config(missing, allow_missing=False)


def test_invalid_values_are_reported(tmp_path):
    bad = tmp_path / "bad.yaml"
    bad.write_text("correspondence:\n  outlier_sigma: -1.0\n", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid configuration"):
        load_config(bad)


def test_empty_yaml_gives_defaults(tmp_path):
    empty = tmp_path / "empty.yaml"
    empty.write_text("", encoding="utf-8")
    assert load_config(empty).model_dump() == AppConfig().model_dump()


def test_setup_logger_does_not_duplicate_handlers():
    first = setup_logger("icp_registration.tests.dup")
    second = setup_logger("icp_registration.tests.dup")
    assert first is second
    assert len(second.handlers) == 1


def test_configure_logging_applies_level(tmp_path):
    module_logger = setup_logger("icp_registration.tests.level")
    cfg = AppConfig.model_validate(
        {"logging": {"level": "WARNING", "file": str(tmp_path / "logs" / "icp.log")}}
    )

    root = configure_logging(cfg)

    assert root.level == logging.WARNING
    assert module_logger.level == logging.WARNING
    assert (tmp_path / "logs").is_dir()
    for handler in list(root.handlers):
        if isinstance(handler, logging.FileHandler):
            root.removeHandler(handler)
            handler.close()
    configure_logging(AppConfig())
