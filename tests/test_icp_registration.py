"""
Tests for the ICP loop.

These tests focus on correctness of the recovered transform and basic
convergence behavior on synthetic data.
"""

from pathlib import Path
import sys

import numpy as np
from sklearn.neighbors import NearestNeighbors

# Ensure src is importable
sys.path.append(str(Path(__file__).parent.parent / "src"))

from icp_registration.alignment.fine_registration import ICPRegistration
from icp_registration.alignment.rigid_transform import RigidTransform
from icp_registration.alignment.transform_solver import RigidTransformSolver
from icp_registration.utils.config import load_config

from synthetic import apply_rigid_transform, axis_angle_to_rotation, make_random_cloud

CONFIG_DIR = Path(__file__).parent.parent / "config"


def _nn_rmse(A: np.ndarray, B: np.ndarray) -> float:
    nn = NearestNeighbors(n_neighbors=1, algorithm="kd_tree").fit(B)
    d, _ = nn.kneighbors(A)
    return float(np.sqrt(np.mean(d ** 2)))


def test_icp_recovers_known_transform():
    """ICP should recover a small known rigid transform."""
    src = make_random_cloud(n=2000, seed=1)

    Rz = axis_angle_to_rotation([0.0, 0.0, 1.0], np.deg2rad(3.0))
    t = np.array([0.3, -0.2, 0.1])
    tgt = apply_rigid_transform(src, Rz, t)

    icp = ICPRegistration(
        max_iterations=100,
        tolerance=1e-12,
        solver=RigidTransformSolver(small_displacement_fallback=False),
    )

    aligned, T_est, final_err = icp.align_point_clouds(source=src, target=tgt)

    baseline_rmse = _nn_rmse(src, tgt)
    assert final_err < baseline_rmse * 0.5
    assert icp.last_iterations >= 1

    est = RigidTransform.from_matrix(T_est)
    angle_err = RigidTransform(est.rotation.T @ Rz, np.zeros(3)).rotation_angle()
    assert angle_err < 1e-6
    assert np.linalg.norm(est.translation - t) < 1e-6
    assert final_err < 1e-6

    # The returned points are the source mapped by the returned transform
    np.testing.assert_allclose(aligned, est.apply(src), atol=1e-9)


def test_icp_accumulated_rotation_stays_proper():
    src = make_random_cloud(n=1000, seed=4)
    R_true = axis_angle_to_rotation([1.0, 1.0, 0.0], np.deg2rad(2.0))
    tgt = apply_rigid_transform(src, R_true, np.zeros(3))

    icp = ICPRegistration(max_iterations=50, orthonormalize_every=5)
    _, T_est, _ = icp.align_point_clouds(src, tgt)

    R = T_est[:3, :3]
    np.testing.assert_allclose(R.T @ R, np.eye(3), atol=1e-9)
    assert abs(np.linalg.det(R) - 1.0) < 1e-9
    assert RigidTransform(R.T @ R_true).rotation_angle() < 1e-3


def test_icp_default_config_recovers_small_rotation():
    """With the shipped defaults, small rotations on a unit-scale cloud are still refined."""
    rng = np.random.default_rng(7)
    src = rng.random((1000, 3))
    R_true = axis_angle_to_rotation([1.0, 2.0, 3.0], 0.08)
    t_true = np.array([0.02, 0.01, 0.0])
    tgt = apply_rigid_transform(src, R_true, t_true)

    icp = ICPRegistration.from_config(load_config(CONFIG_DIR / "default.yaml"))
    assert icp.solver.small_displacement_fallback is False

    _, T_est, final_err = icp.align_point_clouds(src, tgt)

    est = RigidTransform.from_matrix(T_est)
    assert RigidTransform(est.rotation.T @ R_true).rotation_angle() < 1e-3
    assert np.linalg.norm(est.translation - t_true) < 1e-3
    assert final_err < 0.1 * _nn_rmse(src, tgt)


def test_icp_solver_fallback_can_be_enabled_from_config():
    cfg = load_config(CONFIG_DIR / "default.yaml")
    cfg.icp.small_displacement_fallback = True

    icp = ICPRegistration.from_config(cfg)

    assert icp.solver.small_displacement_fallback is True
    assert icp.solver.small_displacement_threshold == cfg.solver.small_displacement_threshold


def test_icp_translation_only():
    src = make_random_cloud(n=2000, seed=2)
    t = np.array([0.1, -0.05, 0.02])
    tgt = src + t

    icp = ICPRegistration(max_iterations=100)
    _, T_est, final_err = icp.align_point_clouds(src, tgt)

    assert final_err < _nn_rmse(src, tgt)
    assert np.linalg.norm(T_est[:3, 3] - t) < 0.05


def test_icp_exact_initial_transform_converges_immediately():
    src = make_random_cloud(n=500, seed=3)
    R = axis_angle_to_rotation([0.0, 1.0, 0.0], 0.4)
    t = np.array([5.0, -2.0, 1.0])
    tgt = apply_rigid_transform(src, R, t)

    T_true = np.eye(4)
    T_true[:3, :3] = R
    T_true[:3, 3] = t

    icp = ICPRegistration(max_iterations=20)
    _, T_est, final_err = icp.align_point_clouds(src, tgt, initial_transform=T_true)

    np.testing.assert_allclose(T_est, T_true, atol=1e-6)
    assert final_err < 1e-6
    assert icp.last_converged


def test_icp_stops_when_too_few_correspondences():
    src = make_random_cloud(n=5, seed=5)
    icp = ICPRegistration(min_correspondences=10)

    aligned, T, err = icp.align_point_clouds(src, src + 1.0)

    np.testing.assert_array_equal(T, np.eye(4))
    np.testing.assert_array_equal(aligned, src)
    assert icp.last_iterations == 0
    assert not icp.last_converged
    assert np.isfinite(err)


def test_icp_handles_empty_inputs_gracefully():
    """ICP should not crash on empty point sets."""
    icp = ICPRegistration()
    src = np.empty((0, 3), dtype=float)
    tgt = np.empty((0, 3), dtype=float)

    aligned, T, err = icp.align_point_clouds(source=src, target=tgt)

    assert aligned.shape[0] == 0
    assert T.shape == (4, 4)
    assert np.isfinite(T).all()
    assert err == float("inf")


def test_registration_error_respects_max_distance():
    src = np.array([[0.0, 0.0, 0.0], [10.0, 0.0, 0.0]])
    tgt = np.array([[0.0, 0.0, 1.0]])

    assert ICPRegistration().compute_registration_error(src, tgt) > 1.0
    assert ICPRegistration(max_correspondence_distance=2.0).compute_registration_error(src, tgt) == 1.0
    assert ICPRegistration(max_correspondence_distance=0.5).compute_registration_error(src, tgt) == float("inf")


def test_icp_from_config():
    cfg = load_config(CONFIG_DIR / "profiles" / "precise.yaml")
    icp = ICPRegistration.from_config(cfg)

    assert icp.max_iterations == 100
    assert icp.max_correspondence_distance == 2.0
    assert icp.finder.n_workers == 4
    assert icp.finder.outlier_sigma == 2.5
    assert icp.solver.small_displacement_fallback is False
