"""
Quick ICP alignment performance test (sequential vs threaded queries).

Builds a synthetic anisotropic cloud, applies a known rigid motion with a
fraction of gross outliers, and runs ICP twice: once with sequential
nearest-neighbor queries and once with queries spread over worker threads.

Usage (from repo root):
    uv run scripts/benchmark_icp.py

Optional flags:
    --config PATH       YAML config path (default: config/default.yaml)
    --points N          Points per cloud (default: 100000)
    --workers N         Threads for the threaded run (default: 4)
    --angle DEG         Rotation about Z applied to the target (default: 2.0)
"""

import argparse
import logging
import sys
import time
from pathlib import Path

import numpy as np

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from icp_registration.alignment.fine_registration import ICPRegistration
from icp_registration.alignment.rigid_transform import RigidTransform
from icp_registration.utils.config import AppConfig, load_config
from icp_registration.utils.logging import configure_logging, setup_logger


def make_clouds(n_points: int, angle_deg: float, outlier_fraction: float = 0.02, seed: int = 42):
    """Return (source, target, true_transform) for a synthetic benchmark."""
    rng = np.random.default_rng(seed)
    src = rng.normal(size=(n_points, 3)) * np.array([20.0, 10.0, 2.0])

    th = np.deg2rad(angle_deg)
    Rz = np.array(
        [
            [np.cos(th), -np.sin(th), 0.0],
            [np.sin(th), np.cos(th), 0.0],
            [0.0, 0.0, 1.0],
        ]
    )
    truth = RigidTransform(Rz, np.array([0.4, -0.3, 0.05]))
    tgt = truth.apply(src)

    # Replace some target points with clutter the robust gate has to reject
    n_out = int(outlier_fraction * n_points)
    if n_out:
        idx = rng.choice(n_points, n_out, replace=False)
        tgt[idx] += rng.normal(scale=25.0, size=(n_out, 3))

    return src, tgt, truth


def run_icp_once(
    src: np.ndarray,
    tgt: np.ndarray,
    config: AppConfig,
    n_workers: int,
    label: str,
) -> tuple[float, float, np.ndarray, int]:
    """
    Run a single ICP alignment and report duration, RMSE, transform and iterations.
    """
    print(f"\n{label}")
    print("-" * 60)

    icp = ICPRegistration.from_config(config)
    icp.finder.n_workers = n_workers

    t0 = time.time()
    _, T, final_err = icp.align_point_clouds(source=src, target=tgt)
    t1 = time.time()

    print(f"Duration: {t1 - t0:.3f} seconds")
    print(f"Iterations: {icp.last_iterations} (converged={icp.last_converged})")
    print(f"Final RMSE: {final_err:.6f}")

    return t1 - t0, float(final_err), T, icp.last_iterations


def main() -> None:
    parser = argparse.ArgumentParser(description="ICP alignment sequential vs threaded benchmark")
    parser.add_argument(
        "--config",
        type=str,
        default="config/default.yaml",
        help="Path to YAML configuration file (default: config/default.yaml)",
    )
    parser.add_argument("--points", type=int, default=100_000, help="Number of points per cloud")
    parser.add_argument("--workers", type=int, default=4, help="Threads for the threaded run")
    parser.add_argument("--angle", type=float, default=2.0, help="Rotation about Z in degrees")
    args = parser.parse_args()

    config = load_config(Path(args.config))
    configure_logging(config)
    logger = setup_logger(__name__, level=getattr(logging, config.logging.level, logging.INFO))
    logger.info("Loaded config from: %s", args.config)

    print("=" * 80)
    print("ICP Alignment Benchmark")
    print("=" * 80)
    print(f"\nUsing {args.points:,} points per cloud, rotation {args.angle:.2f} deg about Z.")

    src, tgt, truth = make_clouds(args.points, args.angle)

    seq_time, seq_rmse, seq_T, _ = run_icp_once(
        src, tgt, config, n_workers=1, label="[1/2] ICP with sequential queries"
    )
    par_time, par_rmse, par_T, _ = run_icp_once(
        src, tgt, config, n_workers=args.workers, label=f"[2/2] ICP with {args.workers} query threads"
    )

    est = RigidTransform.from_matrix(par_T)
    rot_err_deg = np.rad2deg(RigidTransform(est.rotation.T @ truth.rotation).rotation_angle())
    trans_err = float(np.linalg.norm(est.translation - truth.translation))

    print("\n" + "=" * 80)
    print("SUMMARY")
    print("=" * 80)
    print(f"Sequential : {seq_time:.3f} s, RMSE={seq_rmse:.6f}")
    print(f"Threaded   : {par_time:.3f} s, RMSE={par_rmse:.6f}")
    if par_time > 0:
        print(f"Speedup    : {seq_time / par_time:.2f}x")
    print(f"Transforms agree: {np.allclose(seq_T, par_T, atol=1e-9)}")
    print(f"Error vs truth: rotation {rot_err_deg:.4f} deg, translation {trans_err:.4f}")


if __name__ == "__main__":
    main()
