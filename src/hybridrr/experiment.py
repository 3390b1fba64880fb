"""Run hybrid round-robin scheduling sessions over several seeds.

Usage:
    python -m hybridrr.experiment --config 1300,130 --seeds 10 --num-jobs 4
"""

import argparse
import logging
import os
import pathlib
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from joblib import Parallel, delayed

from hybridrr.scheduler import HybridRoundRobinScheduler
from hybridrr.utils.workloads import (
    DEFAULT_BASE_LENGTH,
    DEFAULT_CAPACITY,
    get_mixed_tasks,
    get_workers,
)


def get_results_dir() -> pathlib.Path:
    """Get the results directory.

    Returns:
        pathlib.Path: The results directory.
    """
    results_dir = pathlib.Path(
        os.getenv("HYBRIDRR_RESULTS_DIR", pathlib.Path.home() / ".hybridrr" / "results")
    )
    results_dir.mkdir(parents=True, exist_ok=True)
    return results_dir


def parse_config(config: str) -> Tuple[int, int]:
    """Parse a ``tasks,workers`` configuration string.

    Args:
        config (str): The configuration, e.g. ``"1300,130"``.

    Returns:
        Tuple[int, int]: The number of tasks and workers.

    Raises:
        ValueError: If the string is malformed.
    """
    parts = [part.strip() for part in config.split(",")]
    if len(parts) != 2:
        raise ValueError(f"Invalid config string {config!r}. Use format: tasks,workers")
    num_tasks, num_workers = int(parts[0]), int(parts[1])
    if num_tasks < 0 or num_workers < 0:
        raise ValueError(f"Invalid config string {config!r}. Counts must be non-negative.")
    return num_tasks, num_workers


def run_trial(
    num_tasks: int,
    capacities: Sequence[float],
    seed: int,
    monitor_cycles: int = 1,
    base_length: float = DEFAULT_BASE_LENGTH,
) -> Dict[str, Any]:
    """Run one scheduling session.

    Args:
        num_tasks (int): Number of tasks.
        capacities (Sequence[float]): Capacity of each worker.
        seed (int): Seed for worker selection.
        monitor_cycles (int, optional): Number of runtime monitoring cycles. Defaults to 1.
        base_length (float, optional): Base task length. Defaults to 200000.

    Returns:
        Dict[str, Any]: The results row.
    """
    scheduler = HybridRoundRobinScheduler(rng=seed)
    assignment = scheduler.schedule(
        get_workers(capacities=capacities),
        get_mixed_tasks(num_tasks, base_length),
        monitor_cycles=monitor_cycles,
    )
    loads = [worker.load for worker in scheduler.workers]
    metrics = scheduler.fairness_metrics()
    return {
        "seed": seed,
        "num_tasks": num_tasks,
        "num_workers": len(capacities),
        "assigned": len(assignment),
        "migrations": len(scheduler.migrations),
        "invalid_references": scheduler.invalid_references,
        "max_load": max(loads),
        "min_load": min(loads),
        "load_imbalance": max(loads) - min(loads),
        **metrics.model_dump(),
    }


def run_experiment(
    num_tasks: int,
    capacities: Sequence[float],
    seeds: Sequence[int],
    monitor_cycles: int = 1,
    num_jobs: int = 1,
) -> pd.DataFrame:
    """Run one session per seed.

    Returns:
        pd.DataFrame: One row per seed.
    """
    rows = Parallel(n_jobs=num_jobs)(
        delayed(run_trial)(num_tasks, capacities, seed, monitor_cycles) for seed in seeds
    )
    return pd.DataFrame(rows)


def get_parser() -> argparse.ArgumentParser:
    """Get the parser."""
    parser = argparse.ArgumentParser(description="Run hybrid round-robin scheduling sessions.")
    parser.add_argument("--config", type=str, default="1300,130", help="Session size as tasks,workers. Defaults to 1300,130.")
    parser.add_argument("--capacities", type=float, nargs="+", default=None, help="Capacity of each worker. Overrides the worker count of --config.")
    parser.add_argument("--capacity", type=float, default=DEFAULT_CAPACITY, help="Capacity of every worker when --capacities is not given. Defaults to 1000.")
    parser.add_argument("--seeds", type=int, default=10, help="Number of seeds to run. Defaults to 10.")
    parser.add_argument("--monitor-cycles", type=int, default=1, help="Runtime monitoring cycles per session. Defaults to 1.")
    parser.add_argument("--num-jobs", type=int, default=1, help="The number of jobs to run in parallel. Defaults to 1.")
    parser.add_argument("--output", type=pathlib.Path, default=None, help="Where to write the results CSV. Defaults to $HYBRIDRR_RESULTS_DIR/results.csv.")
    parser.add_argument("--verbose", action="store_true", help="Log scheduling decisions.")
    return parser


def main(argv: Optional[List[str]] = None) -> pd.DataFrame:
    """Run the experiment."""
    args = get_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    num_tasks, num_workers = parse_config(args.config)
    capacities = args.capacities or [args.capacity] * num_workers
    if num_tasks == 0 or not capacities:
        logging.warning("Nothing to schedule for config %s.", args.config)
        return pd.DataFrame()

    logging.info(
        "Running %d sessions with %d tasks on %d workers.",
        args.seeds,
        num_tasks,
        len(capacities),
    )
    df = run_experiment(
        num_tasks,
        capacities,
        seeds=range(args.seeds),
        monitor_cycles=args.monitor_cycles,
        num_jobs=args.num_jobs,
    )

    savepath = args.output or get_results_dir() / "results.csv"
    savepath.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(savepath, index=False)
    logging.info("Saved results to %s.", savepath)
    print(df.describe().loc[["mean", "std"]].T.to_string())
    return df


if __name__ == "__main__":
    main()
