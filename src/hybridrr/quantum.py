"""Dynamic time quantum computed from the largest burst times.

Two formulas are provided. ``weighted_quantum`` is a weighted average of the
top three burst times and is used per worker. ``system_quantum`` applies the
strict ``(BT1 - BT2) + BT3`` rule over every task in the system and is used for
reporting.
"""

from typing import Dict, Iterable, List, Optional, Sequence

from hybridrr import Worker
from hybridrr.config import QuantumBounds, QuantumTier, SchedulerConfig, select_tier

DEFAULT_QUANTUM = 100.0
SYSTEM_QUANTUM_BOUNDS = QuantumBounds(lower=50, upper=500)


def _top_burst_times(burst_times: Iterable[float]) -> List[float]:
    burst_times = sorted(burst_times, reverse=True)
    if any(burst_time < 0 for burst_time in burst_times):
        raise ValueError(f"Burst times must be non-negative, got {burst_times[-1]}.")
    return burst_times[:3]


def weighted_quantum(
    burst_times: Iterable[float],
    bounds: QuantumBounds,
    default: float = DEFAULT_QUANTUM,
) -> float:
    """Get the quantum as a weighted average of the three largest burst times.

    Args:
        burst_times (Iterable[float]): The burst times.
        bounds (QuantumBounds): The bounds to clamp the result to.
        default (float, optional): Quantum for an empty sample. Defaults to DEFAULT_QUANTUM.

    Returns:
        float: The clamped quantum.
    """
    top = _top_burst_times(burst_times)
    if len(top) >= 3:
        quantum = 0.5 * top[0] + 0.3 * top[1] + 0.2 * top[2]
    elif len(top) == 2:
        quantum = 0.7 * top[0] + 0.3 * top[1]
    elif len(top) == 1:
        quantum = top[0]
    else:
        quantum = default
    return bounds.clamp(quantum)


def system_quantum(
    burst_times: Iterable[float],
    bounds: QuantumBounds = SYSTEM_QUANTUM_BOUNDS,
    default: float = DEFAULT_QUANTUM,
) -> float:
    """Get the system quantum ``(BT1 - BT2) + BT3`` of the three largest burst times.

    With two samples the quantum is their sum and with one it is the sample
    itself.

    Args:
        burst_times (Iterable[float]): The burst times.
        bounds (QuantumBounds, optional): The bounds to clamp the result to. Defaults to [50, 500].
        default (float, optional): Quantum for an empty sample. Defaults to DEFAULT_QUANTUM.

    Returns:
        float: The clamped quantum.
    """
    top = _top_burst_times(burst_times)
    if len(top) >= 3:
        quantum = (top[0] - top[1]) + top[2]
    elif len(top) == 2:
        quantum = top[0] + top[1]
    elif len(top) == 1:
        quantum = top[0]
    else:
        quantum = default
    return bounds.clamp(quantum)


def quantum_bounds(population: int, tiers: Sequence[QuantumTier]) -> QuantumBounds:
    """Get the per-worker quantum bounds for a task population."""
    return select_tier(tiers, population).bounds


def per_worker_quantum(
    workers: Iterable[Worker],
    population: int,
    config: Optional[SchedulerConfig] = None,
) -> Dict[str, float]:
    """Get the weighted quantum of every worker's queue.

    Args:
        workers (Iterable[Worker]): The workers.
        population (int): The number of tasks in the session, used to select the bounds.
        config (Optional[SchedulerConfig]): The configuration. Defaults to SchedulerConfig().

    Returns:
        Dict[str, float]: Map from worker name to quantum.
    """
    config = config or SchedulerConfig()
    bounds = quantum_bounds(population, config.quantum_tiers)
    return {
        worker.name: weighted_quantum(
            (task.estimated_execution_time for task in worker.tasks),
            bounds,
            default=config.default_quantum,
        )
        for worker in workers
    }
