from typing import Iterable, Optional

from hybridrr import Worker
from hybridrr.config import SchedulerConfig


def worker_weight(worker: Worker, config: Optional[SchedulerConfig] = None) -> float:
    """Get the scheduling weight of a worker given its current load.

    Idle workers get a bonus to encourage use of spare capacity and workers
    holding more than ``config.overload_load`` tasks get a penalty.

    Args:
        worker (Worker): The worker.
        config (Optional[SchedulerConfig]): The configuration. Defaults to SchedulerConfig().

    Returns:
        float: The weight of the worker.
    """
    config = config or SchedulerConfig()
    load = worker.load
    if load == 0:
        return worker.capacity * config.idle_bonus
    if load > config.overload_load:
        return worker.capacity / ((1 + load) * config.overload_penalty)
    return worker.capacity / (1 + load)


def update_weights(
    workers: Iterable[Worker], config: Optional[SchedulerConfig] = None
) -> None:
    """Recompute and store the weight of every worker."""
    for worker in workers:
        worker.weight = worker_weight(worker, config)
