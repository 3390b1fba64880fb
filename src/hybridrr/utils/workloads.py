from typing import List, Optional, Sequence

import numpy as np

from hybridrr import REFERENCE_RATE, Task, Worker

DEFAULT_BASE_LENGTH = 200_000
DEFAULT_CAPACITY = 1000.0


def get_workers(
    num_workers: int = 4,
    capacities: Optional[Sequence[float]] = None,
    capacity: float = DEFAULT_CAPACITY,
) -> List[Worker]:
    """Returns a pool of workers named ``vm0``, ``vm1``, ...

    Args:
        num_workers (int, optional): Number of workers. Ignored if capacities is given. Defaults to 4.
        capacities (Optional[Sequence[float]], optional): Capacity of each worker. Defaults to None.
        capacity (float, optional): Capacity of every worker when capacities is not given. Defaults to 1000.

    Returns:
        List[Worker]: The workers.
    """
    if capacities is None:
        capacities = [capacity] * num_workers
    return [Worker(name=f"vm{i}", capacity=cap) for i, cap in enumerate(capacities)]


def get_mixed_tasks(
    num_tasks: int,
    base_length: float = DEFAULT_BASE_LENGTH,
    reference_rate: float = REFERENCE_RATE,
) -> List[Task]:
    """Returns tasks whose lengths cycle through half, one and two times the base length.

    With the default base length this yields medium, low and low priority
    tasks in equal shares.

    Args:
        num_tasks (int): Number of tasks.
        base_length (float, optional): The base length. Defaults to 200000.
        reference_rate (float, optional): Nominal worker speed. Defaults to REFERENCE_RATE.

    Returns:
        List[Task]: The tasks, named ``t0``, ``t1``, ...
    """
    factors = (0.5, 1.0, 2.0)
    return [
        Task(name=f"t{i}", length=base_length * factors[i % 3], reference_rate=reference_rate)
        for i in range(num_tasks)
    ]


def get_uniform_tasks(
    num_tasks: int,
    length: float = DEFAULT_BASE_LENGTH,
    reference_rate: float = REFERENCE_RATE,
) -> List[Task]:
    """Returns tasks that all have the same length."""
    return [
        Task(name=f"t{i}", length=length, reference_rate=reference_rate)
        for i in range(num_tasks)
    ]


def get_random_tasks(
    num_tasks: int,
    min_length: float = 10_000,
    max_length: float = 400_000,
    rng: Optional[np.random.Generator] = None,
    reference_rate: float = REFERENCE_RATE,
) -> List[Task]:
    """Returns tasks with lengths drawn uniformly from [min_length, max_length).

    Args:
        num_tasks (int): Number of tasks.
        min_length (float, optional): Smallest length. Defaults to 10000.
        max_length (float, optional): Largest length. Defaults to 400000.
        rng (Optional[np.random.Generator], optional): Random generator. Defaults to None.
        reference_rate (float, optional): Nominal worker speed. Defaults to REFERENCE_RATE.

    Returns:
        List[Task]: The tasks.
    """
    if min_length <= 0 or max_length < min_length:
        raise ValueError(f"Invalid length range [{min_length}, {max_length}).")
    rng = rng or np.random.default_rng()
    lengths = rng.uniform(min_length, max_length, size=num_tasks)
    return [
        Task(name=f"t{i}", length=float(length), reference_rate=reference_rate)
        for i, length in enumerate(lengths)
    ]
