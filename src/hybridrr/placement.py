import logging
from typing import Dict, List, Mapping, Optional, Sequence, Union

import numpy as np

from hybridrr import InvalidConfiguration, InvalidWorkerReference, Task, Worker
from hybridrr.config import SchedulerConfig
from hybridrr.weights import update_weights, worker_weight

RandomSource = Union[None, int, np.random.Generator]


def get_rng(rng: RandomSource = None):
    """Get a random source with a ``random()`` method.

    Args:
        rng: A seed, a numpy Generator, any object with a ``random()`` method, or None.

    Returns:
        The random source.
    """
    if rng is None or isinstance(rng, (int, np.integer)):
        return np.random.default_rng(rng)
    if not hasattr(rng, "random"):
        raise TypeError(f"Random source {rng!r} has no random() method.")
    return rng


class Placer:
    """Static placement of tasks on workers by priority-ordered weighted selection.

    Tasks are sorted by priority (high first, arrival order kept among equals)
    and placed in batches, longest task first within a batch. Each task goes to
    a worker drawn with probability proportional to its current weight among
    the workers whose capacity covers the task's estimated execution time.
    """

    def __init__(
        self, config: Optional[SchedulerConfig] = None, rng: RandomSource = None
    ) -> None:
        """Initializes the placer.

        Args:
            config (Optional[SchedulerConfig]): The configuration. Defaults to SchedulerConfig().
            rng (RandomSource, optional): The random source or a seed. Defaults to None.
        """
        self.config = config or SchedulerConfig()
        self.rng = get_rng(rng)
        self.cursor = 0
        self.invalid_references = 0

    def placement_order(self, tasks: Sequence[Task]) -> List[List[Task]]:
        """Get the batches in which tasks are placed.

        Args:
            tasks (Sequence[Task]): The tasks in arrival order.

        Returns:
            List[List[Task]]: The batches, in placement order.
        """
        ordered = sorted(tasks, key=lambda task: task.priority)
        batch_size = max(1, len(ordered) // self.config.batch_divisor)
        # longest first within a batch; a batch spanning two priorities keeps them apart
        return [
            sorted(ordered[i : i + batch_size], key=lambda task: (task.priority, -task.length))
            for i in range(0, len(ordered), batch_size)
        ]

    def eligible_workers(self, workers: Sequence[Worker], task: Task) -> List[Worker]:
        """Get the workers a task may be placed on.

        Args:
            workers (Sequence[Worker]): The workers.
            task (Task): The task.

        Returns:
            List[Worker]: Workers whose capacity covers the task's estimated
                execution time, or the strongest worker if there are none.
        """
        eligible = [
            worker for worker in workers if worker.capacity >= task.estimated_execution_time
        ]
        if not eligible:
            strongest = max(workers, key=lambda worker: worker.capacity)
            logging.debug(
                "No worker can hold %s; forcing placement on %s.", task.name, strongest.name
            )
            return [strongest]
        return eligible

    def select_worker(self, workers: Sequence[Worker], task: Task) -> str:
        """Select a worker for a task by weighted random sampling.

        Args:
            workers (Sequence[Worker]): The workers.
            task (Task): The task.

        Returns:
            str: The name of the selected worker.
        """
        update_weights(workers, self.config)
        eligible = self.eligible_workers(workers, task)

        total_weight = sum(worker.weight for worker in eligible)
        threshold = self.rng.random() * total_weight
        cumulative_weight = 0.0
        for worker in eligible:
            cumulative_weight += worker.weight
            if cumulative_weight >= threshold:
                return worker.name

        worker = eligible[self.cursor % len(eligible)]
        self.cursor += 1
        logging.debug(
            "Weighted selection for %s drew %s of %s; falling back to round-robin (%s).",
            task.name,
            threshold,
            total_weight,
            worker.name,
        )
        return worker.name

    def assign(self, workers: Mapping[str, Worker], task: Task, worker_name: str) -> None:
        """Assign a task to a worker and refresh the worker's weight.

        Args:
            workers (Mapping[str, Worker]): Map from worker name to worker.
            task (Task): The task.
            worker_name (str): The name of the worker.

        Raises:
            InvalidWorkerReference: If the worker does not exist.
        """
        if worker_name not in workers:
            raise InvalidWorkerReference(
                f"Worker {worker_name} does not exist. Workers are {set(workers)}."
            )
        worker = workers[worker_name]
        worker.add_task(task)
        worker.weight = worker_weight(worker, self.config)

    def place(self, workers: Sequence[Worker], tasks: Sequence[Task]) -> Dict[str, str]:
        """Place tasks on workers.

        Tasks already held by one of the workers are left where they are. A
        stale owner naming any other worker is ignored and the task is placed
        again. A task whose selected worker does not exist is skipped, left
        unassigned and counted in ``invalid_references``.

        Args:
            workers (Sequence[Worker]): The workers.
            tasks (Sequence[Task]): The tasks in arrival order.

        Returns:
            Dict[str, str]: Map from task name to worker name for the tasks placed.

        Raises:
            InvalidConfiguration: If there are no workers.
        """
        workers = list(workers)
        if not workers:
            raise InvalidConfiguration("Cannot place tasks without workers.")
        worker_map = {worker.name: worker for worker in workers}
        held = {id(task) for worker in workers for task in worker.tasks}

        assignment: Dict[str, str] = {}
        for batch in self.placement_order(tasks):
            for task in batch:
                if id(task) in held:
                    continue
                if task.assigned_worker is not None:
                    logging.debug(
                        "Ignoring stale owner %s of %s.", task.assigned_worker, task.name
                    )
                    task.assigned_worker = None
                worker_name = self.select_worker(workers, task)
                try:
                    self.assign(worker_map, task, worker_name)
                except InvalidWorkerReference as exp:
                    self.invalid_references += 1
                    logging.warning("Skipping assignment of %s: %s", task.name, exp)
                    continue
                assignment[task.name] = worker_name
                logging.debug("Assigned %s to %s", task, worker_map[worker_name])
        return assignment
